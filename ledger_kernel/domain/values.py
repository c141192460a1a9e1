"""
Values -- Immutable domain value objects for the lot ledger.

Responsibility:
    Ledger operation and sale status vocabularies, the sale state machine,
    and the read-side lot snapshot shared by selectors and the FIFO engine.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Sale transitions: activa -> anulada, activa -> devuelta; both terminal.
    - A lot snapshot always has 0 <= stock_lote <= cantidad.

Failure modes:
    - ValueError on construction of an out-of-bounds LotSnapshot.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID


class LedgerOperation(str, Enum):
    """Kind of stock movement recorded by a ledger entry."""

    CREACION = "creacion"
    ENTRADA = "entrada"
    SALIDA = "salida"
    AJUSTE = "ajuste"
    ELIMINACION = "eliminacion"

    @property
    def can_open_lot(self) -> bool:
        return self in LOT_OPERATIONS


LOT_OPERATIONS: frozenset[LedgerOperation] = frozenset(
    {LedgerOperation.CREACION, LedgerOperation.ENTRADA}
)


class SaleStatus(str, Enum):
    """Sale lifecycle status."""

    ACTIVA = "activa"
    ANULADA = "anulada"
    DEVUELTA = "devuelta"

    def can_transition_to(self, target: SaleStatus) -> bool:
        return target in _SALE_TRANSITIONS[self]

    @property
    def is_terminal(self) -> bool:
        return not _SALE_TRANSITIONS[self]


_SALE_TRANSITIONS: dict[SaleStatus, frozenset[SaleStatus]] = {
    SaleStatus.ACTIVA: frozenset({SaleStatus.ANULADA, SaleStatus.DEVUELTA}),
    SaleStatus.ANULADA: frozenset(),
    SaleStatus.DEVUELTA: frozenset(),
}


class VoidCreditPolicy(str, Enum):
    """Where a voided sale's units go back to."""

    LATEST_LOT = "latest_lot"
    """Credit the most recent lot first, spilling to older lots when a lot
    would exceed its received quantity."""

    ORIGINAL_LOTS = "original_lots"
    """Restore exactly the lots the sale consumed."""


@dataclass(frozen=True, slots=True)
class LotSnapshot:
    """
    Point-in-time view of one lot entry.

    Snapshots are read outside any lock; the commit boundary re-validates
    them against the live rows.
    """

    lot_id: UUID
    product_id: UUID
    fecha: datetime
    seq: int
    cantidad: int
    stock_lote: int
    costo_final: Decimal

    def __post_init__(self) -> None:
        if self.stock_lote < 0 or self.stock_lote > self.cantidad:
            raise ValueError(
                f"Lot {self.lot_id} out of bounds: "
                f"stock_lote={self.stock_lote}, cantidad={self.cantidad}"
            )

    @property
    def fifo_key(self) -> tuple[datetime, int]:
        return (self.fecha, self.seq)
