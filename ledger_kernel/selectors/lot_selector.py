"""
Module: ledger_kernel.selectors.lot_selector
Responsibility: Read-only access to cost lots and their consumptions.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - FIFO order: lots are returned oldest first by (fecha, seq).
    - Only creacion/entrada entries with stock_lote set are lots.

Audit relevance:
    ``list_lots`` is the public lot listing; ``lot_sum`` is the right-hand
    side of the stock invariant.
"""

from uuid import UUID

from sqlalchemy import func, select

from ledger_kernel.domain.values import LOT_OPERATIONS, LotSnapshot
from ledger_kernel.exceptions import LotNotFoundError
from ledger_kernel.models.ledger_entry import LotConsumption, LotLedgerEntry
from ledger_kernel.selectors.base import BaseSelector

_LOT_OPERATION_VALUES = tuple(op.value for op in LOT_OPERATIONS)

_LOT_COLUMNS = (
    LotLedgerEntry.id,
    LotLedgerEntry.product_id,
    LotLedgerEntry.fecha,
    LotLedgerEntry.seq,
    LotLedgerEntry.cantidad,
    LotLedgerEntry.stock_lote,
    LotLedgerEntry.costo_final,
)


def lot_filter():
    """WHERE clause shared by every lot query."""
    return (
        LotLedgerEntry.operacion.in_(_LOT_OPERATION_VALUES),
        LotLedgerEntry.stock_lote.is_not(None),
    )


def _to_snapshot(row) -> LotSnapshot:
    return LotSnapshot(
        lot_id=row.id,
        product_id=row.product_id,
        fecha=row.fecha,
        seq=row.seq,
        cantidad=row.cantidad,
        stock_lote=row.stock_lote,
        costo_final=row.costo_final,
    )


class LotSelector(BaseSelector):
    """Queries over a product's cost lots."""

    def list_lots(self, product_id: UUID, include_empty: bool = False) -> list[LotSnapshot]:
        """
        Lots for a product, oldest first.

        By default only lots with ``stock_lote > 0`` are returned.
        """
        stmt = (
            select(*_LOT_COLUMNS)
            .where(LotLedgerEntry.product_id == product_id, *lot_filter())
            .order_by(LotLedgerEntry.fecha.asc(), LotLedgerEntry.seq.asc())
        )
        if not include_empty:
            stmt = stmt.where(LotLedgerEntry.stock_lote > 0)
        return [_to_snapshot(row) for row in self.session.execute(stmt)]

    def list_lots_newest_first(self, product_id: UUID) -> list[LotSnapshot]:
        """All lots for a product (including empty ones), newest first."""
        stmt = (
            select(*_LOT_COLUMNS)
            .where(LotLedgerEntry.product_id == product_id, *lot_filter())
            .order_by(LotLedgerEntry.fecha.desc(), LotLedgerEntry.seq.desc())
        )
        return [_to_snapshot(row) for row in self.session.execute(stmt)]

    def get_lot(self, lot_id: UUID) -> LotSnapshot:
        row = self.session.execute(
            select(*_LOT_COLUMNS).where(LotLedgerEntry.id == lot_id, *lot_filter())
        ).one_or_none()
        if row is None:
            raise LotNotFoundError(str(lot_id))
        return _to_snapshot(row)

    def lot_sum(self, product_id: UUID) -> int:
        """Sum of ``stock_lote`` over the product's lots (0 if none)."""
        return self.session.execute(
            select(func.coalesce(func.sum(LotLedgerEntry.stock_lote), 0)).where(
                LotLedgerEntry.product_id == product_id, *lot_filter()
            )
        ).scalar_one()

    def available_quantity(self, product_id: UUID) -> int:
        return self.lot_sum(product_id)

    def consumptions_for_entry(self, entry_id: UUID) -> list[tuple[UUID, int]]:
        """(lot_id, cantidad) pairs recorded with an outgoing entry."""
        rows = self.session.execute(
            select(LotConsumption.lot_id, LotConsumption.cantidad)
            .where(LotConsumption.entry_id == entry_id)
            .order_by(LotConsumption.position)
        )
        return [(row.lot_id, row.cantidad) for row in rows]

    def consumed_total(self, entry_id: UUID) -> int:
        return self.session.execute(
            select(func.coalesce(func.sum(LotConsumption.cantidad), 0)).where(
                LotConsumption.entry_id == entry_id
            )
        ).scalar_one()
