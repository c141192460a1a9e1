"""
Module: ledger_kernel.models.ledger_entry
Responsibility: ORM persistence for the append-only stock movement ledger and
    the per-lot consumption rows written with each sale or downward
    adjustment.
Architecture position: Kernel > Models.  May import from db/ and
    domain/values.py only.

Invariants enforced:
    - Lot bounds: stock_lote IS NULL OR 0 <= stock_lote <= cantidad (CHECK).
    - A lot is a creacion/entrada entry with stock_lote and costo_final set.
      Movement-only entrada rows (void compensation) leave stock_lote NULL.
    - seq is unique and strictly increasing; (fecha, seq) is the FIFO order.
    - Append-only: see ledger_kernel.db.immutability.

Failure modes:
    - IntegrityError on lot bounds or duplicate seq.

Audit relevance:
    Entries denormalize the product name and code so the history survives
    product deletion.  product_id is therefore not a foreign key.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TimestampedBase
from ledger_kernel.db.types import UUIDString
from ledger_kernel.domain.values import LOT_OPERATIONS, LedgerOperation


class LotLedgerEntry(TimestampedBase):
    """
    One stock movement, and possibly a cost lot.

    Contract:
        ``stock_anterior``/``stock_nuevo`` record the product counter around
        the movement.  For lot entries ``cantidad`` is the received quantity
        and ``stock_lote`` the units still available from it.

    Guarantees:
        - (product_id, fecha, seq) index supports oldest-first lot scans.
        - Only ``stock_lote`` of a lot entry ever changes after insert.
    """

    __tablename__ = "lot_ledger_entries"

    __table_args__ = (
        CheckConstraint(
            "stock_lote IS NULL OR (stock_lote >= 0 AND stock_lote <= cantidad)",
            name="ck_entry_lot_bounds",
        ),
        CheckConstraint("cantidad >= 0", name="ck_entry_cantidad_non_negative"),
        # Query: open lots for a product, oldest first
        Index("idx_entry_product_fecha_seq", "product_id", "fecha", "seq"),
        # Query: history by operation
        Index("idx_entry_operacion", "operacion"),
        # Query: history by date range
        Index("idx_entry_fecha", "fecha"),
        # Query: entries written for a sale
        Index("idx_entry_sale", "sale_id"),
    )

    seq: Mapped[int] = mapped_column(nullable=False, unique=True)

    product_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    nombre_producto: Mapped[str] = mapped_column(String(255), nullable=False)
    codigo_producto: Mapped[str] = mapped_column(String(64), nullable=False)

    operacion: Mapped[str] = mapped_column(String(16), nullable=False)
    cantidad: Mapped[int] = mapped_column(Integer, nullable=False)
    stock_anterior: Mapped[int] = mapped_column(Integer, nullable=False)
    stock_nuevo: Mapped[int] = mapped_column(Integer, nullable=False)

    # Lot fields: set together on creacion/entrada lots, NULL otherwise
    costo_final: Mapped[Decimal | None] = mapped_column(nullable=True)
    stock_lote: Mapped[int | None] = mapped_column(Integer, nullable=True)

    fecha: Mapped[datetime] = mapped_column(nullable=False)
    detalles: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    sale_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    @property
    def is_lot(self) -> bool:
        return (
            self.stock_lote is not None
            and LedgerOperation(self.operacion) in LOT_OPERATIONS
        )

    def __repr__(self) -> str:
        return (
            f"<LotLedgerEntry #{self.seq} {self.operacion} "
            f"cantidad={self.cantidad} stock_lote={self.stock_lote}>"
        )


class LotConsumption(TimestampedBase):
    """
    Units taken from one lot by one outgoing entry.

    The rows written with a ``salida`` or ``ajuste`` entry sum to that
    entry's ``cantidad``.  Voids under the original-lots policy read them
    to restore the same lots.
    """

    __tablename__ = "lot_consumptions"

    __table_args__ = (
        CheckConstraint("cantidad > 0", name="ck_consumption_cantidad_positive"),
        Index("idx_consumption_entry", "entry_id"),
        Index("idx_consumption_lot", "lot_id"),
    )

    entry_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("lot_ledger_entries.id"), nullable=False
    )
    lot_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("lot_ledger_entries.id"), nullable=False
    )
    # FIFO step index within the outgoing entry
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    cantidad: Mapped[int] = mapped_column(Integer, nullable=False)
    costo_unitario: Mapped[Decimal] = mapped_column(nullable=False)
