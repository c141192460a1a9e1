"""
Module: ledger_kernel.models.product
Responsibility: ORM persistence for products and their live stock counter.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - stock >= 0 and cantidad >= 0 (CHECK constraints).
    - codigo is unique (UNIQUE constraint); services trim it before insert.
    - stock equals the sum of open lot quantities.  Not expressible as a
      constraint; re-checked by every write service before commit.

Failure modes:
    - IntegrityError on duplicate codigo or negative stock.

Audit relevance:
    The product row carries only current state.  Every change to stock or
    cost is mirrored by a LotLedgerEntry, which is the audit record.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TimestampedBase
from ledger_kernel.db.types import ZERO


class Product(TimestampedBase):
    """
    A sellable item with cost fields and a live stock counter.

    Contract:
        ``costo_inicial`` is the weighted-average unit cost over every unit
        ever received.  ``acarreo``, ``flete`` and ``costo_final`` describe
        the most recent batch only.  ``cantidad`` is the cumulative count of
        units received; ``stock`` is what is on hand now.

    Non-goals:
        - Does not hold lot detail; lots are LotLedgerEntry rows.
    """

    __tablename__ = "products"

    __table_args__ = (
        CheckConstraint("stock >= 0", name="ck_product_stock_non_negative"),
        CheckConstraint("cantidad >= 0", name="ck_product_cantidad_non_negative"),
        Index("idx_product_nombre", "nombre"),
        Index("idx_product_fecha_ingreso", "fecha_ingreso"),
    )

    codigo: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    nombre: Mapped[str] = mapped_column(String(255), nullable=False)
    proveedor: Mapped[str | None] = mapped_column(String(255), nullable=True)

    costo_inicial: Mapped[Decimal] = mapped_column(nullable=False)
    acarreo: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    flete: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    costo_final: Mapped[Decimal] = mapped_column(nullable=False)

    cantidad: Mapped[int] = mapped_column(Integer, nullable=False)
    stock: Mapped[int] = mapped_column(Integer, nullable=False)

    fecha_ingreso: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<Product {self.codigo} stock={self.stock}>"
