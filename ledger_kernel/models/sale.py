"""
Module: ledger_kernel.models.sale
Responsibility: ORM persistence for sales and their lines.  A sale holds the
    price, cost and profit snapshot taken when its lots were consumed.
Architecture position: Kernel > Models.  May import from db/ and
    domain/values.py only.

Invariants enforced:
    - nr_factura is unique.
    - estado follows SaleStatus transitions (VoidService and the immutability listener);
      only activa sales count toward stock.
    - Line cantidad > 0 and precio_unitario >= 0 (CHECK).

Failure modes:
    - IntegrityError on duplicate nr_factura.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import TimestampedBase
from ledger_kernel.db.types import ZERO, UUIDString
from ledger_kernel.domain.values import SaleStatus


class Sale(TimestampedBase):
    """A customer sale; lines reference the salida entries they produced."""

    __tablename__ = "sales"

    __table_args__ = (
        Index("idx_sale_fecha", "fecha"),
        Index("idx_sale_estado", "estado"),
    )

    nr_factura: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    fecha: Mapped[datetime] = mapped_column(nullable=False)
    estado: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=SaleStatus.ACTIVA.value,
        active_history=True,
    )

    total: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    costo_total: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    ganancia_total: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)

    voided_at: Mapped[datetime | None] = mapped_column(nullable=True)

    lines: Mapped[list["SaleLine"]] = relationship(
        back_populates="sale",
        order_by="SaleLine.line_no",
        cascade="all, delete-orphan",
    )

    @property
    def status(self) -> SaleStatus:
        return SaleStatus(self.estado)

    def __repr__(self) -> str:
        return f"<Sale {self.nr_factura} {self.estado}>"


class SaleLine(TimestampedBase):
    """One product on a sale, with the cost of the lots it consumed."""

    __tablename__ = "sale_lines"

    __table_args__ = (
        CheckConstraint("cantidad > 0", name="ck_sale_line_cantidad_positive"),
        CheckConstraint("precio_unitario >= 0", name="ck_sale_line_price_non_negative"),
        Index("idx_sale_line_sale", "sale_id"),
        Index("idx_sale_line_product", "product_id"),
    )

    sale_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("sales.id"), nullable=False
    )
    line_no: Mapped[int] = mapped_column(Integer, nullable=False)
    product_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    cantidad: Mapped[int] = mapped_column(Integer, nullable=False)
    precio_unitario: Mapped[Decimal] = mapped_column(nullable=False)
    costo_unitario: Mapped[Decimal] = mapped_column(nullable=False)
    costo_total: Mapped[Decimal] = mapped_column(nullable=False)
    ganancia_unitaria: Mapped[Decimal] = mapped_column(nullable=False)
    ganancia_total: Mapped[Decimal] = mapped_column(nullable=False)

    salida_entry_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("lot_ledger_entries.id"), nullable=False
    )

    sale: Mapped[Sale] = relationship(back_populates="lines")
