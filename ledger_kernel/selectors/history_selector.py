"""
Module: ledger_kernel.selectors.history_selector
Responsibility: Filtered, paginated reads of the movement ledger with
    aggregate totals.
Architecture position: Kernel > Selectors.

Failure modes:
    - ValidationError for a search term longer than MAX_SEARCH_LENGTH or a
      start date after the end date.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from math import ceil
from uuid import UUID

from sqlalchemy import func, or_, select

from ledger_kernel.domain.values import LedgerOperation
from ledger_kernel.exceptions import ValidationError
from ledger_kernel.models.ledger_entry import LotLedgerEntry
from ledger_kernel.selectors.base import BaseSelector, like_pattern

MAX_SEARCH_LENGTH = 50


@dataclass(frozen=True, slots=True)
class LedgerEntryView:
    """Read-only projection of one ledger entry."""

    entry_id: UUID
    seq: int
    product_id: UUID
    nombre_producto: str
    codigo_producto: str
    operacion: LedgerOperation
    cantidad: int
    stock_anterior: int
    stock_nuevo: int
    costo_final: Decimal | None
    stock_lote: int | None
    fecha: datetime
    detalles: str | None
    sale_id: UUID | None


@dataclass(frozen=True, slots=True)
class HistoryPage:
    entries: tuple[LedgerEntryView, ...]
    total: int
    page: int
    limit: int
    total_cantidad: int
    total_stock_lote: int

    @property
    def pages(self) -> int:
        return max(1, ceil(self.total / self.limit)) if self.limit else 1


class HistorySelector(BaseSelector):
    """Queries over the append-only movement ledger."""

    def _filters(
        self,
        operacion: LedgerOperation | str | None,
        product_id: UUID | None,
        search: str | None,
        start: datetime | None,
        end: datetime | None,
        sale_id: UUID | None,
    ) -> list:
        clauses = []
        if operacion is not None:
            clauses.append(LotLedgerEntry.operacion == LedgerOperation(operacion).value)
        if product_id is not None:
            clauses.append(LotLedgerEntry.product_id == product_id)
        if sale_id is not None:
            clauses.append(LotLedgerEntry.sale_id == sale_id)
        if search:
            if len(search) > MAX_SEARCH_LENGTH:
                raise ValidationError.for_field(
                    "search", f"longer than {MAX_SEARCH_LENGTH} characters", len(search)
                )
            pattern = like_pattern(search.lower())
            clauses.append(
                or_(
                    func.lower(LotLedgerEntry.nombre_producto).like(pattern, escape="\\"),
                    func.lower(LotLedgerEntry.codigo_producto).like(pattern, escape="\\"),
                )
            )
        if start is not None and end is not None and start > end:
            raise ValidationError.for_field("start", "after end date", start.isoformat())
        if start is not None:
            clauses.append(LotLedgerEntry.fecha >= start)
        if end is not None:
            clauses.append(LotLedgerEntry.fecha <= end)
        return clauses

    def query(
        self,
        operacion: LedgerOperation | str | None = None,
        product_id: UUID | None = None,
        search: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        sale_id: UUID | None = None,
        page: int | None = 1,
        limit: int | None = None,
        get_all: bool = False,
    ) -> HistoryPage:
        """
        Ledger entries matching the filters, newest first.

        ``get_all`` returns every match on a single page.  Totals cover all
        matches, not just the returned page.
        """
        clauses = self._filters(operacion, product_id, search, start, end, sale_id)

        total, total_cantidad, total_stock_lote = self.session.execute(
            select(
                func.count(LotLedgerEntry.id),
                func.coalesce(func.sum(LotLedgerEntry.cantidad), 0),
                func.coalesce(func.sum(LotLedgerEntry.stock_lote), 0),
            ).where(*clauses)
        ).one()

        stmt = (
            select(LotLedgerEntry)
            .where(*clauses)
            .order_by(LotLedgerEntry.fecha.desc(), LotLedgerEntry.seq.desc())
            .execution_options(populate_existing=True)
        )
        if get_all:
            page, limit = 1, max(total, 1)
        else:
            page, limit = self._page_window(page, limit)
            stmt = stmt.offset((page - 1) * limit).limit(limit)

        entries = tuple(
            _to_view(entry) for entry in self.session.execute(stmt).scalars()
        )
        return HistoryPage(
            entries=entries,
            total=total,
            page=page,
            limit=limit,
            total_cantidad=total_cantidad,
            total_stock_lote=total_stock_lote,
        )

    def entries_for_sale(self, sale_id: UUID) -> list[LedgerEntryView]:
        """Entries written for a sale and its void, oldest first."""
        stmt = (
            select(LotLedgerEntry)
            .where(LotLedgerEntry.sale_id == sale_id)
            .order_by(LotLedgerEntry.seq.asc())
            .execution_options(populate_existing=True)
        )
        return [_to_view(entry) for entry in self.session.execute(stmt).scalars()]


def _to_view(entry: LotLedgerEntry) -> LedgerEntryView:
    return LedgerEntryView(
        entry_id=entry.id,
        seq=entry.seq,
        product_id=entry.product_id,
        nombre_producto=entry.nombre_producto,
        codigo_producto=entry.codigo_producto,
        operacion=LedgerOperation(entry.operacion),
        cantidad=entry.cantidad,
        stock_anterior=entry.stock_anterior,
        stock_nuevo=entry.stock_nuevo,
        costo_final=entry.costo_final,
        stock_lote=entry.stock_lote,
        fecha=entry.fecha,
        detalles=entry.detalles,
        sale_id=entry.sale_id,
    )
