"""
LedgerAuditor -- periodic consistency check over the lot ledger.

Responsibility:
    Re-derives every ledger invariant from stored rows and reports the
    discrepancies it finds.  A safety net behind the in-transaction checks;
    it never repairs anything.

Architecture position:
    Kernel > Services.  Read-only in practice: uses selectors and plain
    SELECTs, never flushes.  Run by scripts/check_ledger.py.

Invariants checked:
    STOCK_EQUALS_LOT_SUM, LOT_BOUNDS, SALIDA_MATCHES_CONSUMPTION.

Audit relevance:
    Each discrepancy is logged at ERROR with the invariant name.  A clean
    run logs ``ledger_audit_clean``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy import or_, select

from ledger_kernel.domain.values import LedgerOperation
from ledger_kernel.exceptions import ProductNotFoundError
from ledger_kernel.invariants import LedgerInvariant
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.ledger_entry import LotLedgerEntry
from ledger_kernel.models.product import Product
from ledger_kernel.selectors.lot_selector import LotSelector, lot_filter
from ledger_kernel.services.base import BaseService

logger = get_logger("services.ledger_auditor")

_CONSUMING_OPERATIONS = (LedgerOperation.SALIDA.value, LedgerOperation.AJUSTE.value)


@dataclass(frozen=True, slots=True)
class StockDiscrepancy:
    """One failed check."""

    invariant: LedgerInvariant
    product_id: UUID
    expected: int
    actual: int
    entity_id: UUID | None = None

    def describe(self) -> str:
        target = f" entity {self.entity_id}" if self.entity_id else ""
        return (
            f"{self.invariant.value}: product {self.product_id}{target} "
            f"expected {self.expected}, actual {self.actual}"
        )


@dataclass
class AuditReport:
    products_checked: int = 0
    discrepancies: list[StockDiscrepancy] = field(default_factory=list)

    @property
    def is_clean(self) -> bool:
        return not self.discrepancies


class LedgerAuditor(BaseService):
    """Recomputes ledger invariants from stored rows."""

    def __init__(self, session, clock=None):
        super().__init__(session, clock)
        self._lots = LotSelector(session)

    def check_product(self, product_id: UUID) -> list[StockDiscrepancy]:
        product = self.session.execute(
            select(Product.id, Product.stock).where(Product.id == product_id)
        ).one_or_none()
        if product is None:
            raise ProductNotFoundError(str(product_id))

        found: list[StockDiscrepancy] = []

        lot_sum = self._lots.lot_sum(product_id)
        if lot_sum != product.stock:
            found.append(
                StockDiscrepancy(
                    LedgerInvariant.STOCK_EQUALS_LOT_SUM,
                    product_id,
                    expected=product.stock,
                    actual=lot_sum,
                )
            )

        out_of_bounds = self.session.execute(
            select(LotLedgerEntry.id, LotLedgerEntry.cantidad, LotLedgerEntry.stock_lote)
            .where(LotLedgerEntry.product_id == product_id, *lot_filter())
            .where(
                or_(
                    LotLedgerEntry.stock_lote < 0,
                    LotLedgerEntry.stock_lote > LotLedgerEntry.cantidad,
                )
            )
        )
        for row in out_of_bounds:
            found.append(
                StockDiscrepancy(
                    LedgerInvariant.LOT_BOUNDS,
                    product_id,
                    expected=row.cantidad,
                    actual=row.stock_lote,
                    entity_id=row.id,
                )
            )

        outgoing = self.session.execute(
            select(LotLedgerEntry.id, LotLedgerEntry.cantidad).where(
                LotLedgerEntry.product_id == product_id,
                LotLedgerEntry.operacion.in_(_CONSUMING_OPERATIONS),
            )
        )
        for row in outgoing:
            consumed = self._lots.consumed_total(row.id)
            if consumed != row.cantidad:
                found.append(
                    StockDiscrepancy(
                        LedgerInvariant.SALIDA_MATCHES_CONSUMPTION,
                        product_id,
                        expected=row.cantidad,
                        actual=consumed,
                        entity_id=row.id,
                    )
                )

        for discrepancy in found:
            logger.error(
                "ledger_discrepancy_found",
                extra={
                    "invariant": discrepancy.invariant.value,
                    "product_id": str(product_id),
                    "entity_id": str(discrepancy.entity_id) if discrepancy.entity_id else None,
                    "expected": discrepancy.expected,
                    "actual": discrepancy.actual,
                },
            )
        return found

    def check_all(self) -> AuditReport:
        report = AuditReport()
        product_ids = self.session.execute(
            select(Product.id).order_by(Product.codigo)
        ).scalars().all()
        for product_id in product_ids:
            report.discrepancies.extend(self.check_product(product_id))
            report.products_checked += 1

        if report.is_clean:
            logger.info(
                "ledger_audit_clean",
                extra={"products_checked": report.products_checked},
            )
        else:
            logger.error(
                "ledger_audit_failed",
                extra={
                    "products_checked": report.products_checked,
                    "discrepancy_count": len(report.discrepancies),
                },
            )
        return report
