"""
VoidService -- sale reversal.

Responsibility:
    Moves an ``activa`` sale to ``anulada`` and returns its units to
    stock: lots are credited, one movement-only ``entrada`` entry per line
    records the return, and ``product.stock`` goes back up.  The original
    ``salida`` entries are never touched.

Credit policy (``LedgerSettings.void_credit_policy``):
    latest_lot
        Credit the most recent lot (highest ``fecha, seq``).  A lot is never
        credited above its received ``cantidad``; the remainder spills to
        the next most recent lot.
    original_lots
        Credit exactly the lots recorded in the line's consumption rows.

Failure modes:
    - SaleNotFoundError: unknown sale id.
    - AlreadyVoidedError: sale is already ``anulada``.  Nothing is written,
      so voiding twice leaves the ledger as it was after the first void.
    - InvalidSaleTransitionError: sale is ``devuelta``.
    - InvariantViolationError: the product's lots have no room for the
      returned units.  Fatal; rolled back.

A line whose product has been deleted since the sale is skipped: no lot
credit and no entry, reported with ``skipped=True``.  The sale is still
voided.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select

from ledger_kernel.domain.values import LedgerOperation, SaleStatus, VoidCreditPolicy
from ledger_kernel.exceptions import (
    AlreadyVoidedError,
    InvalidSaleTransitionError,
    InvariantViolationError,
    ProductNotFoundError,
    SaleNotFoundError,
)
from ledger_kernel.invariants import LedgerInvariant
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.sale import Sale, SaleLine
from ledger_kernel.selectors.lot_selector import LotSelector
from ledger_kernel.services.ledger_writer import LedgerWriter
from ledger_services.base import LedgerOrchestrator

logger = get_logger("services.void")


def void_detalles(sale_id: UUID) -> str:
    return f"Devolución por anulación de venta #{sale_id}"


@dataclass(frozen=True)
class LotCredit:
    lot_id: UUID
    quantity: int


@dataclass(frozen=True)
class VoidedLine:
    product_id: UUID
    entry_id: UUID | None
    quantity: int
    stock_anterior: int | None
    stock_nuevo: int | None
    credits: tuple[LotCredit, ...]
    skipped: bool = False


@dataclass(frozen=True)
class VoidResult:
    sale_id: UUID
    status: SaleStatus
    policy: VoidCreditPolicy
    lines: tuple[VoidedLine, ...]


class VoidService(LedgerOrchestrator):
    """Sale voiding with compensating entries."""

    def __init__(self, session, clock=None, settings=None, auto_commit=True):
        super().__init__(session, clock, settings, auto_commit)
        self._writer = LedgerWriter(session, self._clock)
        self._lots = LotSelector(session)

    def void_sale(self, sale_id: UUID) -> VoidResult:
        """Void an active sale in one transaction."""
        policy = self._settings.credit_policy
        return self._run_in_transaction(
            "sale_void",
            lambda: self._void(sale_id, policy),
            context={"sale_id": sale_id},
            policy=policy.value,
        )

    def _void(self, sale_id: UUID, policy: VoidCreditPolicy) -> VoidResult:
        sale = self._session.execute(
            select(Sale)
            .where(Sale.id == sale_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if sale is None:
            raise SaleNotFoundError(str(sale_id))

        status = sale.status
        if status is SaleStatus.ANULADA:
            raise AlreadyVoidedError(str(sale_id))
        if not status.can_transition_to(SaleStatus.ANULADA):
            raise InvalidSaleTransitionError(
                str(sale_id), status.value, SaleStatus.ANULADA.value
            )

        voided = tuple(self._void_line(sale, line, policy) for line in sale.lines)

        sale.estado = SaleStatus.ANULADA.value
        sale.voided_at = self._clock.now()
        self._session.flush()

        logger.info(
            "sale_voided",
            extra={
                "nr_factura": sale.nr_factura,
                "line_count": len(voided),
                "units_returned": sum(v.quantity for v in voided if not v.skipped),
                "skipped_lines": sum(1 for v in voided if v.skipped),
            },
        )
        return VoidResult(
            sale_id=sale.id,
            status=SaleStatus.ANULADA,
            policy=policy,
            lines=voided,
        )

    def _void_line(
        self, sale: Sale, line: SaleLine, policy: VoidCreditPolicy
    ) -> VoidedLine:
        try:
            product = self._writer.lock_product(line.product_id)
        except ProductNotFoundError:
            # deleted at zero stock; nothing left to credit
            logger.warning(
                "void_line_skipped",
                extra={
                    "product_id": str(line.product_id),
                    "quantity": line.cantidad,
                    "reason": "product_deleted",
                },
            )
            return VoidedLine(
                product_id=line.product_id,
                entry_id=None,
                quantity=line.cantidad,
                stock_anterior=None,
                stock_nuevo=None,
                credits=(),
                skipped=True,
            )

        if policy is VoidCreditPolicy.ORIGINAL_LOTS:
            credits = self._credit_original_lots(line)
        else:
            credits = self._credit_latest_lots(line)

        stock_anterior = product.stock
        stock_nuevo = stock_anterior + line.cantidad
        entry = self._writer.append(
            product,
            LedgerOperation.ENTRADA,
            cantidad=line.cantidad,
            stock_anterior=stock_anterior,
            stock_nuevo=stock_nuevo,
            detalles=void_detalles(sale.id),
            sale_id=sale.id,
        )
        product.stock = stock_nuevo
        self._writer.verify_stock_invariant(product)

        return VoidedLine(
            product_id=product.id,
            entry_id=entry.id,
            quantity=line.cantidad,
            stock_anterior=stock_anterior,
            stock_nuevo=stock_nuevo,
            credits=credits,
        )

    def _credit_latest_lots(self, line: SaleLine) -> tuple[LotCredit, ...]:
        remaining = line.cantidad
        credits: list[LotCredit] = []
        for lot in self._lots.list_lots_newest_first(line.product_id):
            if remaining == 0:
                break
            room = lot.cantidad - lot.stock_lote
            if room <= 0:
                continue
            take = min(room, remaining)
            self._writer.credit_lot(lot.lot_id, take)
            credits.append(LotCredit(lot.lot_id, take))
            remaining -= take

        if remaining:
            logger.critical(
                "void_credit_overflow",
                extra={
                    "product_id": str(line.product_id),
                    "quantity": line.cantidad,
                    "uncredited": remaining,
                },
            )
            raise InvariantViolationError(
                LedgerInvariant.LOT_BOUNDS.value,
                str(line.product_id),
                expected=line.cantidad,
                actual=line.cantidad - remaining,
            )
        return tuple(credits)

    def _credit_original_lots(self, line: SaleLine) -> tuple[LotCredit, ...]:
        credits = []
        for lot_id, quantity in self._lots.consumptions_for_entry(line.salida_entry_id):
            self._writer.credit_lot(lot_id, quantity)
            credits.append(LotCredit(lot_id, quantity))
        return tuple(credits)
