"""
SaleCommitter -- the transactional commit boundary for lot consumption.

Responsibility:
    Turns an AllocationPlan (computed from a possibly stale snapshot) into
    durable writes: guarded lot decrements, one aggregate outgoing entry,
    its per-lot consumption rows, and the product's new stock.

Architecture position:
    Kernel > Services -- imperative shell.  Called by SaleService for sales
    and by InventoryService for downward stock adjustments.

Invariants enforced:
    STOCK_EQUALS_LOT_SUM -- verified after the writes, before returning.
    SALIDA_MATCHES_CONSUMPTION -- the entry's cantidad is the plan's
        requested quantity, which the plan guarantees equals the sum of
        its steps; one consumption row is written per step.
    LOT_BOUNDS -- via LedgerWriter.decrement_lot().

Failure modes:
    - ConcurrentModificationError: a lot or the product counter moved since
      planning.  Retryable after rollback.
    - InvariantViolationError: fatal; the caller rolls back.
    - ProductNotFoundError: the product was deleted since planning.

Audit relevance:
    commit_started / commit_completed bracket every commit with timing.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from ledger_kernel.domain.allocation import AllocationPlan, LotAllocation
from ledger_kernel.domain.values import LedgerOperation
from ledger_kernel.exceptions import ConcurrentModificationError
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.ledger_writer import LedgerWriter

logger = get_logger("services.sale_commit")


def sale_detalles(sale_id: UUID, lot_count: int) -> str:
    return f"Venta #{sale_id} - Descuento de {lot_count} lotes"


@dataclass(frozen=True, slots=True)
class CommittedConsumption:
    """Outcome of a committed plan."""

    product_id: UUID
    entry_id: UUID
    operacion: LedgerOperation
    quantity: int
    stock_anterior: int
    stock_nuevo: int
    total_cost: Decimal
    profit: Decimal
    allocations: tuple[LotAllocation, ...]
    sale_id: UUID | None = None


class SaleCommitter(BaseService):
    """
    Applies allocation plans atomically within the caller's transaction.

    Contract:
        Re-reads the product under a row lock and re-validates every lot
        step with a conditional UPDATE.  Flushes only.

    Non-goals:
        - Does not plan.  A stale plan is rejected, never repaired.
        - Does not retry.  SaleService owns the retry loop.
    """

    def __init__(self, session, clock=None):
        super().__init__(session, clock)
        self._writer = LedgerWriter(session, self.clock)

    def commit_sale(self, plan: AllocationPlan, sale_id: UUID) -> CommittedConsumption:
        """Commit a sale line: one ``salida`` entry referencing the sale."""
        return self.commit_consumption(
            plan,
            operacion=LedgerOperation.SALIDA,
            detalles=sale_detalles(sale_id, plan.lot_count),
            sale_id=sale_id,
        )

    def commit_consumption(
        self,
        plan: AllocationPlan,
        operacion: LedgerOperation,
        detalles: str,
        sale_id: UUID | None = None,
    ) -> CommittedConsumption:
        """
        Apply ``plan`` and write one ``operacion`` entry for it.

        Preconditions:
            - ``operacion`` is SALIDA or AJUSTE.
        Postconditions:
            - Every planned lot is decremented by its step quantity.
            - product.stock decreased by ``plan.requested_quantity``.
            - The stock invariant holds.
        """
        if operacion not in (LedgerOperation.SALIDA, LedgerOperation.AJUSTE):
            raise ValueError(f"{operacion.value} does not consume lots")

        t0 = time.monotonic()
        with LogContext.bind(product_id=plan.product_id, sale_id=sale_id):
            logger.info(
                "commit_started",
                extra={
                    "operacion": operacion.value,
                    "quantity": plan.requested_quantity,
                    "lot_count": plan.lot_count,
                },
            )

            product = self._writer.lock_product(plan.product_id)
            stock_anterior = product.stock
            stock_nuevo = stock_anterior - plan.requested_quantity
            if stock_nuevo < 0:
                logger.warning(
                    "commit_stock_conflict",
                    extra={
                        "stock": stock_anterior,
                        "quantity": plan.requested_quantity,
                    },
                )
                raise ConcurrentModificationError(
                    "Product",
                    str(product.id),
                    f"stock {stock_anterior} below planned {plan.requested_quantity}",
                )

            for step in plan.allocations:
                self._writer.decrement_lot(step.lot_id, step.quantity)

            entry = self._writer.append(
                product,
                operacion,
                cantidad=plan.requested_quantity,
                stock_anterior=stock_anterior,
                stock_nuevo=stock_nuevo,
                detalles=detalles,
                sale_id=sale_id,
                fecha=plan.as_of,
            )
            self._writer.record_consumptions(entry, plan.allocations)

            product.stock = stock_nuevo
            self._writer.verify_stock_invariant(product)

            duration_ms = round((time.monotonic() - t0) * 1000, 2)
            logger.info(
                "commit_completed",
                extra={
                    "entry_id": str(entry.id),
                    "stock_anterior": stock_anterior,
                    "stock_nuevo": stock_nuevo,
                    "total_cost": str(plan.total_cost),
                    "duration_ms": duration_ms,
                },
            )

        return CommittedConsumption(
            product_id=product.id,
            entry_id=entry.id,
            operacion=operacion,
            quantity=plan.requested_quantity,
            stock_anterior=stock_anterior,
            stock_nuevo=stock_nuevo,
            total_cost=plan.total_cost,
            profit=plan.profit,
            allocations=plan.allocations,
            sale_id=sale_id,
        )
