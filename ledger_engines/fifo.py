"""
FIFO lot allocation -- pure planning over a lot snapshot.

Responsibility:
    Decide which lots a sale draws from, oldest first, and price the
    result.  Takes lot snapshots as arguments; never reads the database.

Architecture position:
    Engines -- pure calculation, zero I/O.  Called by SaleService and
    InventoryService; the plan it returns is applied by SaleCommitter.

Invariants enforced:
    FIFO_ORDER -- lots are consumed in (fecha, seq) order.
    Allocation quantities sum exactly to the requested quantity.

Failure modes:
    - ValidationError: quantity not a positive int, negative price, or a
      naive timestamp.
    - InsufficientStockError: open lots cannot cover the request.  Carries
      the available total.

Numeric policy:
    Costs are summed in Decimal.  total_cost and profit are rounded to
    cents once, at the end.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from ledger_engines.tracer import traced_engine
from ledger_kernel.db.types import ZERO, round_money, to_money
from ledger_kernel.domain.allocation import AllocationPlan, LotAllocation
from ledger_kernel.domain.values import LotSnapshot
from ledger_kernel.exceptions import InsufficientStockError, ValidationError
from ledger_kernel.logging_config import get_logger

logger = get_logger("engines.fifo")


def validate_quantity(value, field: str = "cantidad") -> int:
    """Positive int (bools rejected)."""
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError.for_field(field, "must be a positive integer", value)
    return value


def validate_amount(value, field: str) -> Decimal:
    """Non-negative Decimal from caller input."""
    try:
        amount = to_money(value, field)
    except (TypeError, ValueError) as exc:
        raise ValidationError.for_field(field, str(exc), repr(value)) from exc
    if amount < ZERO:
        raise ValidationError.for_field(field, "must not be negative", str(amount))
    return amount


def validate_timestamp(value, field: str) -> datetime | None:
    """None, or a timezone-aware datetime."""
    if value is None:
        return None
    if not isinstance(value, datetime):
        raise ValidationError.for_field(field, "must be a datetime", repr(value))
    if value.tzinfo is None or value.utcoffset() is None:
        raise ValidationError.for_field(field, "must be timezone-aware", value.isoformat())
    return value


@traced_engine(
    "fifo",
    "1.0",
    fingerprint_fields=("product_id", "requested_quantity", "unit_price", "lots"),
)
def plan_fifo_allocation(
    *,
    product_id: UUID,
    lots: Sequence[LotSnapshot],
    requested_quantity: int,
    unit_price: Decimal,
    as_of: datetime | None = None,
) -> AllocationPlan:
    """
    Plan consumption of ``requested_quantity`` units from ``lots``.

    ``lots`` may arrive in any order and may include empty lots; both are
    normalized here.  The snapshot may be stale; SaleCommitter re-checks.

    Returns:
        AllocationPlan whose steps sum to ``requested_quantity``.
    """
    requested_quantity = validate_quantity(requested_quantity)
    unit_price = validate_amount(unit_price, "unit_price")
    as_of = validate_timestamp(as_of, "as_of")

    foreign = [lot.lot_id for lot in lots if lot.product_id != product_id]
    if foreign:
        raise ValueError(f"Lots {foreign} do not belong to product {product_id}")

    open_lots = sorted(
        (lot for lot in lots if lot.stock_lote > 0),
        key=lambda lot: lot.fifo_key,
    )
    available = sum(lot.stock_lote for lot in open_lots)
    if available < requested_quantity:
        logger.warning(
            "fifo_insufficient_stock",
            extra={
                "product_id": str(product_id),
                "requested": requested_quantity,
                "available": available,
            },
        )
        raise InsufficientStockError(str(product_id), requested_quantity, available)

    steps: list[LotAllocation] = []
    remaining = requested_quantity
    cost = ZERO
    for lot in open_lots:
        if remaining == 0:
            break
        take = min(lot.stock_lote, remaining)
        steps.append(
            LotAllocation(
                lot_id=lot.lot_id,
                quantity=take,
                unit_cost=lot.costo_final,
                fecha=lot.fecha,
                seq=lot.seq,
            )
        )
        cost += lot.costo_final * take
        remaining -= take

    total_cost = round_money(cost)
    profit = round_money(unit_price * requested_quantity - total_cost)

    logger.debug(
        "fifo_allocation_planned",
        extra={
            "product_id": str(product_id),
            "requested": requested_quantity,
            "lot_count": len(steps),
            "total_cost": str(total_cost),
            "profit": str(profit),
        },
    )

    return AllocationPlan(
        product_id=product_id,
        requested_quantity=requested_quantity,
        unit_price=unit_price,
        allocations=tuple(steps),
        total_cost=total_cost,
        profit=profit,
        as_of=as_of,
    )
