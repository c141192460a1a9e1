"""
Restock cost recalculation -- pure weighted-average and landed-cost math.

Responsibility:
    Given a product's current cost state and an incoming batch, compute the
    new weighted-average unit cost and the landed unit cost of the new lot.

Architecture position:
    Engines -- pure calculation, zero I/O.  InventoryService applies the
    result and appends the lot entry.

Formulas:
    new_unit_cost = (unit_cost * cantidad + incoming_cost * incoming_qty)
                    / (cantidad + incoming_qty)
    landed        = (incoming_cost * incoming_qty + acarreo + flete)
                    / incoming_qty

    ``cantidad`` is cumulative units ever received, not current stock.
    Freight is a flat amount for the batch, spread over the incoming units
    only; earlier lots keep their cost.

Numeric policy:
    Each persisted result is rounded to cents with ROUND_HALF_UP.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from ledger_engines.fifo import validate_amount, validate_quantity
from ledger_engines.tracer import traced_engine
from ledger_kernel.db.types import ZERO, round_money
from ledger_kernel.exceptions import ValidationError


@dataclass(frozen=True, slots=True)
class RestockCosting:
    """Cost fields after receiving a batch."""

    new_unit_cost: Decimal
    new_landed_cost: Decimal
    new_cantidad: int


def weighted_average_cost(
    current_unit_cost: Decimal,
    current_quantity: int,
    incoming_unit_cost: Decimal,
    incoming_quantity: int,
) -> Decimal:
    total_quantity = current_quantity + incoming_quantity
    if total_quantity <= 0:
        raise ValidationError.for_field(
            "cantidad", "combined quantity must be positive", total_quantity
        )
    combined = current_unit_cost * current_quantity + incoming_unit_cost * incoming_quantity
    return round_money(combined / total_quantity)


def landed_unit_cost(
    unit_cost: Decimal,
    quantity: int,
    acarreo: Decimal = ZERO,
    flete: Decimal = ZERO,
) -> Decimal:
    quantity = validate_quantity(quantity)
    return round_money((unit_cost * quantity + acarreo + flete) / quantity)


@traced_engine(
    "restock",
    "1.0",
    fingerprint_fields=(
        "current_unit_cost",
        "current_quantity",
        "incoming_quantity",
        "incoming_unit_cost",
        "acarreo",
        "flete",
    ),
)
def compute_restock_costing(
    *,
    current_unit_cost: Decimal,
    current_quantity: int,
    incoming_quantity: int,
    incoming_unit_cost: Decimal,
    acarreo: Decimal = ZERO,
    flete: Decimal = ZERO,
) -> RestockCosting:
    incoming_quantity = validate_quantity(incoming_quantity, "incoming_quantity")
    incoming_unit_cost = validate_amount(incoming_unit_cost, "incoming_unit_cost")
    acarreo = validate_amount(acarreo, "acarreo")
    flete = validate_amount(flete, "flete")
    if current_quantity < 0:
        raise ValidationError.for_field(
            "current_quantity", "must not be negative", current_quantity
        )

    return RestockCosting(
        new_unit_cost=weighted_average_cost(
            current_unit_cost, current_quantity, incoming_unit_cost, incoming_quantity
        ),
        new_landed_cost=landed_unit_cost(
            incoming_unit_cost, incoming_quantity, acarreo, flete
        ),
        new_cantidad=current_quantity + incoming_quantity,
    )
