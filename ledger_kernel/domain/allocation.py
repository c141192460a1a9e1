"""
Allocation -- the plan a sale hands to the commit boundary.

Responsibility:
    Immutable description of which lots a sale will draw from, how many
    units from each, and the resulting cost and profit.  Produced by the
    FIFO engine from a possibly stale snapshot; consumed by SaleCommitter,
    which re-validates every step against the live rows.

Architecture position:
    Kernel > Domain -- pure, zero I/O.

Invariants enforced:
    - Step quantities are positive and sum to ``requested_quantity``.
    - total_cost and profit are rounded to cents.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from ledger_kernel.db.types import round_money


@dataclass(frozen=True, slots=True)
class LotAllocation:
    """Units taken from one lot at that lot's landed unit cost."""

    lot_id: UUID
    quantity: int
    unit_cost: Decimal
    fecha: datetime
    seq: int

    def __post_init__(self) -> None:
        if self.quantity <= 0:
            raise ValueError(f"Allocation quantity must be positive: {self.quantity}")

    @property
    def cost(self) -> Decimal:
        return self.unit_cost * self.quantity


@dataclass(frozen=True, slots=True)
class AllocationPlan:
    """
    FIFO plan for one product line.

    Guarantees:
        - ``sum(a.quantity for a in allocations) == requested_quantity``.
        - allocations are in FIFO order.
    """

    product_id: UUID
    requested_quantity: int
    unit_price: Decimal
    allocations: tuple[LotAllocation, ...]
    total_cost: Decimal
    profit: Decimal
    # Timestamp of the movement this plan is for; stamps the outgoing entry
    as_of: datetime | None = None

    def __post_init__(self) -> None:
        allocated = sum(a.quantity for a in self.allocations)
        if allocated != self.requested_quantity:
            raise ValueError(
                f"Allocations sum to {allocated}, "
                f"requested {self.requested_quantity}"
            )

    @property
    def lot_count(self) -> int:
        return len(self.allocations)

    @property
    def weighted_unit_cost(self) -> Decimal:
        """Average landed cost per unit sold, rounded to cents."""
        return round_money(self.total_cost / self.requested_quantity)

    @property
    def revenue(self) -> Decimal:
        return round_money(self.unit_price * self.requested_quantity)
