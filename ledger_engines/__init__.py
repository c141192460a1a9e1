"""
Module: ledger_engines
Responsibility:
    Pure calculation engines for the lot ledger: FIFO allocation planning
    and restock cost recalculation.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import ledger_kernel domain values, types, exceptions and
    logging.  MUST NOT import ledger_services or ledger_config.

Invariants enforced:
    - Purity: engines never read the clock or the database.  Timestamps
      and lot snapshots are passed in.
    - Decimal-only arithmetic: floats are rejected at the boundary.
    - Determinism: identical inputs always produce identical outputs.

Audit relevance:
    Every engine invocation emits a LEDGER_ENGINE_TRACE log record (see
    ``ledger_engines.tracer``).
"""

from ledger_engines.fifo import plan_fifo_allocation
from ledger_engines.restock import (
    RestockCosting,
    compute_restock_costing,
    landed_unit_cost,
    weighted_average_cost,
)

__all__ = [
    "RestockCosting",
    "compute_restock_costing",
    "landed_unit_cost",
    "plan_fifo_allocation",
    "weighted_average_cost",
]
