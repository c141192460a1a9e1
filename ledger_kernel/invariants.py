"""
Ledger Invariants Contract.

These invariants are structural law for the lot ledger. No setting in
``ledger_config`` may switch them off.

This module only declares them. Enforcement is spread across
SaleCommitter, InventoryService, VoidService, the immutability listeners
and LedgerAuditor.
"""

from enum import Enum, unique


@unique
class LedgerInvariant(str, Enum):
    """Non-configurable invariants enforced by the kernel."""

    STOCK_EQUALS_LOT_SUM = "stock_equals_lot_sum"
    """``product.stock`` equals the sum of ``stock_lote`` over the
    product's lot entries. Re-checked inside every write transaction
    before commit."""

    LOT_BOUNDS = "lot_bounds"
    """``0 <= stock_lote <= cantidad`` for every lot entry. Enforced by
    guarded UPDATE statements and DB check constraints."""

    SALIDA_MATCHES_CONSUMPTION = "salida_matches_consumption"
    """A ``salida`` entry's ``cantidad`` equals the sum of the lot
    consumptions recorded with it."""

    APPEND_ONLY = "append_only"
    """Ledger entries are never deleted; only ``stock_lote`` of a lot
    entry may change. Enforced by ledger_kernel.db.immutability."""

    FIFO_ORDER = "fifo_order"
    """Sales consume lots oldest first by ``(fecha, seq)``."""

    SEQUENCE_MONOTONICITY = "sequence_monotonicity"
    """Ledger entry ``seq`` values are strictly monotonic. Enforced by
    SequenceService, which bumps one counter row in place."""


ALL_LEDGER_INVARIANTS: frozenset[LedgerInvariant] = frozenset(LedgerInvariant)

# The kernel package may not import from these packages.
# Enforced by tests/architecture/test_kernel_boundary.py.
FORBIDDEN_KERNEL_IMPORTS: tuple[str, ...] = (
    "ledger_services",
    "ledger_config",
)
