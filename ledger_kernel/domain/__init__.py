"""Pure domain values for the lot ledger (no I/O)."""
