"""
Ledger Kernel - inventory lot ledger core

Persistence, invariants and the commit boundary for:
- Products with a live stock counter
- Cost lots and the append-only movement ledger
- Sales with FIFO lot consumption
- Void compensation
"""

__version__ = "0.1.0"
