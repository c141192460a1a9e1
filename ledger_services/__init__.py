"""
ledger_services -- transactional services over the lot ledger kernel.

Each service owns one transaction per public call: InventoryService for
the product lifecycle and restocking, SaleService for FIFO allocation and
sale registration, VoidService for reversals.
"""

from ledger_services.base import LedgerOrchestrator
from ledger_services.inventory_service import (
    AdjustmentResult,
    InventoryService,
    RestockResult,
)
from ledger_services.sale_service import (
    SaleLineReceipt,
    SaleLineRequest,
    SaleReceipt,
    SaleService,
)
from ledger_services.void_service import LotCredit, VoidedLine, VoidResult, VoidService

__all__ = [
    "AdjustmentResult",
    "InventoryService",
    "LedgerOrchestrator",
    "LotCredit",
    "RestockResult",
    "SaleLineReceipt",
    "SaleLineRequest",
    "SaleReceipt",
    "SaleService",
    "VoidResult",
    "VoidService",
    "VoidedLine",
]
