"""Read-only query selectors."""

from ledger_kernel.selectors.history_selector import HistoryPage, HistorySelector
from ledger_kernel.selectors.lot_selector import LotSelector, LotSnapshot
from ledger_kernel.selectors.product_selector import ProductPage, ProductSelector

__all__ = [
    "HistoryPage",
    "HistorySelector",
    "LotSelector",
    "LotSnapshot",
    "ProductPage",
    "ProductSelector",
]
