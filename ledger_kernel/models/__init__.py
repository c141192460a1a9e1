"""Domain models for the lot ledger."""

from ledger_kernel.models.ledger_entry import LotConsumption, LotLedgerEntry
from ledger_kernel.models.product import Product
from ledger_kernel.models.sale import Sale, SaleLine

__all__ = [
    "LotConsumption",
    "LotLedgerEntry",
    "Product",
    "Sale",
    "SaleLine",
    "import_all_models",
]


def import_all_models() -> None:
    """Import every module that declares tables so Base.metadata is complete.

    Idempotent.
    """
    import ledger_kernel.services.sequence_service  # noqa: F401
