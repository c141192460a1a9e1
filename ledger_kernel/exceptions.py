"""
Typed Exception Hierarchy for the Lot Ledger.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the ledger (a web layer, a batch job, a test) must react to
failures precisely: a short lot is reported back to the clerk, a concurrent
interleaving is retried, a broken invariant halts the operation.  Parsing
message strings for that is fragile, so every failure mode has:

  1. A TYPED exception class (catch by type, not message)
  2. A CODE class attribute (machine-readable, API-safe)
  3. Structured ATTRIBUTES (product id, requested, available, ...)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from LotLedgerError:

    LotLedgerError (base)
    |
    +-- ValidationError
    |   +-- DuplicateProductCodeError
    |   +-- DuplicateInvoiceError
    |   +-- ProductHasStockError
    |
    +-- NotFoundError
    |   +-- ProductNotFoundError
    |   +-- LotNotFoundError
    |   +-- SaleNotFoundError
    |
    +-- InsufficientStockError
    |
    +-- ConcurrencyError
    |   +-- ConcurrentModificationError
    |
    +-- SaleStateError
    |   +-- AlreadyVoidedError
    |   +-- InvalidSaleTransitionError
    |
    +-- InvariantViolationError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Validation      | VALIDATION_ERROR            | Bad input (qty <= 0, negative price)
                | DUPLICATE_PRODUCT_CODE      | Product code already registered
                | DUPLICATE_INVOICE           | Invoice number already used
                | PRODUCT_HAS_STOCK           | Deleting a product with stock > 0
----------------|-----------------------------|-----------------------------------------
Not found       | PRODUCT_NOT_FOUND           | Unknown product id
                | LOT_NOT_FOUND               | Lot id missing or not a lot
                | SALE_NOT_FOUND              | Unknown sale id
----------------|-----------------------------|-----------------------------------------
Stock           | INSUFFICIENT_STOCK          | Requested > sum of open lots
----------------|-----------------------------|-----------------------------------------
Concurrency     | CONCURRENT_MODIFICATION     | A lot changed between plan and commit
----------------|-----------------------------|-----------------------------------------
Sale state      | ALREADY_VOIDED              | Voiding an anulada sale
                | INVALID_SALE_TRANSITION     | Transition not allowed from status
----------------|-----------------------------|-----------------------------------------
Invariant       | INVARIANT_VIOLATION         | stock != sum(stock_lote) before commit
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | Editing or deleting a ledger entry

===============================================================================
HANDLING PATTERNS
===============================================================================

1. RETRY ONLY WHAT IS RETRYABLE:

    try:
        receipt = sale_service.register_sale(...)
    except ConcurrentModificationError:
        # safe to re-plan against fresh state
        ...

   ``is_retryable(exc)`` answers this without listing classes.

2. INVARIANT VIOLATIONS ARE FATAL:

    except InvariantViolationError as e:
        alert_operator(e.product_id, e.expected, e.actual)
        # nothing was committed; do not retry blindly

===============================================================================
"""

from decimal import Decimal
from typing import Any


class LotLedgerError(Exception):
    """
    Base exception for all lot ledger errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "LOT_LEDGER_ERROR"
    retryable: bool = False


# Validation


class ValidationError(LotLedgerError):
    """Input rejected before any write happened."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, field_errors: list[dict[str, Any]] | None = None):
        self.field_errors = field_errors or []
        super().__init__(message)

    @classmethod
    def for_field(cls, field: str, message: str, value: Any = None) -> "ValidationError":
        return cls(
            f"{field}: {message}",
            field_errors=[{"field": field, "message": message, "value": value}],
        )


class DuplicateProductCodeError(ValidationError):
    """A product with this code already exists."""

    code: str = "DUPLICATE_PRODUCT_CODE"

    def __init__(self, codigo: str):
        self.codigo = codigo
        super().__init__(
            f"Product code already registered: {codigo}",
            field_errors=[{"field": "codigo", "message": "duplicate", "value": codigo}],
        )


class DuplicateInvoiceError(ValidationError):
    """A sale with this invoice number already exists."""

    code: str = "DUPLICATE_INVOICE"

    def __init__(self, nr_factura: str):
        self.nr_factura = nr_factura
        super().__init__(
            f"Invoice number already used: {nr_factura}",
            field_errors=[{"field": "nr_factura", "message": "duplicate", "value": nr_factura}],
        )


class ProductHasStockError(ValidationError):
    """Products can only be deleted once their stock is zero."""

    code: str = "PRODUCT_HAS_STOCK"

    def __init__(self, product_id: str, stock: int):
        self.product_id = product_id
        self.stock = stock
        super().__init__(
            f"Product {product_id} still has {stock} units in stock",
            field_errors=[{"field": "stock", "message": "must be zero", "value": stock}],
        )


# Not found


class NotFoundError(LotLedgerError):
    """Base exception for missing entities."""

    code: str = "NOT_FOUND"


class ProductNotFoundError(NotFoundError):
    """Product with given ID was not found."""

    code: str = "PRODUCT_NOT_FOUND"

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")


class LotNotFoundError(NotFoundError):
    """Lot with given ID was not found, or the entry is not a lot."""

    code: str = "LOT_NOT_FOUND"

    def __init__(self, lot_id: str):
        self.lot_id = lot_id
        super().__init__(f"Lot not found: {lot_id}")


class SaleNotFoundError(NotFoundError):
    """Sale with given ID was not found."""

    code: str = "SALE_NOT_FOUND"

    def __init__(self, sale_id: str):
        self.sale_id = sale_id
        super().__init__(f"Sale not found: {sale_id}")


# Stock


class InsufficientStockError(LotLedgerError):
    """Open lots cannot cover the requested quantity."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(self, product_id: str, requested: int, available: int):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for product {product_id}: "
            f"requested {requested}, available {available}"
        )


# Concurrency


class ConcurrencyError(LotLedgerError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"
    retryable: bool = True


class ConcurrentModificationError(ConcurrencyError):
    """A lot or product changed between planning and commit."""

    code: str = "CONCURRENT_MODIFICATION"

    def __init__(self, entity_type: str, entity_id: str, detail: str | None = None):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.detail = detail
        message = (
            f"Concurrent modification on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


# Sale state


class SaleStateError(LotLedgerError):
    """Base exception for sale status errors."""

    code: str = "SALE_STATE_ERROR"


class AlreadyVoidedError(SaleStateError):
    """Sale has already been voided."""

    code: str = "ALREADY_VOIDED"

    def __init__(self, sale_id: str):
        self.sale_id = sale_id
        super().__init__(f"Sale {sale_id} has already been voided")


class InvalidSaleTransitionError(SaleStateError):
    """Requested status change is not allowed from the current status."""

    code: str = "INVALID_SALE_TRANSITION"

    def __init__(self, sale_id: str, from_status: str, to_status: str):
        self.sale_id = sale_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Sale {sale_id} cannot move from '{from_status}' to '{to_status}'"
        )


# Invariant


class InvariantViolationError(LotLedgerError):
    """
    A ledger invariant failed inside the transaction.

    Raised before commit, so nothing reaches the database.  Indicates a
    defect rather than a user error.
    """

    code: str = "INVARIANT_VIOLATION"

    def __init__(
        self,
        invariant: str,
        product_id: str,
        expected: int | Decimal,
        actual: int | Decimal,
    ):
        self.invariant = invariant
        self.product_id = product_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Invariant {invariant} violated for product {product_id}: "
            f"expected {expected}, actual {actual}"
        )


# Immutability


class ImmutabilityError(LotLedgerError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an append-only ledger record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


def is_retryable(exc: BaseException) -> bool:
    """True when re-planning against fresh state may succeed."""
    return isinstance(exc, LotLedgerError) and exc.retryable
