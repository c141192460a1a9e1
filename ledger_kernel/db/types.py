"""
Module: ledger_kernel.db.types
Responsibility: Portable column types (UUIDs, UTC timestamps) and the
    money helpers every layer shares.  Models, engines and services agree
    here on what a stored id, timestamp or amount looks like.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, selectors/ and ledger_engines.  MUST NOT import from any of
    those layers.

Invariants enforced:
    - MONEY_DECIMAL_PLACES (2) is the canonical stored precision.
    - round_money() is the ONLY sanctioned rounding function for amounts
      that are persisted or returned to callers.
    - No floats: to_money() refuses binary floats so that 0.1 never turns
      into 0.1000000000000000055511151231257827.

Failure modes:
    - ValueError on non-numeric input to to_money().
    - TypeError on float input to to_money().
"""

from datetime import UTC
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any
from uuid import UUID

from sqlalchemy import DateTime, String
from sqlalchemy.types import TypeDecorator

MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0")


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to the stored precision.

    Every value written to a Money column, and every amount handed back to
    a caller, passes through here exactly once at the step that produces it.
    """
    quantize_str = "0." + "0" * decimal_places if decimal_places else "1"
    return value.quantize(Decimal(quantize_str), rounding=rounding)


def to_money(value: Any, field: str = "amount") -> Decimal:
    """
    Coerce caller input (Decimal, int or numeric string) into Decimal.

    Not rounded; callers decide when rounding happens.

    Raises:
        TypeError: value is a float or an unsupported type.
        ValueError: value is not a finite number.
    """
    if isinstance(value, bool):
        raise TypeError(f"{field}: bool is not a monetary amount")
    if isinstance(value, float):
        raise TypeError(f"{field}: pass Decimal or str, not float ({value!r})")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, str)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation as exc:
            raise ValueError(f"{field}: not a number: {value!r}") from exc
    else:
        raise TypeError(f"{field}: unsupported type {type(value).__name__}")
    if not result.is_finite():
        raise ValueError(f"{field}: not a finite number: {value!r}")
    return result


class UUIDString(TypeDecorator):
    """UUID kept as its 36-char string form so SQLite and PostgreSQL store it alike."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else UUID(value)


class UTCDateTime(TypeDecorator):
    """
    Aware timestamp, always UTC.

    SQLite stores no offset, so values are shifted to UTC on the way in and
    tagged UTC on the way out.  Naive datetimes are refused: a ``fecha``
    with no zone cannot be placed in FIFO order.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError(f"Naive datetime not allowed: {value!r}")
        return value.astimezone(UTC)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)
