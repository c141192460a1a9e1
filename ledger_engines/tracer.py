"""
ledger_engines.tracer -- one LEDGER_ENGINE_TRACE record per engine call.

Responsibility:
    ``@traced_engine`` wraps a costing function and logs which engine ran,
    a fingerprint of the inputs that decide its result, how long it took,
    and whether it produced a plan or rejected the request.  Two calls with
    the same fingerprint must produce the same plan, so the fingerprint is
    what to compare when two costings of "the same sale" disagree.

Architecture position:
    Engines.  Logging is the only side effect.

Fingerprints:
    SHA-256 over the named keyword arguments, truncated to 16 hex chars.
    Lot snapshots contribute their id, fifo key, balance and cost; Decimal
    values are normalized so ``10`` and ``10.00`` hash alike.

Usage:
    @traced_engine("fifo", "1.0", fingerprint_fields=("requested_quantity",))
    def plan_fifo_allocation(*, lots, requested_quantity, unit_price): ...
"""

from __future__ import annotations

import functools
import hashlib
import time
from collections.abc import Callable
from dataclasses import fields, is_dataclass
from decimal import Decimal
from typing import Any

from ledger_kernel.exceptions import LotLedgerError
from ledger_kernel.logging_config import get_logger

_logger = get_logger("engines.tracer")

TRACE_TYPE = "LEDGER_ENGINE_TRACE"


def _token(value: Any) -> str:
    if value is None:
        return "~"
    if isinstance(value, Decimal):
        return format(value.normalize(), "f")
    if is_dataclass(value) and not isinstance(value, type):
        return _token({f.name: getattr(value, f.name) for f in fields(value)})
    if isinstance(value, dict):
        return "{" + ";".join(f"{k}={_token(value[k])}" for k in sorted(value)) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ";".join(_token(v) for v in value) + "]"
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


def fingerprint(names: tuple[str, ...], kwargs: dict[str, Any]) -> str:
    """16-char digest of the named kwargs; absent ones hash as ``~``."""
    material = "|".join(f"{name}:{_token(kwargs.get(name))}" for name in names)
    return hashlib.sha256(material.encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    """Log a trace record around every call of the decorated engine."""

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            record = {
                "trace_type": TRACE_TYPE,
                "engine_name": engine_name,
                "engine_version": engine_version,
                "input_fingerprint": fingerprint(fingerprint_fields, kwargs),
                "outcome": "failed",
            }
            t0 = time.monotonic()
            try:
                result = func(*args, **kwargs)
            except LotLedgerError as exc:
                record["outcome"] = "rejected"
                record["error_code"] = exc.code
                raise
            else:
                record["outcome"] = "planned"
                return result
            finally:
                record["duration_ms"] = round((time.monotonic() - t0) * 1000, 2)
                _logger.info(TRACE_TYPE, extra=record)

        return wrapper

    return decorator
