"""
ledger_services.base -- transaction boundary shared by the ledger services.

Responsibility:
    Owns commit/rollback for one service call.  Each public operation of
    InventoryService, SaleService and VoidService runs through
    ``_run_in_transaction()``, which binds a correlation id, brackets the
    call with ``<operation>_started`` / ``<operation>_completed`` logs, and
    commits or rolls back.

Architecture position:
    Services -- stateful orchestration over engines + kernel.  Kernel
    services below only flush.

Failure modes:
    - LotLedgerError: the request was rejected (bad input, missing row,
      stale plan, state conflict).  Rolled back, logged at WARNING as
      ``<operation>_rejected``, re-raised.
    - InvariantViolationError, ImmutabilityError and any other exception: rolled back, logged at ERROR with traceback as
      ``<operation>_failed``, re-raised.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any, TypeVar
from uuid import uuid4

from sqlalchemy.orm import Session

from ledger_config.settings import LedgerSettings
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.exceptions import (
    ImmutabilityError,
    InvariantViolationError,
    LotLedgerError,
)
from ledger_kernel.logging_config import LogContext, get_logger

logger = get_logger("services.orchestrator")

T = TypeVar("T")

# Defects rather than rejected requests; logged as failures
_FATAL_ERRORS = (InvariantViolationError, ImmutabilityError)


class LedgerOrchestrator:
    """
    Base for services that own a transaction.

    Args:
        session: SQLAlchemy session; committed or rolled back per call
            when ``auto_commit`` is True.
        clock: Time source for entry timestamps.
        settings: Ledger tunables (retry bound, void policy).
        auto_commit: When False the caller owns the transaction and the
            service only flushes.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        settings: LedgerSettings | None = None,
        auto_commit: bool = True,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._settings = settings or LedgerSettings.with_defaults()
        self._auto_commit = auto_commit

    @property
    def session(self) -> Session:
        return self._session

    @property
    def settings(self) -> LedgerSettings:
        return self._settings

    def _run_in_transaction(
        self,
        operation: str,
        fn: Callable[[], T],
        context: dict[str, Any] | None = None,
        **extra: Any,
    ) -> T:
        """Run ``fn`` as one unit of work and commit or roll back."""
        with LogContext.bind(correlation_id=str(uuid4()), **(context or {})):
            logger.info(f"{operation}_started", extra=_stringify(extra))
            t0 = time.monotonic()

            try:
                result = fn()

                if self._auto_commit:
                    self._session.commit()

                duration_ms = round((time.monotonic() - t0) * 1000, 2)
                logger.info(
                    f"{operation}_completed",
                    extra={"duration_ms": duration_ms},
                )
                return result

            except LotLedgerError as exc:
                if isinstance(exc, _FATAL_ERRORS):
                    self._fail(operation, t0)
                    raise
                duration_ms = round((time.monotonic() - t0) * 1000, 2)
                self._rollback()
                logger.warning(
                    f"{operation}_rejected",
                    extra={
                        "error_code": exc.code,
                        "error": str(exc),
                        "duration_ms": duration_ms,
                    },
                )
                raise

            except Exception:
                self._fail(operation, t0)
                raise

    def _fail(self, operation: str, t0: float) -> None:
        duration_ms = round((time.monotonic() - t0) * 1000, 2)
        self._rollback()
        logger.error(
            f"{operation}_failed",
            extra={"duration_ms": duration_ms},
            exc_info=True,
        )

    def _rollback(self) -> None:
        if self._auto_commit:
            self._session.rollback()


def _stringify(extra: dict[str, Any]) -> dict[str, Any]:
    return {
        key: value if isinstance(value, (int, bool)) or value is None else str(value)
        for key, value in extra.items()
    }
