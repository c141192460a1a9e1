"""
Clock -- the time source for ledger entry timestamps.

Responsibility:
    Every ``fecha`` written to the ledger comes from a Clock passed into the
    service, never from ``datetime.now()``.  FIFO order is decided by
    ``(fecha, seq)``, so tests pin time with DeterministicClock to make
    lot order exact.

Architecture position:
    Kernel > Domain.  SystemClock is the only place that reads the wall
    clock.
"""

from abc import ABC, abstractmethod
from datetime import UTC, datetime, timedelta

DEFAULT_START = datetime(2024, 1, 1, 12, 0, 0, tzinfo=UTC)


def _require_aware(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        raise ValueError(f"Ledger timestamps must be timezone-aware: {moment!r}")
    return moment.astimezone(UTC)


class Clock(ABC):
    """Source of timezone-aware UTC timestamps."""

    @abstractmethod
    def now(self) -> datetime:
        ...


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(UTC)


class DeterministicClock(Clock):
    """
    Clock that only moves when told to.

    ``now()`` keeps returning the same instant until ``advance()`` or
    ``set_time()``.  Entries written between two advances share a
    ``fecha`` and are ordered by ``seq`` alone.
    """

    def __init__(self, start: datetime | None = None):
        self._current = _require_aware(start or DEFAULT_START)

    def now(self) -> datetime:
        return self._current

    def advance(self, seconds: float = 1) -> datetime:
        self._current += timedelta(seconds=seconds)
        return self._current

    def set_time(self, moment: datetime) -> None:
        self._current = _require_aware(moment)
