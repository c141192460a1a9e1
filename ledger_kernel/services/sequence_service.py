"""
SequenceService -- the ``seq`` counter behind every ledger entry.

Responsibility:
    Hands out strictly increasing ``seq`` numbers.  Entries stamped with
    the same ``fecha`` are ordered by ``seq`` alone, so FIFO order over
    lots is total and reproducible.

Architecture position:
    Kernel > Services.  Called by LedgerWriter once per appended entry.

Invariants enforced:
    SEQUENCE_MONOTONICITY -- the counter is bumped with a single
        ``UPDATE ... SET current_value = current_value + 1 RETURNING``.
        The UPDATE holds the row until the caller's transaction ends, so
        two writers cannot draw the same value, and a rollback gives the
        value back.  ``MAX(seq) + 1`` is never used.

Failure modes:
    - The counter row is missing (schema created without
      ``create_tables()``): it is inserted inside a savepoint.  A
      concurrent insert of the same row is absorbed by retrying the
      UPDATE.
"""

from sqlalchemy import BigInteger, String, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from ledger_kernel.db.base import Base
from ledger_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """One named counter and the last value handed out."""

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)


class SequenceService:
    """Flush-only counter; the caller's transaction commits the increment."""

    LEDGER_ENTRY = "lot_ledger_entry"

    def __init__(self, session: Session):
        self._session = session

    def _bump(self, name: str) -> int | None:
        counters = SequenceCounter.__table__
        return self._session.execute(
            update(counters)
            .where(counters.c.name == name)
            .values(current_value=counters.c.current_value + 1)
            .returning(counters.c.current_value)
        ).scalar_one_or_none()

    def next_value(self, name: str = LEDGER_ENTRY) -> int:
        value = self._bump(name)
        if value is None:
            try:
                with self._session.begin_nested():
                    self._session.add(SequenceCounter(name=name, current_value=1))
                value = 1
            except IntegrityError:
                logger.debug("sequence_counter_race_retry", extra={"sequence_name": name})
                value = self._bump(name)
                if value is None:
                    raise

        logger.debug("sequence_allocated", extra={"sequence_name": name, "value": value})
        return value

    def initialize_sequences(self) -> None:
        """Insert the ledger entry counter at zero unless it already exists."""
        exists = self._session.execute(
            select(SequenceCounter.id).where(SequenceCounter.name == self.LEDGER_ENTRY)
        ).first()
        if exists is None:
            self._session.add(SequenceCounter(name=self.LEDGER_ENTRY, current_value=0))
            self._session.flush()

    def current_value(self, name: str = LEDGER_ENTRY) -> int | None:
        return self._session.execute(
            select(SequenceCounter.current_value).where(SequenceCounter.name == name)
        ).scalar_one_or_none()
