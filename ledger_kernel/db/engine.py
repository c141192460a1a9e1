"""
Module: ledger_kernel.db.engine
Responsibility: Build the SQLAlchemy engine for a database URL, hold the
    process-wide engine used by scripts, and create or drop the ledger
    schema.
Architecture position: Kernel > DB.  create_tables() imports the models and
    the sequence counter lazily so their tables are registered and seeded.

Backends:
    - PostgreSQL: QueuePool at READ COMMITTED.  Commits lock the product
      row with SELECT ... FOR UPDATE; guarded UPDATEs on lot rows catch
      anything that slipped past the plan.
    - SQLite: tests and single-user installs.  Foreign keys are switched on
      per connection and writers wait up to five seconds for the file lock.

Failure modes:
    - RuntimeError from get_engine()/get_session() before
      init_engine_from_url().
"""

import atexit
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from ledger_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

SQLITE_BUSY_TIMEOUT_MS = 5000

_engine: Engine | None = None
_sessions: sessionmaker[Session] | None = None


def _on_sqlite_connect(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute(f"PRAGMA busy_timeout={SQLITE_BUSY_TIMEOUT_MS}")
    cursor.close()


def build_engine(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
) -> Engine:
    """Create an engine for ``database_url`` without touching module state."""
    if database_url.startswith("sqlite"):
        engine = create_engine(database_url, echo=echo)
        event.listen(engine, "connect", _on_sqlite_connect)
        return engine

    return create_engine(
        database_url,
        echo=echo,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=True,
        pool_recycle=1800,
        isolation_level="READ COMMITTED",
    )


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
) -> Engine:
    """
    Install the process-wide engine and session factory.

    Calling it again disposes the previous engine first.
    """
    global _engine, _sessions

    if _engine is not None:
        _engine.dispose()

    _engine = build_engine(database_url, echo=echo, pool_size=pool_size, max_overflow=max_overflow)
    _sessions = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={
            "dialect": _engine.dialect.name,
            "pool_size": pool_size,
            "max_overflow": max_overflow,
            "echo": echo,
        },
    )
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session() -> Session:
    """A new session on the process-wide engine; loaded rows survive commit."""
    if _sessions is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _sessions()


@contextmanager
def session_scope() -> Iterator[Session]:
    """
    Session that commits on success and rolls back on error.

    Ledger services commit their own work; this is for scripts that read,
    or that drive services with ``auto_commit=False``.
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("session_scope_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables(engine: Engine | None = None) -> None:
    """Create every ledger table and seed the entry sequence counter."""
    from ledger_kernel.db.base import Base
    from ledger_kernel.models import import_all_models
    from ledger_kernel.services.sequence_service import SequenceService

    import_all_models()
    target = engine or get_engine()
    Base.metadata.create_all(target)

    with Session(target) as session:
        SequenceService(session).initialize_sequences()
        session.commit()

    logger.info("tables_created", extra={"tables": sorted(Base.metadata.tables)})


def drop_tables(engine: Engine | None = None) -> None:
    """Drop every ledger table.  Tests only."""
    from ledger_kernel.db.base import Base
    from ledger_kernel.models import import_all_models

    import_all_models()
    Base.metadata.drop_all(engine or get_engine())


def reset_engine() -> None:
    """Dispose and forget the process-wide engine."""
    global _engine, _sessions

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _sessions = None


atexit.register(reset_engine)
