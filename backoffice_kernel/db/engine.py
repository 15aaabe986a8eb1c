"""
Module: backoffice_kernel.db.engine
Responsibility: The one place the back office connects to its database.
    Holds the process-wide engine and session factory that units of work,
    batch items and database-backed event handlers open sessions from.
Architecture position: Kernel > DB.  May import from db/base.py; the table
    helpers also import the ORM modules so ``Base.metadata`` is complete.

Invariants enforced:
    - PostgreSQL (production): READ COMMITTED, pooled connections with
      pre-ping; lifecycle writes lock their row with FOR UPDATE and carry
      an optimistic version check.
    - SQLite (tests, local tools): FOR UPDATE is ignored, so transactions
      open with BEGIN IMMEDIATE and concurrent writers queue on the
      database lock instead of failing with "database is locked".

Failure modes:
    - RuntimeError from the accessors before ``init_engine_from_url()``.
"""

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool

from backoffice_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

SQLITE_BUSY_TIMEOUT_SECONDS = 30

_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 10,
    max_overflow: int = 10,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """
    Create the engine and session factory for ``database_url``.

    Replaces any engine created earlier in the process.  Pool arguments
    apply to server backends only.
    """
    global _engine, _session_factory

    backend = make_url(database_url).get_backend_name()
    if backend == "sqlite":
        engine = create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT_SECONDS},
        )
        _begin_immediate_on(engine)
    else:
        engine = create_engine(
            database_url,
            echo=echo,
            poolclass=QueuePool,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=True,
            pool_timeout=pool_timeout,
            pool_recycle=pool_recycle,
            isolation_level="READ COMMITTED",
        )

    _engine = engine
    _session_factory = sessionmaker(bind=engine, expire_on_commit=False)

    configure_logging()
    logger.info("engine_initialized", extra={"dialect": backend, "echo": echo})
    return engine


def _require_factory() -> sessionmaker[Session]:
    if _session_factory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _session_factory


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    return _require_factory()


def get_session() -> Session:
    return _require_factory()()


@contextmanager
def session_scope() -> Iterator[Session]:
    """
    Session committed on normal exit and rolled back on error.

    Usage::

        with session_scope() as session:
            session.add(deduction)
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("session_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def _metadata():
    from backoffice_kernel.db.base import Base

    # Importing the ORM modules registers their tables.
    import backoffice_kernel.models  # noqa: F401
    import backoffice_modules.benefits.orm  # noqa: F401

    return Base.metadata


def create_tables() -> None:
    """Create every lifecycle, event, receipt and module table."""
    metadata = _metadata()
    metadata.create_all(get_engine())
    logger.info("tables_created", extra={"tables": sorted(metadata.tables)})


def drop_tables() -> None:
    """Drop every table.  Tests and local tools only."""
    _metadata().drop_all(get_engine())


def reset_engine() -> None:
    """Dispose the engine and forget the session factory.  FOR TESTING ONLY."""
    global _engine, _session_factory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _session_factory = None


def _begin_immediate_on(engine: Engine) -> None:
    # pysqlite would otherwise issue a deferred BEGIN and upgrade to a write
    # lock on the first write, failing immediately when another writer holds it.
    @event.listens_for(engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")
