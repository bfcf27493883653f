"""
Module: winroom_kernel.db.engine
Responsibility: SQLAlchemy engine initialization, session factory management,
    and transactional scope utilities.  Single point of database connection
    configuration for the kernel, the poller and the CLI.
Architecture position: Kernel > DB.  May import from db/base.py.  MUST NOT
    import from services/, selectors/, domain/, or outer layers (except
    create_tables/drop_tables, which import models so metadata is complete).

Invariants enforced:
    - PostgreSQL is the production backend (READ COMMITTED, SELECT ... FOR
      UPDATE, ON CONFLICT).  SQLite is accepted for tests and local runs:
      pysqlite's implicit transaction handling is disabled so SAVEPOINTs
      behave, and WAL mode lets a reader coexist with one writer.
    - Sessions never expire attributes on commit; services return ORM rows
      that callers read after the scope closes.

Failure modes:
    - RuntimeError if get_engine/get_session/get_session_factory are called
      before init_engine_from_url().
    - OperationalError when the database is unreachable (surfaced to the
      poller, which logs it and retries on the next tick).
"""

import atexit
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from winroom_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None


def _install_sqlite_hooks(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # Hand transaction control to SQLAlchemy so SAVEPOINT works
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA busy_timeout=5000")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 10,
    max_overflow: int = 5,
    pool_pre_ping: bool = True,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """
    Initialize the SQLAlchemy engine from a database URL.

    Postconditions: Module-level engine and session factory are initialized.
        A second call replaces the first.

    Args:
        database_url: ``postgresql+psycopg2://...`` in production,
            ``sqlite:///path.db`` for tests and local runs.
        echo: If True, log all SQL statements.
        pool_size: Connections kept in the pool (PostgreSQL only).
        max_overflow: Connections beyond pool_size (PostgreSQL only).
        pool_pre_ping: Test connections before use.
        pool_timeout: Seconds to wait for a pooled connection.
        pool_recycle: Seconds after which a connection is recycled.

    Returns:
        SQLAlchemy Engine instance.
    """
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()

    if database_url.startswith("sqlite"):
        _engine = create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": 30},
        )
        _install_sqlite_hooks(_engine)
    else:
        _engine = create_engine(
            database_url,
            echo=echo,
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_pre_ping=pool_pre_ping,
            pool_timeout=pool_timeout,
            pool_recycle=pool_recycle,
            isolation_level="READ COMMITTED",
        )

    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={"dialect": _engine.dialect.name, "echo": echo},
    )

    return _engine


def get_engine() -> Engine:
    """
    Get the current engine instance.

    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session() -> Session:
    """
    Get a new session instance.

    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory()


def get_session_factory() -> sessionmaker[Session]:
    """
    Get the session factory.  The poller and its sub-jobs open one session
    per unit of work from it.

    Raises:
        RuntimeError: If engine has not been initialized.
    """
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory


@contextmanager
def session_scope(
    factory: sessionmaker[Session] | None = None,
) -> Generator[Session, None, None]:
    """
    Provide a transactional scope around a series of operations.

    Postconditions: On normal exit the session is committed and closed.
        On exception it is rolled back and closed, and the exception is
        re-raised to the caller.

    Usage:
        with session_scope() as session:
            service = InstallmentService(session, clock)
            service.freeze_plan(plan_id, actor_id="admin-1", reason="dispute")
    """
    session = factory() if factory is not None else get_session()
    logger.debug("transaction_started")
    try:
        yield session
        session.commit()
        logger.debug("transaction_committed")
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables() -> None:
    """
    Create all kernel tables.

    Upstream tables are created too, which only matters for tests and local
    runs; in production they already exist and ``create_all`` skips them.
    """
    from winroom_kernel.db.base import Base
    import winroom_kernel.models  # noqa: F401  (registers every table)

    engine = get_engine()
    Base.metadata.create_all(engine)
    logger.info("tables_created", extra={"tables": len(Base.metadata.tables)})


def drop_tables() -> None:
    """Drop all tables. Use with caution - primarily for testing."""
    from winroom_kernel.db.base import Base
    import winroom_kernel.models  # noqa: F401

    Base.metadata.drop_all(get_engine())


def reset_engine() -> None:
    """
    Reset the engine and session factory.

    Useful for test cleanup.
    """
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
        _engine = None

    _SessionFactory = None


def _atexit_dispose():
    global _engine
    if _engine is not None:
        try:
            _engine.dispose()
        except Exception:
            logger.debug("engine_dispose_failed_at_exit", exc_info=True)


atexit.register(_atexit_dispose)
