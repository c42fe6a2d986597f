"""
Module: taskflow_kernel.db.engine
Responsibility: Owns the process-wide SQLAlchemy engine and session factory
    and the one place where transactions are committed.
Architecture position: Kernel > DB.  ``create_tables`` imports the models
    package only to populate ``Base.metadata``.

Invariants enforced:
    - Services flush, they never commit.  ``session_scope()`` commits on a
      clean exit and rolls back on any exception.
    - PostgreSQL connections run at READ COMMITTED; workflow writes take
      row locks on the task and its instance.  SQLite (tests, local runs)
      gets a single shared in-memory connection with working SAVEPOINTs.

Failure modes:
    - RuntimeError when the engine is used before ``init_engine_from_url()``.
"""

from contextlib import contextmanager
from typing import Any, Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from taskflow_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None

_NOT_INITIALIZED = "Engine not initialized. Call init_engine_from_url() first."


def _engine_options(url, pool_size: int, max_overflow: int) -> dict[str, Any]:
    if url.get_backend_name() == "sqlite":
        options: dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        if url.database in (None, "", ":memory:"):
            # every session must see the same in-memory database
            options["poolclass"] = StaticPool
        return options
    return {
        "pool_size": pool_size,
        "max_overflow": max_overflow,
        "pool_pre_ping": True,
        "pool_recycle": 1800,
        "isolation_level": "READ COMMITTED",
    }


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 10,
    max_overflow: int = 10,
) -> Engine:
    """
    Create the engine and session factory for ``database_url``.

    A second call replaces the first.  Pool settings apply to server
    backends only.
    """
    global _engine, _SessionFactory

    url = make_url(database_url)
    _engine = create_engine(url, echo=echo, **_engine_options(url, pool_size, max_overflow))
    if url.get_backend_name() == "sqlite":
        _enable_sqlite_savepoints(_engine)
    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={"dialect": url.get_backend_name(), "echo": echo},
    )
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _engine


def get_session() -> Session:
    if _SessionFactory is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _SessionFactory()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """
    Unit of work around service calls.

    Usage:
        with session_scope() as session:
            TaskWorkflowService(session, clock).perform_step_action(...)
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables() -> None:
    """Create every table and register the ORM immutability listeners."""
    from taskflow_kernel.db.base import Base
    from taskflow_kernel.db.immutability import register_immutability_listeners
    import taskflow_kernel.models  # noqa: F401

    Base.metadata.create_all(get_engine())
    register_immutability_listeners()


def drop_tables() -> None:
    from taskflow_kernel.db.base import Base
    import taskflow_kernel.models  # noqa: F401

    Base.metadata.drop_all(get_engine())


def reset_engine() -> None:
    """Dispose the engine and forget the session factory."""
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionFactory = None


def _enable_sqlite_savepoints(engine: Engine) -> None:
    """pysqlite issues its own BEGIN; hand that to SQLAlchemy so SAVEPOINTs nest."""

    @event.listens_for(engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(connection):
        connection.exec_driver_sql("BEGIN")
