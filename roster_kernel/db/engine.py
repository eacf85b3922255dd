"""
Module: roster_kernel.db.engine
Responsibility: One process-wide engine and session factory, plus schema
    helpers.  Every request handler gets its own ``Session`` from here.
Architecture position: Kernel > DB.  Imports models only inside
    ``create_tables``/``drop_tables`` so that metadata is complete.

Invariants enforced:
    - PostgreSQL runs at READ COMMITTED.  Double-booking, duplicate
      publishes and double approval are prevented by the conditional
      UPDATEs, upserts and unique keys the services issue, which are
      correct at that level; nothing relies on SERIALIZABLE retries.
    - On SQLite the driver's own transaction handling is switched off, so
      ``BEGIN`` and ``SAVEPOINT`` happen exactly when SQLAlchemy emits them.
      The idempotency claim and audit counter depend on real savepoints.
    - Sessions do not expire on commit: a service may return ORM objects
      after committing without triggering a reload.

Failure modes:
    - RuntimeError from any accessor before ``init_engine_from_url``.
"""

import atexit
from contextlib import contextmanager
from typing import Any, Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker

from roster_kernel.db.immutability import register_immutability_listeners
from roster_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None

_NOT_INITIALIZED = "Engine not initialized. Call init_engine_from_url() first."


def _postgres_options(
    pool_size: int, max_overflow: int, pool_timeout: int, pool_recycle: int
) -> dict[str, Any]:
    return {
        "isolation_level": "READ COMMITTED",
        "pool_size": pool_size,
        "max_overflow": max_overflow,
        "pool_timeout": pool_timeout,
        "pool_recycle": pool_recycle,
        "pool_pre_ping": True,
    }


def _enable_sqlite_savepoints(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        dbapi_connection.execute("PRAGMA foreign_keys=ON")

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 20,
    max_overflow: int = 10,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> Engine:
    """
    Create the engine and session factory, replacing any previous pair.

    ``pool_*`` settings apply to PostgreSQL.  For SQLite ``pool_timeout``
    becomes the driver's lock wait.
    """
    global _engine, _SessionFactory

    backend = make_url(database_url).get_backend_name()
    if backend == "sqlite":
        engine = create_engine(
            database_url,
            echo=echo,
            connect_args={"timeout": pool_timeout, "check_same_thread": False},
        )
        _enable_sqlite_savepoints(engine)
    else:
        engine = create_engine(
            database_url,
            echo=echo,
            **_postgres_options(pool_size, max_overflow, pool_timeout, pool_recycle),
        )

    _engine = engine
    _SessionFactory = sessionmaker(bind=engine, expire_on_commit=False)

    configure_logging()
    register_immutability_listeners()
    logger.info("engine_initialized", extra={"backend": backend, "echo": echo})
    return engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """Factory for callers that open one session per thread or request."""
    if _SessionFactory is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _SessionFactory


def get_session() -> Session:
    return get_session_factory()()


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """Commit on success, roll back and re-raise on error, always close.

    For callers that run services with ``auto_commit=False`` and want
    several operations in one transaction.
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


def _metadata():
    from roster_kernel.db.base import Base
    import roster_kernel.models  # noqa: F401
    import roster_kernel.services.sequence_service  # noqa: F401

    return Base.metadata


def create_tables() -> None:
    metadata = _metadata()
    metadata.create_all(get_engine())
    logger.info("tables_created", extra={"table_count": len(metadata.tables)})


def drop_tables() -> None:
    _metadata().drop_all(get_engine())


def reset_engine() -> None:
    """Dispose the pool and forget the engine (test teardown)."""
    global _engine, _SessionFactory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionFactory = None


@atexit.register
def _dispose_on_exit() -> None:
    if _engine is not None:
        _engine.dispose()
