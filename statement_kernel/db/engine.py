"""
Module: statement_kernel.db.engine
Responsibility: Engine, session factory and session scope for the stores
    (Template Store, Raw Data Store, period locks).
Architecture position: Kernel > DB.  Imports models only inside
    create_tables()/drop_tables().

Invariants enforced:
    - PostgreSQL connections run at READ COMMITTED, so rollover reads see
      only committed prior-quarter data.  Whether that data is final is
      decided by period locks, not by this module.
    - SQLite URLs (tests, local tooling) share one connection so an
      in-memory database survives across sessions.

Failure modes:
    - RuntimeError from get_engine()/get_session() before
      init_engine_from_url().
"""

import atexit
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from statement_kernel.logging_config import configure_logging, get_logger

logger = get_logger("db.engine")

_NOT_INITIALIZED = "Engine not initialized. Call init_engine_from_url() first."

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None


def _build_engine(database_url: str, echo: bool, pool_size: int, max_overflow: int) -> Engine:
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            echo=echo,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    return create_engine(
        database_url,
        echo=echo,
        poolclass=QueuePool,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=True,
        isolation_level="READ COMMITTED",
    )


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 10,
    max_overflow: int = 5,
) -> Engine:
    """
    Initialize the engine and session factory.

    Args:
        database_url: ``postgresql+psycopg://...`` in production, or
            ``sqlite://`` for tests.
        echo: Log every SQL statement.
        pool_size: Pooled connections (PostgreSQL only).
        max_overflow: Connections beyond pool_size (PostgreSQL only).
    """
    global _engine, _SessionFactory

    _engine = _build_engine(database_url, echo, pool_size, max_overflow)
    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    configure_logging()
    logger.info(
        "engine_initialized",
        extra={
            "dialect": _engine.dialect.name,
            "isolation_level": None if _engine.dialect.name == "sqlite" else "READ COMMITTED",
        },
    )
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _engine


def get_session() -> Session:
    """A new session; the caller owns its transaction and closes it."""
    if _SessionFactory is None:
        raise RuntimeError(_NOT_INITIALIZED)
    return _SessionFactory()


@contextmanager
def session_scope() -> Iterator[Session]:
    """
    Session committed on normal exit, rolled back on error, always closed.

    Used by tooling that seeds the stores; the statement service itself is
    handed a session by its caller and never commits.
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
    from statement_kernel.db.base import Base
    import statement_kernel.models  # noqa: F401

    return Base.metadata


def create_tables() -> None:
    _metadata().create_all(get_engine())


def drop_tables() -> None:
    """Drop all tables (tests)."""
    _metadata().drop_all(get_engine())


def reset_engine() -> None:
    """Dispose the engine and forget the session factory (tests)."""
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionFactory = None


@atexit.register
def _dispose_on_exit() -> None:
    if _engine is not None:
        _engine.dispose()
