"""
Module: textile_kernel.db.engine
Responsibility: One process-wide engine and session factory, plus the
    commit-or-rollback ``session_scope`` every unit of work runs in.
Architecture position: Kernel > DB.  create_tables/drop_tables import the
    model modules so Base.metadata knows every table.

Invariants enforced:
    - Any SQLAlchemy URL is accepted.  PostgreSQL gets a pre-pinged
      QueuePool at READ COMMITTED; row versions on thans, customers and
      stock balances catch lost updates at that level.  SQLite gets
      check_same_thread=False, and in-memory URLs a StaticPool so every
      session sees the same database.
    - Services only flush.  ``session_scope`` owns commit and rollback.

Failure modes:
    - RuntimeError when the engine is used before init_engine_from_url().
"""

from contextlib import contextmanager
from typing import Any, Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import URL, Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from textile_kernel.logging_config import get_logger

logger = get_logger("db.engine")

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None


def _engine_options(url: URL, pool_size: int, max_overflow: int, pool_timeout: int) -> dict[str, Any]:
    if url.get_backend_name() == "sqlite":
        options: dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        if url.database in (None, "", ":memory:"):
            options["poolclass"] = StaticPool
        return options
    return {
        "pool_size": pool_size,
        "max_overflow": max_overflow,
        "pool_timeout": pool_timeout,
        "pool_recycle": 1800,
        "pool_pre_ping": True,
        "isolation_level": "READ COMMITTED",
    }


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 10,
    max_overflow: int = 5,
    pool_timeout: int = 30,
) -> Engine:
    """
    Create the process-wide engine and session factory.

    A second call replaces the first; the old engine is not disposed
    (call ``reset_engine`` for that).
    """
    global _engine, _SessionFactory

    url = make_url(database_url)
    _engine = create_engine(
        url, echo=echo, **_engine_options(url, pool_size, max_overflow, pool_timeout),
    )
    _SessionFactory = sessionmaker(bind=_engine, expire_on_commit=False)

    logger.info(
        "engine_initialized",
        extra={"dialect": url.get_backend_name(), "echo": echo},
    )
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """Factory the orchestrator opens one session per unit of work from."""
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory


def get_session() -> Session:
    return get_session_factory()()


@contextmanager
def session_scope(factory: sessionmaker[Session] | None = None) -> Iterator[Session]:
    """
    Commit on normal exit, roll back and re-raise on any exception, and
    always close.

        with session_scope(factory) as session:
            InventoryStore(session).mark_than_sold("5801", 3, "Ibrahim")
    """
    session = (factory or get_session_factory())()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.debug("transaction_rolled_back", exc_info=True)
        raise
    finally:
        session.close()


def create_tables(engine: Engine | None = None) -> None:
    from textile_kernel.db.base import Base
    import textile_kernel.models  # noqa: F401

    Base.metadata.create_all(engine or get_engine())


def drop_tables(engine: Engine | None = None) -> None:
    """Drop every kernel table.  Tests only."""
    from textile_kernel.db.base import Base
    import textile_kernel.models  # noqa: F401

    Base.metadata.drop_all(engine or get_engine())


def reset_engine() -> None:
    """Dispose the engine and forget the session factory.  Tests only."""
    global _engine, _SessionFactory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionFactory = None
