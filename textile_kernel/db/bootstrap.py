"""Database bootstrap: engine, schema, immutability listeners and seed rows."""

from __future__ import annotations

from sqlalchemy.orm import Session, sessionmaker

from textile_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
    session_scope,
)
from textile_kernel.db.immutability import register_immutability_listeners
from textile_kernel.logging_config import get_logger
from textile_kernel.services.ledger_posting import seed_chart_of_accounts
from textile_kernel.services.sequence_service import seed_sequences

logger = get_logger("db.bootstrap")


def prepare_database(database_url: str, echo: bool = False) -> sessionmaker[Session]:
    """
    Make ``database_url`` ready for the orchestrator.

    Creates missing tables, registers the ORM immutability listeners and
    seeds the chart of accounts and sequence counters.  Safe to call on
    an already-prepared database.

    Returns:
        The session factory bound to the new engine.
    """
    engine = init_engine_from_url(database_url, echo=echo)
    create_tables(engine)
    register_immutability_listeners()
    factory = get_session_factory()
    with session_scope(factory) as session:
        seed_chart_of_accounts(session)
        seed_sequences(session)
    logger.info("database_prepared", extra={"dialect": engine.dialect.name})
    return factory
