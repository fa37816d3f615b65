"""Database infrastructure for the textile kernel."""

from textile_kernel.db.base import GUID, Base
from textile_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from textile_kernel.db.immutability import (
    register_immutability_listeners,
)

__all__ = [
    "Base",
    "GUID",
    "init_engine_from_url",
    "get_engine",
    "get_session",
    "get_session_factory",
    "session_scope",
    "create_tables",
    "drop_tables",
    "reset_engine",
    "register_immutability_listeners",
]
