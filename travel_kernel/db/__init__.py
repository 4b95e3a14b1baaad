"""Database layer: declarative base and engine/session management."""

from travel_kernel.db.base import Base, TrackedBase, UUIDString
from travel_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    is_postgres,
    is_sqlite,
    reset_engine,
    session_scope,
)

__all__ = [
    "Base",
    "TrackedBase",
    "UUIDString",
    "create_tables",
    "drop_tables",
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_engine_from_url",
    "is_postgres",
    "is_sqlite",
    "reset_engine",
    "session_scope",
]
