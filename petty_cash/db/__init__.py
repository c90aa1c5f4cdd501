"""Database layer - engine, base classes and types."""

from petty_cash.db.base import UUID, Base, TrackedBase, UUIDString
from petty_cash.db.engine import (
    create_engine_from_url,
    create_tables,
    drop_tables,
    make_session_factory,
    session_scope,
)

__all__ = [
    "create_engine_from_url",
    "create_tables",
    "drop_tables",
    "make_session_factory",
    "session_scope",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
]
