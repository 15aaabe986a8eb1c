"""Database layer - engine, base classes, types."""

from backoffice_kernel.db.base import MONEY, Base, TrackedBase, UUIDString
from backoffice_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    get_session_factory,
    session_scope,
)

__all__ = [
    "get_engine",
    "get_session",
    "get_session_factory",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "MONEY",
]
