"""Database layer - engine, base classes, column types and immutability."""

from taskflow_kernel.db.base import Base, TrackedBase, UTCDateTime, UUIDString
from taskflow_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    init_engine_from_url,
    session_scope,
)

__all__ = [
    "get_engine",
    "get_session",
    "init_engine_from_url",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UTCDateTime",
    "UUIDString",
]
