"""Database layer: declarative base, column types, engine and session scope."""

from workflow_kernel.db.base import Base, TrackedBase, UTCDateTime, UUIDString
from workflow_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    init_engine_from_url,
    session_scope,
)

__all__ = [
    "Base",
    "TrackedBase",
    "UTCDateTime",
    "UUIDString",
    "create_tables",
    "get_engine",
    "get_session",
    "init_engine_from_url",
    "session_scope",
]
