"""Database layer - engine, base classes, types, and immutability."""

from roster_kernel.db.base import Base, TrackedBase
from roster_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    session_scope,
)
from roster_kernel.db.types import UTCDateTime, UUIDString, to_epoch_millis

__all__ = [
    "init_engine_from_url",
    "get_engine",
    "get_session",
    "get_session_factory",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UTCDateTime",
    "to_epoch_millis",
]
