"""Database layer - engine, base classes, column types and append-only listeners."""

from parking_kernel.db.base import Base, UTCDateTime
from parking_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from parking_kernel.db.types import Code, Identifier, Money, Plate

__all__ = [
    "Base",
    "UTCDateTime",
    "init_engine_from_url",
    "get_engine",
    "get_session",
    "get_session_factory",
    "session_scope",
    "create_tables",
    "drop_tables",
    "reset_engine",
    "Money",
    "Identifier",
    "Code",
    "Plate",
]
