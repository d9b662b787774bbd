"""Database layer - engine, base classes, and column types."""

from budget_kernel.db.base import (
    UUID,
    Base,
    ProjectScopedBase,
    TrackedBase,
    UTCDateTime,
    UUIDString,
)
from budget_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    session_scope,
)
from budget_kernel.db.types import round_money, to_decimal

__all__ = [
    "init_engine_from_url",
    "get_engine",
    "get_session",
    "get_session_factory",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "ProjectScopedBase",
    "UUIDString",
    "UTCDateTime",
    "UUID",
    "round_money",
    "to_decimal",
]
