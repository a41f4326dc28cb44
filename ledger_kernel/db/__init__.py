"""Database layer - engine, base classes, immutability listeners."""

from ledger_kernel.db.base import Base, TenantScopedBase, TrackedBase, UUIDString
from ledger_kernel.db.engine import create_tables, get_engine, get_session, session_scope

__all__ = [
    "get_engine",
    "get_session",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "TenantScopedBase",
    "UUIDString",
]
