"""Database layer - engine, base classes, types, and immutability."""

from bookkeeping_kernel.db.base import UUID, Base, TenantScopedMixin, TrackedBase, UUIDString
from bookkeeping_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    init_engine_from_url,
    session_scope,
)
from bookkeeping_kernel.db.types import Money, round_money, to_cents

__all__ = [
    "get_engine",
    "get_session",
    "init_engine_from_url",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "TenantScopedMixin",
    "UUIDString",
    "UUID",
    "Money",
    "round_money",
    "to_cents",
]
