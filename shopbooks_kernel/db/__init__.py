"""Database layer - engine, declarative base and the saved-state table."""

from shopbooks_kernel.db.base import Base
from shopbooks_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from shopbooks_kernel.db.models import FinanceStateRecord

__all__ = [
    "Base",
    "FinanceStateRecord",
    "init_engine_from_url",
    "get_engine",
    "get_session_factory",
    "session_scope",
    "create_tables",
    "reset_engine",
]
