"""SQLAlchemy adapter package for daokit."""

from __future__ import annotations

from .engine import (
    StartupError,
    configured_engine,
    is_started,
    require_engine,
    shutdown,
    startup,
)
from .mappings import NAMING_CONVENTION, TableRegistry, create_all_tables, new_metadata
from .store import SqlAlchemyStore, key_condition
from .transaction import SqlAlchemyTransaction, current_transaction

__all__ = [
    "NAMING_CONVENTION",
    "SqlAlchemyStore",
    "SqlAlchemyTransaction",
    "StartupError",
    "TableRegistry",
    "configured_engine",
    "create_all_tables",
    "current_transaction",
    "is_started",
    "key_condition",
    "new_metadata",
    "require_engine",
    "shutdown",
    "startup",
]
