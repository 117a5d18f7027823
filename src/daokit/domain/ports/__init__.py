"""Domain port definitions for adapters."""

from __future__ import annotations

from .store import KeyValues, ScopedTransaction, Store
from .tasks import TaskRunner

__all__ = [
    "KeyValues",
    "ScopedTransaction",
    "Store",
    "TaskRunner",
]
