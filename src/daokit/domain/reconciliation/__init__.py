"""Batch upsert reconciliation of incoming entities against stored rows.

Flow:
1) look up existing rows by unique key, in bounded chunks
2) partition the input into to-insert and to-update
3) merge updates onto the stored rows
4) persist, transactionally when both groups are non-empty
"""

from __future__ import annotations

from .engine import BatchUpsertReconciler, ReconciliationResult
from .merge import copy_properties, merge_into

__all__ = [
    "BatchUpsertReconciler",
    "ReconciliationResult",
    "copy_properties",
    "merge_into",
]
