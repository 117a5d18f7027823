"""Relation resolution, loading and deletion."""

from __future__ import annotations

from .delete import JoinDeleter
from .load import JoinLoader
from .resolve import JoinGraphResolver, RelationRef

__all__ = [
    "JoinDeleter",
    "JoinGraphResolver",
    "JoinLoader",
    "RelationRef",
]
