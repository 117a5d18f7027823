"""Store-agnostic DAO core: metadata, keys, reconciliation and joins."""

from __future__ import annotations

from .errors import (
    ArgumentError,
    DaoError,
    DuplicatedResultError,
    StoreAccessError,
    UnregisteredEntityError,
    UnsupportedOperationError,
)
from .keys import CompositeKey, EntityKey, KeyExtractor
from .metadata import (
    Cardinality,
    EntityMetadata,
    EntityRegistry,
    Relation,
    RelationDescriptor,
)

__all__ = [
    "ArgumentError",
    "Cardinality",
    "CompositeKey",
    "DaoError",
    "DuplicatedResultError",
    "EntityKey",
    "EntityMetadata",
    "EntityRegistry",
    "KeyExtractor",
    "Relation",
    "RelationDescriptor",
    "StoreAccessError",
    "UnregisteredEntityError",
    "UnsupportedOperationError",
]
