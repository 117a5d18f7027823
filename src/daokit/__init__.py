from __future__ import annotations

from importlib import metadata

from .dao import EntityDao
from .domain import (
    ArgumentError,
    Cardinality,
    DaoError,
    DuplicatedResultError,
    EntityRegistry,
    Relation,
    StoreAccessError,
    UnregisteredEntityError,
    UnsupportedOperationError,
)

try:
    __version__ = metadata.version("daokit")
except metadata.PackageNotFoundError:
    __version__ = "0.0.0+local"

__all__ = [
    "ArgumentError",
    "Cardinality",
    "DaoError",
    "DuplicatedResultError",
    "EntityDao",
    "EntityRegistry",
    "Relation",
    "StoreAccessError",
    "UnregisteredEntityError",
    "UnsupportedOperationError",
]
