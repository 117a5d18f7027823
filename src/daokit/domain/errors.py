"""Error taxonomy shared by the DAO core and its adapters.

Absence is never an error: lookups return ``None`` or an empty list.
"""

from __future__ import annotations


class DaoError(Exception):
    """Base class for all daokit errors."""


class ArgumentError(DaoError, ValueError):
    """Raised when a call is rejected before any store access."""


class UnregisteredEntityError(ArgumentError):
    """Raised when an entity type has not been registered."""

    def __init__(self, entity_type: type) -> None:
        self.entity_type = entity_type
        super().__init__(f"Entity type {entity_type.__qualname__} is not registered")


class DuplicatedResultError(DaoError):
    """Raised when a by-key lookup matched more than one row."""

    def __init__(self, entity_type: type, key: object, count: int) -> None:
        self.entity_type = entity_type
        self.key = key
        self.count = count
        super().__init__(
            f"Expected at most one {entity_type.__qualname__} for key {key!r}, found {count}"
        )


class StoreAccessError(DaoError):
    """Raised when the underlying store call failed."""


class UnsupportedOperationError(DaoError, NotImplementedError):
    """Raised when an operation is not available for an entity type or store."""
