"""Ports for the relational store the DAO core runs against."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, Self, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import TracebackType


type KeyValues = tuple[Any, ...]


@runtime_checkable
class ScopedTransaction(Protocol):
    """Transaction handle that rolls back on every exit path that did not commit."""

    @property
    def committed(self) -> bool: ...

    def __enter__(self) -> Self: ...

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> bool: ...

    def commit(self) -> None: ...

    def rollback_if_not_committed(self) -> None: ...


@runtime_checkable
class Store(Protocol):
    """Batch-oriented persistence contract used by the reconciliation and join engines.

    Key values are tuples ordered like the key properties they belong to. Failures
    surface as ``StoreAccessError``.
    """

    def query_by_key_set[TEntity](
        self,
        entity_type: type[TEntity],
        key_properties: Sequence[str],
        key_values: Sequence[KeyValues],
        *,
        select_properties: Sequence[str] | None = None,
    ) -> list[TEntity]: ...

    def batch_insert(self, entities: Sequence[object]) -> None: ...

    def batch_update(self, entities: Sequence[object]) -> int: ...

    def batch_delete_by_foreign_key(
        self,
        entity_type: type,
        key_properties: Sequence[str],
        key_values: Sequence[KeyValues],
    ) -> int: ...

    def begin_transaction(self) -> ScopedTransaction: ...
