"""SQLAlchemy Core implementation of the batch store port."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from sqlalchemy import and_, bindparam, delete, insert, or_, select, update
from sqlalchemy.exc import SQLAlchemyError

from daokit.domain.errors import ArgumentError, StoreAccessError, UnsupportedOperationError

from .engine import require_engine
from .transaction import SqlAlchemyTransaction, current_transaction

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

    from sqlalchemy import ColumnElement, Table
    from sqlalchemy.engine import Connection, Engine

    from daokit.domain.metadata import EntityMetadata, EntityRegistry
    from daokit.domain.ports import KeyValues

    from .mappings import TableRegistry

log = logging.getLogger(__name__)


def key_condition(
    table: Table,
    key_properties: Sequence[str],
    key_values: Sequence[KeyValues],
) -> ColumnElement[bool] | None:
    """``column IN (...)`` for one key column, an OR of ANDs for several.

    Key tuples containing ``None`` never match. Returns ``None`` when nothing can match.
    """

    keys = [key for key in key_values if not any(value is None for value in key)]
    if not keys:
        return None
    columns = [table.c[name] for name in key_properties]
    if len(columns) == 1:
        return columns[0].in_(list(dict.fromkeys(key[0] for key in keys)))
    return or_(
        *(
            and_(*(column == value for column, value in zip(columns, key, strict=True)))
            for key in dict.fromkeys(keys)
        )
    )


class SqlAlchemyStore:
    """Store backed by a SQLAlchemy engine.

    Calls made inside a transaction from :meth:`begin_transaction` share its
    connection; any other call runs in its own short transaction.
    """

    def __init__(
        self,
        registry: EntityRegistry,
        tables: TableRegistry,
        *,
        engine: Engine | None = None,
    ) -> None:
        self.registry = registry
        self.tables = tables
        self.engine = engine or require_engine()

    def begin_transaction(self) -> SqlAlchemyTransaction:
        return SqlAlchemyTransaction(self.engine)

    def query_by_key_set[TEntity](
        self,
        entity_type: type[TEntity],
        key_properties: Sequence[str],
        key_values: Sequence[KeyValues],
        *,
        select_properties: Sequence[str] | None = None,
    ) -> list[TEntity]:
        metadata, table = self.tables.resolve(entity_type)
        key_properties = metadata.require_properties(key_properties, purpose="key")
        condition = key_condition(table, key_properties, key_values)
        if condition is None:
            return []
        selected = (
            metadata.require_properties(select_properties, purpose="select")
            if select_properties is not None
            else metadata.properties
        )
        statement = select(*(table.c[name] for name in selected)).where(condition)
        with self._connection() as connection:
            rows = connection.execute(statement).mappings().all()
        log.debug("Selected %d rows from %s", len(rows), table.name)
        return [metadata.new_instance(row) for row in rows]

    def batch_insert(self, entities: Sequence[object]) -> None:
        if not entities:
            return
        metadata, table = self._resolve_batch(entities)
        identity = metadata.identity_properties

        provided: list[dict[str, Any]] = []
        generated: list[object] = []
        for entity in entities:
            if any(metadata.value(entity, name) is None for name in identity):
                generated.append(entity)
            else:
                provided.append(metadata.as_row(entity))

        with self._connection() as connection:
            if provided:
                connection.execute(insert(table), provided)
            if generated:
                self._insert_returning(connection, metadata, table, generated)
        log.debug("Inserted %d rows into %s", len(entities), table.name)

    def batch_update(self, entities: Sequence[object]) -> int:
        if not entities:
            return 0
        metadata, table = self._resolve_batch(entities)
        identity = metadata.identity_properties
        if not identity:
            raise UnsupportedOperationError(
                f"{metadata.name} has no identity properties and cannot be updated by key"
            )
        assigned = [name for name in metadata.properties if name not in identity]
        if not assigned:
            return 0

        statement = (
            update(table)
            .where(and_(*(table.c[name] == bindparam(f"key_{name}") for name in identity)))
            .values({name: bindparam(f"value_{name}") for name in assigned})
        )
        parameters: list[dict[str, Any]] = []
        for entity in entities:
            keys = metadata.values(entity, identity)
            if any(value is None for value in keys):
                raise ArgumentError(f"Cannot update {metadata.name} without identity values")
            row = {f"key_{name}": value for name, value in zip(identity, keys, strict=True)}
            row.update({f"value_{name}": metadata.value(entity, name) for name in assigned})
            parameters.append(row)

        with self._connection() as connection:
            count = connection.execute(statement, parameters).rowcount
        log.debug("Updated %d rows in %s", count, table.name)
        return count

    def batch_delete_by_foreign_key(
        self,
        entity_type: type,
        key_properties: Sequence[str],
        key_values: Sequence[KeyValues],
    ) -> int:
        metadata, table = self.tables.resolve(entity_type)
        key_properties = metadata.require_properties(key_properties, purpose="key")
        condition = key_condition(table, key_properties, key_values)
        if condition is None:
            return 0
        with self._connection() as connection:
            count = connection.execute(delete(table).where(condition)).rowcount
        log.debug("Deleted %d rows from %s", count, table.name)
        return count

    def _insert_returning(
        self,
        connection: Connection,
        metadata: EntityMetadata[Any],
        table: Table,
        entities: Sequence[object],
    ) -> None:
        identity = metadata.identity_properties
        rows = [
            {
                name: value
                for name, value in metadata.as_row(entity).items()
                if not (name in identity and value is None)
            }
            for entity in entities
        ]
        statement = insert(table).returning(
            *(table.c[name] for name in identity), sort_by_parameter_order=True
        )
        result = connection.execute(statement, rows)
        for entity, returned in zip(entities, result.mappings().all(), strict=True):
            for name in identity:
                metadata.set_value(entity, name, returned[name])

    def _resolve_batch(self, entities: Sequence[object]) -> tuple[EntityMetadata[Any], Table]:
        entity_type = type(entities[0])
        if any(type(entity) is not entity_type for entity in entities):
            raise ArgumentError("A batch must contain entities of a single type")
        return self.tables.resolve(entity_type)

    @contextmanager
    def _connection(self) -> Iterator[Connection]:
        bound = current_transaction()
        try:
            if bound is not None:
                yield bound.connection
            else:
                with self.engine.begin() as connection:
                    yield connection
        except SQLAlchemyError as exc:
            raise StoreAccessError(f"Store call failed: {exc}") from exc
