"""Table registry mapping entity types onto SQLAlchemy Core tables."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy import MetaData

from daokit.domain.errors import ArgumentError, UnregisteredEntityError

if TYPE_CHECKING:
    from sqlalchemy import Table
    from sqlalchemy.engine import Engine

    from daokit.domain.metadata import EntityMetadata, EntityRegistry

log = logging.getLogger(__name__)

NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_label)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_label)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


def new_metadata() -> MetaData:
    return MetaData(naming_convention=NAMING_CONVENTION)


class TableRegistry:
    """Entity type to ``Table`` map; every persisted property needs a column."""

    def __init__(self, registry: EntityRegistry, metadata: MetaData | None = None) -> None:
        self.registry = registry
        self.metadata = metadata or new_metadata()
        self._tables: dict[type, Table] = {}

    def __contains__(self, entity_type: object) -> bool:
        return entity_type in self._tables

    def map(self, entity_type: type, table: Table) -> Table:
        if table.metadata is not self.metadata:
            raise ArgumentError(f"Table {table.name} belongs to a different MetaData")
        if entity_type in self._tables:
            raise ArgumentError(f"{entity_type.__qualname__} is already mapped")
        entity = self.registry.metadata_for(entity_type)
        missing = [name for name in entity.properties if name not in table.c]
        if missing:
            raise ArgumentError(
                f"Table {table.name} has no column for {entity.name} properties: "
                f"{', '.join(missing)}"
            )
        self._tables[entity_type] = table
        log.debug("Mapped %s onto table %s", entity.name, table.name)
        return table

    def table_for(self, entity_type: type) -> Table:
        try:
            return self._tables[entity_type]
        except KeyError:
            raise UnregisteredEntityError(entity_type) from None

    def resolve(self, entity_type: type) -> tuple[EntityMetadata[Any], Table]:
        return self.registry.metadata_for(entity_type), self.table_for(entity_type)


def create_all_tables(engine: Engine, tables: TableRegistry) -> None:
    """Create database tables for the mapped metadata."""

    log.info("Creating all tables")
    tables.metadata.create_all(engine)
