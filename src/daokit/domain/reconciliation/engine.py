"""Batch upsert reconciliation.

For a collection of incoming entities the reconciler decides which ones already
exist (matched by a unique key) and must be merged onto their stored row and
updated, and which ones are new and must be inserted:

1) look up existing rows in chunks of ``batch_size`` keys
2) index them by key (first row wins on duplicate keys)
3) partition the input into to-insert and to-update
4) merge every to-update entity onto its stored row
5) insert, then update, in chunks; inside one transaction only when both groups
   are non-empty

A failing chunk aborts the rest of the call. Without a wrapping transaction the
chunks written before the failure stay applied.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from daokit.config import DaoConfig
from daokit.domain.batching import require_positive, split
from daokit.domain.errors import ArgumentError, DuplicatedResultError
from daokit.domain.execution import transactional
from daokit.domain.keys import KeyExtractor

from .merge import merge_into

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from daokit.domain.keys import EntityKey
    from daokit.domain.metadata import EntityMetadata
    from daokit.domain.ports import Store

log = logging.getLogger(__name__)


@dataclass(slots=True)
class ReconciliationResult[TEntity]:
    """Partition of one input collection against one snapshot of existing rows.

    ``to_update`` holds the merged stored rows. ``persisted`` lists what each input
    entity is persisted as, in input order.
    """

    to_insert: list[TEntity] = field(default_factory=list["TEntity"])
    to_update: list[TEntity] = field(default_factory=list["TEntity"])
    persisted: list[TEntity] = field(default_factory=list["TEntity"])

    def __bool__(self) -> bool:
        return bool(self.persisted)


class BatchUpsertReconciler[TEntity]:
    """Insert-or-update engine for one entity type."""

    def __init__(
        self,
        metadata: EntityMetadata[TEntity],
        store: Store,
        *,
        config: DaoConfig | None = None,
    ) -> None:
        self.metadata = metadata
        self.store = store
        self.config = config or DaoConfig()

    def plan(
        self,
        entities: Iterable[TEntity],
        unique_key_properties: Sequence[str] | None = None,
        *,
        batch_size: int | None = None,
    ) -> ReconciliationResult[TEntity]:
        """Classify and merge ``entities`` without writing anything."""

        batch_size = require_positive(
            self.config.batch_size if batch_size is None else batch_size
        )
        extractor = self._extractor(unique_key_properties)
        incoming = self._checked(entities)
        if not incoming:
            return ReconciliationResult()

        existing_by_key: dict[EntityKey, TEntity] = {}
        for row in self._lookup(extractor, incoming, batch_size):
            existing_by_key.setdefault(extractor.key(row), row)

        excluded = {*self.metadata.identity_properties, *extractor.properties}
        result = ReconciliationResult[TEntity]()
        for entity in incoming:
            stored = existing_by_key.get(extractor.key(entity))
            if stored is None:
                result.to_insert.append(entity)
                result.persisted.append(entity)
                continue
            merged = merge_into(
                self.metadata,
                entity,
                stored,
                exclude=excluded,
                merge_null_values=self.config.merge_null_values,
            )
            result.to_update.append(merged)
            result.persisted.append(merged)

        log.debug(
            "Reconciled %d %s: %d to insert, %d to update",
            len(incoming),
            self.metadata.name,
            len(result.to_insert),
            len(result.to_update),
        )
        return result

    def reconcile(
        self,
        entities: Iterable[TEntity],
        unique_key_properties: Sequence[str] | None = None,
        *,
        batch_size: int | None = None,
    ) -> list[TEntity]:
        """Persist ``entities`` and return them in input order.

        Entities that matched a stored row are replaced by that (merged) row.
        """

        batch_size = require_positive(
            self.config.batch_size if batch_size is None else batch_size
        )
        result = self.plan(entities, unique_key_properties, batch_size=batch_size)
        if not result:
            return []

        with transactional(self.store, needed=bool(result.to_insert and result.to_update)):
            for chunk in split(result.to_insert, batch_size):
                self.store.batch_insert(chunk)
            for chunk in split(result.to_update, batch_size):
                self.store.batch_update(chunk)

        return result.persisted

    def upsert(
        self,
        entity: TEntity,
        unique_key_properties: Sequence[str] | None = None,
    ) -> TEntity:
        """Insert ``entity`` or merge it onto the single stored row sharing its key."""

        extractor = self._extractor(unique_key_properties)
        (entity,) = self._checked((entity,))
        rows = self.store.query_by_key_set(
            self.metadata.entity_type,
            extractor.properties,
            [extractor.values(entity)],
        )
        if len(rows) > 1:
            raise DuplicatedResultError(
                self.metadata.entity_type, extractor.key(entity), len(rows)
            )
        if not rows:
            self.store.batch_insert([entity])
            return entity

        merged = merge_into(
            self.metadata,
            entity,
            rows[0],
            exclude={*self.metadata.identity_properties, *extractor.properties},
            merge_null_values=self.config.merge_null_values,
        )
        self.store.batch_update([merged])
        return merged

    def _extractor(self, unique_key_properties: Sequence[str] | None) -> KeyExtractor[TEntity]:
        if unique_key_properties is None:
            if not self.metadata.identity_properties:
                raise ArgumentError(
                    f"{self.metadata.name} has no identity properties; "
                    "pass unique key properties explicitly"
                )
            unique_key_properties = self.metadata.identity_properties
        return KeyExtractor(self.metadata, unique_key_properties)

    def _checked(self, entities: Iterable[TEntity]) -> list[TEntity]:
        checked = list(entities)
        entity_type = self.metadata.entity_type
        for entity in checked:
            if not isinstance(entity, entity_type):
                raise ArgumentError(
                    f"Expected {self.metadata.name} instances, got {type(entity).__qualname__}"
                )
        return checked

    def _lookup(
        self,
        extractor: KeyExtractor[TEntity],
        entities: Sequence[TEntity],
        batch_size: int,
    ) -> list[TEntity]:
        rows: list[TEntity] = []
        for chunk in split(entities, batch_size):
            found = self.store.query_by_key_set(
                self.metadata.entity_type,
                extractor.properties,
                [extractor.values(entity) for entity in chunk],
            )
            log.debug(
                "Looked up %d %s keys, found %d rows", len(chunk), self.metadata.name, len(found)
            )
            rows.extend(found)
        return rows
