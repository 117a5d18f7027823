"""Per-entity-type data access object.

``EntityDao`` bundles the reconciliation and join engines for one registered type
and accepts either a single entity or a collection wherever owners are expected.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any

from daokit.config import DaoConfig
from daokit.domain.batching import require_positive, split
from daokit.domain.errors import ArgumentError, DuplicatedResultError
from daokit.domain.joins import JoinDeleter, JoinGraphResolver, JoinLoader
from daokit.domain.keys import KeyExtractor
from daokit.domain.reconciliation import BatchUpsertReconciler, copy_properties

if TYPE_CHECKING:
    from collections.abc import Sequence

    from daokit.domain.joins import RelationRef
    from daokit.domain.metadata import EntityRegistry
    from daokit.domain.ports import KeyValues, Store, TaskRunner

log = logging.getLogger(__name__)

type Owners[TEntity] = TEntity | Iterable[TEntity]


class EntityDao[TEntity]:
    """Batch persistence and relation handling for ``entity_type``.

    ``runner`` is only needed for the ``parallel=True`` variants.
    """

    def __init__(
        self,
        entity_type: type[TEntity],
        *,
        registry: EntityRegistry,
        store: Store,
        config: DaoConfig | None = None,
        runner: TaskRunner | None = None,
    ) -> None:
        self.config = config or DaoConfig()
        self.store = store
        self.metadata = registry.metadata_for(entity_type)
        self.resolver = JoinGraphResolver(registry, entity_type)
        self.reconciler = BatchUpsertReconciler(self.metadata, store, config=self.config)
        self.loader = JoinLoader(self.resolver, store, config=self.config, runner=runner)
        self.deleter = JoinDeleter(self.resolver, store, config=self.config, runner=runner)

    @property
    def entity_type(self) -> type[TEntity]:
        return self.metadata.entity_type

    # Upserts -----------------------------------------------------------------

    def upsert(
        self,
        entity: TEntity,
        unique_key_properties: Sequence[str] | None = None,
    ) -> TEntity:
        return self.reconciler.upsert(entity, unique_key_properties)

    def batch_upsert(
        self,
        entities: Iterable[TEntity],
        unique_key_properties: Sequence[str] | None = None,
        *,
        batch_size: int | None = None,
    ) -> list[TEntity]:
        """Insert new entities and merge existing ones; results follow input order."""

        return self.reconciler.reconcile(entities, unique_key_properties, batch_size=batch_size)

    # Reads -------------------------------------------------------------------

    def get(
        self,
        key: object,
        *,
        select_properties: Sequence[str] | None = None,
        relations: Iterable[RelationRef] = (),
        all_relations: bool = False,
    ) -> TEntity | None:
        """Fetch one entity by identity; ``key`` is a scalar, a tuple or a mapping."""

        found = self.batch_get(
            (key,),
            select_properties=select_properties,
            relations=relations,
            all_relations=all_relations,
        )
        return found[0] if found else None

    def batch_get(
        self,
        keys: Iterable[object],
        *,
        select_properties: Sequence[str] | None = None,
        relations: Iterable[RelationRef] = (),
        all_relations: bool = False,
        batch_size: int | None = None,
    ) -> list[TEntity]:
        """Fetch entities by identity in requested-key order, skipping missing keys."""

        batch_size = require_positive(
            self.config.batch_size if batch_size is None else batch_size
        )
        extractor = self._identity_extractor()
        requested = list(dict.fromkeys(self._key_values(key) for key in keys))
        selected = self._selection(select_properties)

        rows_by_key: dict[KeyValues, TEntity] = {}
        for chunk in split(requested, batch_size):
            rows = self.store.query_by_key_set(
                self.entity_type,
                extractor.properties,
                chunk,
                select_properties=selected,
            )
            for row in rows:
                key = extractor.values(row)
                if key in rows_by_key:
                    count = sum(1 for other in rows if extractor.values(other) == key)
                    raise DuplicatedResultError(
                        self.entity_type, extractor.key_from_values(key), count
                    )
                rows_by_key[key] = row

        found = [rows_by_key[key] for key in requested if key in rows_by_key]
        if found:
            self._load_requested(found, relations, all_relations=all_relations)
        return found

    def refresh(self, entity: TEntity, properties: Sequence[str] | None = None) -> bool:
        """Re-read ``entity`` by identity; returns ``False`` when it is gone."""

        return self.batch_refresh((entity,), properties) == 1

    def batch_refresh(
        self,
        entities: Iterable[TEntity],
        properties: Sequence[str] | None = None,
        *,
        batch_size: int | None = None,
    ) -> int:
        """Copy stored property values onto ``entities``; returns how many were found."""

        batch_size = require_positive(
            self.config.batch_size if batch_size is None else batch_size
        )
        extractor = self._identity_extractor()
        names = (
            self.metadata.require_properties(properties, purpose="refresh")
            if properties is not None
            else self.metadata.properties
        )
        targets = self._owners(entities)
        for entity in targets:
            if any(value is None for value in extractor.values(entity)):
                raise ArgumentError(
                    f"Cannot refresh {self.metadata.name} without identity values"
                )

        refreshed = 0
        for chunk in split(targets, batch_size):
            rows = self.store.query_by_key_set(
                self.entity_type,
                extractor.properties,
                list(dict.fromkeys(extractor.values(entity) for entity in chunk)),
                select_properties=self._selection(names),
            )
            rows_by_key = {extractor.values(row): row for row in rows}
            for entity in chunk:
                row = rows_by_key.get(extractor.values(entity))
                if row is None:
                    continue
                copy_properties(self.metadata, row, entity, names)
                refreshed += 1
        log.debug("Refreshed %d of %d %s", refreshed, len(targets), self.metadata.name)
        return refreshed

    # Relations ---------------------------------------------------------------

    def load_relation(
        self,
        owners: Owners[TEntity],
        relation: RelationRef,
        *,
        select_properties: Sequence[str] | None = None,
    ) -> int:
        return self.loader.load(
            self._owners(owners), relation, select_properties=select_properties
        )

    def load_relation_if_unset(
        self,
        owners: Owners[TEntity],
        relation: RelationRef,
        *,
        select_properties: Sequence[str] | None = None,
    ) -> int:
        """Load ``relation`` only for owners whose relation property is still ``None``."""

        return self.loader.load(
            self._owners(owners),
            relation,
            select_properties=select_properties,
            only_if_unset=True,
        )

    def load_relations(
        self,
        owners: Owners[TEntity],
        relations: Iterable[RelationRef],
        *,
        only_if_unset: bool = False,
        parallel: bool = False,
    ) -> int:
        return self.loader.load_many(
            self._owners(owners), relations, only_if_unset=only_if_unset, parallel=parallel
        )

    def load_all_relations(
        self,
        owners: Owners[TEntity],
        *,
        only_if_unset: bool = False,
        parallel: bool = False,
    ) -> int:
        return self.load_relations(
            owners,
            (descriptor.name for descriptor in self.resolver.all_relations()),
            only_if_unset=only_if_unset,
            parallel=parallel,
        )

    def delete_relation(
        self,
        owners: Owners[TEntity],
        relations: RelationRef | Iterable[RelationRef],
        *,
        parallel: bool = False,
    ) -> int:
        """Delete rows related through one relation, or several in one transaction.

        ``parallel=True`` is deprecated: the per-relation deletes then commit
        independently of each other.
        """

        if isinstance(relations, (str, type)):
            return self.deleter.delete(self._owners(owners), relations)
        return self.deleter.delete_many(self._owners(owners), relations, parallel=parallel)

    def delete_all_relations(self, owners: Owners[TEntity], *, parallel: bool = False) -> int:
        return self.deleter.delete_many(
            self._owners(owners),
            [descriptor.name for descriptor in self.resolver.all_relations()],
            parallel=parallel,
        )

    # Helpers -----------------------------------------------------------------

    def _owners(self, owners: Owners[TEntity]) -> list[TEntity]:
        if isinstance(owners, self.entity_type):
            return [owners]
        if isinstance(owners, Iterable):
            return list(owners)
        raise ArgumentError(
            f"Expected {self.metadata.name} or a collection of them, "
            f"got {type(owners).__qualname__}"
        )

    def _identity_extractor(self) -> KeyExtractor[TEntity]:
        if not self.metadata.identity_properties:
            raise ArgumentError(f"{self.metadata.name} has no identity properties")
        return KeyExtractor(self.metadata, self.metadata.identity_properties)

    def _key_values(self, key: object) -> KeyValues:
        identity = self.metadata.identity_properties
        if isinstance(key, Mapping):
            mapping: Mapping[str, Any] = key
            missing = [name for name in identity if name not in mapping]
            if missing:
                raise ArgumentError(f"Key for {self.metadata.name} lacks {', '.join(missing)}")
            return tuple(mapping[name] for name in identity)
        if isinstance(key, tuple) and len(identity) > 1:
            if len(key) != len(identity):
                raise ArgumentError(
                    f"Key for {self.metadata.name} needs {len(identity)} values, got {len(key)}"
                )
            return key
        if len(identity) > 1:
            raise ArgumentError(f"{self.metadata.name} has a composite identity; pass a tuple")
        return (key,)

    def _selection(self, select_properties: Sequence[str] | None) -> tuple[str, ...] | None:
        if select_properties is None:
            return None
        selected = self.metadata.require_properties(select_properties, purpose="select")
        identity = tuple(
            name for name in self.metadata.identity_properties if name not in selected
        )
        return identity + selected

    def _load_requested(
        self,
        found: list[TEntity],
        relations: Iterable[RelationRef],
        *,
        all_relations: bool,
    ) -> None:
        if all_relations:
            self.load_all_relations(found)
        else:
            requested = list(relations)
            if requested:
                self.load_relations(found, requested)
