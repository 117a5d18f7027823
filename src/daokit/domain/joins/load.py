"""Loading of related entities onto their owners.

Owners are processed in batches of ``join_batch_size``; each batch costs one
related-rows query per relation. Rows are distributed back to owners by matching
join key values. Relations through an association type cost one association query
plus the target queries for the keys it links to. MANY relations receive a fresh
list per owner (possibly empty), ONE relations the first matching row or ``None``.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from functools import partial
from typing import TYPE_CHECKING, Any

from daokit.config import DaoConfig
from daokit.domain.batching import split
from daokit.domain.errors import ArgumentError
from daokit.domain.execution import fan_out

from .owners import distinct_keys, keyed_owners

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Sequence

    from daokit.domain.metadata import EntityMetadata, RelationDescriptor
    from daokit.domain.ports import KeyValues, Store, TaskRunner

    from .resolve import JoinGraphResolver, RelationRef

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class _LoadUnit[TOwner]:
    descriptor: RelationDescriptor
    target: EntityMetadata[Any]
    owners: list[tuple[TOwner, KeyValues]]
    select_properties: tuple[str, ...] | None
    through: EntityMetadata[Any] | None = None


class JoinLoader[TOwner]:
    """Hydrate relation properties of owner entities of one type."""

    def __init__(
        self,
        resolver: JoinGraphResolver[TOwner],
        store: Store,
        *,
        config: DaoConfig | None = None,
        runner: TaskRunner | None = None,
    ) -> None:
        self.resolver = resolver
        self.owner = resolver.owner
        self.store = store
        self.config = config or DaoConfig()
        self.runner = runner

    def load(
        self,
        owners: Sequence[TOwner],
        relation: RelationRef,
        *,
        select_properties: Sequence[str] | None = None,
        only_if_unset: bool = False,
    ) -> int:
        """Load one relation; returns the number of owners that were assigned."""

        return self.load_many(
            owners,
            (relation,),
            select_properties=select_properties,
            only_if_unset=only_if_unset,
        )

    def load_many(
        self,
        owners: Sequence[TOwner],
        relations: Iterable[RelationRef],
        *,
        select_properties: Sequence[str] | None = None,
        only_if_unset: bool = False,
        parallel: bool = False,
    ) -> int:
        """Load several relations, sequentially or as independent units on the runner.

        Every reference is resolved and every owner checked before the first query.
        In parallel mode each (relation, owner batch) pair is one unit; a failing unit
        does not stop its siblings and its error is raised once all have finished.
        """

        if parallel and self.runner is None:
            raise ArgumentError("Parallel loading requires a task runner")
        self._check_owners(owners)
        descriptors = self.resolver.resolve_many(relations)

        units: list[_LoadUnit[TOwner]] = []
        assigned = 0
        for descriptor in descriptors:
            target = self.resolver.target(descriptor)
            pending = owners
            if only_if_unset:
                pending = [o for o in owners if self.owner.value(o, descriptor.name) is None]
            keyed, unkeyed = keyed_owners(
                self.owner,
                descriptor,
                pending,
                allow_null_join_keys=self.config.allow_null_join_keys,
            )
            for owner in unkeyed:
                self.owner.set_value(owner, descriptor.name, descriptor.empty_value())
            assigned += len(unkeyed)
            selected = self._selection(descriptor, target, select_properties)
            through = self.resolver.through(descriptor) if descriptor.is_through else None
            units.extend(
                _LoadUnit(descriptor, target, chunk, selected, through)
                for chunk in split(keyed, self.config.join_batch_size)
            )

        tasks: list[Callable[[], int]] = [partial(self._run, unit) for unit in units]
        if parallel and self.runner is not None:
            counts = fan_out(self.runner, tasks)
        else:
            counts = [task() for task in tasks]
        return assigned + sum(counts)

    def _run(self, unit: _LoadUnit[TOwner]) -> int:
        descriptor = unit.descriptor
        keys = distinct_keys(unit.owners)
        if unit.through is None:
            rows_by_key = self._rows_by_target_key(unit, keys)
        else:
            rows_by_key = self._rows_through(unit, unit.through, keys)

        for owner, key in unit.owners:
            related = rows_by_key.get(key, [])
            if descriptor.is_many:
                value: object = list(related)
            else:
                value = related[0] if related else None
            self.owner.set_value(owner, descriptor.name, value)
        return len(unit.owners)

    def _rows_by_target_key(
        self, unit: _LoadUnit[TOwner], keys: Sequence[KeyValues]
    ) -> dict[KeyValues, list[Any]]:
        descriptor = unit.descriptor
        rows = self.store.query_by_key_set(
            descriptor.target_type,
            descriptor.target_properties,
            keys,
            select_properties=unit.select_properties,
        )
        log.debug(
            "Loaded %d %s rows for %d %s owners (%s)",
            len(rows),
            unit.target.name,
            len(unit.owners),
            self.owner.name,
            descriptor.name,
        )

        rows_by_key: defaultdict[KeyValues, list[Any]] = defaultdict(list)
        for row in rows:
            rows_by_key[unit.target.values(row, descriptor.target_properties)].append(row)
        return rows_by_key

    def _rows_through(
        self,
        unit: _LoadUnit[TOwner],
        through: EntityMetadata[Any],
        keys: Sequence[KeyValues],
    ) -> dict[KeyValues, list[Any]]:
        """Read association rows for ``keys``, then the targets they point at.

        Targets keep the order of the association rows that link them.
        """

        descriptor = unit.descriptor
        links = self.store.query_by_key_set(
            through.entity_type,
            descriptor.through_owner_properties,
            keys,
            select_properties=descriptor.through_properties,
        )
        linked: defaultdict[KeyValues, list[KeyValues]] = defaultdict(list)
        for link in links:
            target_key = through.values(link, descriptor.through_target_properties)
            if any(value is None for value in target_key):
                continue
            linked[through.values(link, descriptor.through_owner_properties)].append(target_key)

        target_keys = list(dict.fromkeys(key for found in linked.values() for key in found))
        targets: defaultdict[KeyValues, list[Any]] = defaultdict(list)
        for chunk in split(target_keys, self.config.join_batch_size):
            rows = self.store.query_by_key_set(
                descriptor.target_type,
                descriptor.target_properties,
                chunk,
                select_properties=unit.select_properties,
            )
            for row in rows:
                targets[unit.target.values(row, descriptor.target_properties)].append(row)
        log.debug(
            "Loaded %d %s links to %d %s rows for %d %s owners (%s)",
            len(links),
            through.name,
            len(target_keys),
            unit.target.name,
            len(unit.owners),
            self.owner.name,
            descriptor.name,
        )

        return {
            owner_key: [row for key in found for row in targets.get(key, [])]
            for owner_key, found in linked.items()
        }

    def _selection(
        self,
        descriptor: RelationDescriptor,
        target: EntityMetadata[Any],
        select_properties: Sequence[str] | None,
    ) -> tuple[str, ...] | None:
        if select_properties is None:
            return None
        selected = target.require_properties(select_properties, purpose="select")
        missing = tuple(name for name in descriptor.target_properties if name not in selected)
        return selected + missing

    def _check_owners(self, owners: Sequence[TOwner]) -> None:
        for owner in owners:
            if not isinstance(owner, self.owner.entity_type):
                raise ArgumentError(
                    f"Expected {self.owner.name} owners, got {type(owner).__qualname__}"
                )
