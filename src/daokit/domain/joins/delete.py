"""Deletion of related entities through declared relations."""

from __future__ import annotations

import logging
import warnings
from functools import partial
from typing import TYPE_CHECKING

from daokit.config import DaoConfig
from daokit.domain.errors import ArgumentError
from daokit.domain.execution import fan_out, transactional

from .owners import distinct_keys, keyed_owners

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from daokit.domain.metadata import RelationDescriptor
    from daokit.domain.ports import KeyValues, Store, TaskRunner

    from .resolve import JoinGraphResolver, RelationRef

log = logging.getLogger(__name__)


class JoinDeleter[TOwner]:
    """Delete the rows related to owner entities of one type.

    Owners with a ``None`` join key are skipped when ``allow_null_join_keys`` is set
    and rejected otherwise.
    """

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

    def delete(self, owners: Sequence[TOwner], relation: RelationRef) -> int:
        """Delete through one relation; returns the row count.

        A plain relation costs a single store call. A relation through an association
        type reads the association rows, then deletes them and the targets they link
        to in one transaction.
        """

        return self.delete_many(owners, (relation,))

    def delete_many(
        self,
        owners: Sequence[TOwner],
        relations: Iterable[RelationRef],
        *,
        parallel: bool = False,
    ) -> int:
        """Delete through several relations and return the summed row count.

        Sequentially, all deletes run in one transaction: either every relation is
        cleared or none is. ``parallel=True`` dispatches one unit per relation to the
        task runner instead. Each unit commits on its own, so a failing unit leaves
        the deletes of its siblings applied. That mode is deprecated.
        """

        if parallel:
            if self.runner is None:
                raise ArgumentError("Parallel deletion requires a task runner")
            warnings.warn(
                "Parallel relation deletes are not atomic; use the sequential form",
                DeprecationWarning,
                stacklevel=2,
            )
        descriptors = self.resolver.resolve_many(relations)
        work = [(descriptor, self._keys(owners, descriptor)) for descriptor in descriptors]
        work = [(descriptor, keys) for descriptor, keys in work if keys]
        if not work:
            return 0

        if parallel and self.runner is not None and len(work) > 1:
            units = [partial(self._delete, descriptor, keys) for descriptor, keys in work]
            return sum(fan_out(self.runner, units))

        with transactional(self.store, needed=len(work) > 1):
            return sum(self._delete(descriptor, keys) for descriptor, keys in work)

    def _keys(self, owners: Sequence[TOwner], descriptor: RelationDescriptor) -> list[KeyValues]:
        for owner in owners:
            if not isinstance(owner, self.owner.entity_type):
                raise ArgumentError(
                    f"Expected {self.owner.name} owners, got {type(owner).__qualname__}"
                )
        keyed, _ = keyed_owners(
            self.owner,
            descriptor,
            owners,
            allow_null_join_keys=self.config.allow_null_join_keys,
        )
        return distinct_keys(keyed)

    def _delete(self, descriptor: RelationDescriptor, keys: Sequence[KeyValues]) -> int:
        if descriptor.is_through:
            return self._delete_through(descriptor, keys)
        count = self.store.batch_delete_by_foreign_key(
            descriptor.target_type, descriptor.target_properties, keys
        )
        log.debug(
            "Deleted %d %s rows through %s.%s",
            count,
            descriptor.target_type.__qualname__,
            self.owner.name,
            descriptor.name,
        )
        return count

    def _delete_through(self, descriptor: RelationDescriptor, keys: Sequence[KeyValues]) -> int:
        """Delete the linked targets and the association rows linking them.

        The count covers both. Targets shared with other owners are deleted too.
        """

        through = self.resolver.through(descriptor)
        with transactional(self.store):
            links = self.store.query_by_key_set(
                through.entity_type,
                descriptor.through_owner_properties,
                keys,
                select_properties=descriptor.through_properties,
            )
            linked = [through.values(link, descriptor.through_target_properties) for link in links]
            target_keys = list(dict.fromkeys(key for key in linked if None not in key))
            unlinked = self.store.batch_delete_by_foreign_key(
                through.entity_type, descriptor.through_owner_properties, keys
            )
            deleted = 0
            if target_keys:
                deleted = self.store.batch_delete_by_foreign_key(
                    descriptor.target_type, descriptor.target_properties, target_keys
                )
        log.debug(
            "Deleted %d %s rows and %d %s links through %s.%s",
            deleted,
            descriptor.target_type.__qualname__,
            unlinked,
            through.name,
            self.owner.name,
            descriptor.name,
        )
        return deleted + unlinked
