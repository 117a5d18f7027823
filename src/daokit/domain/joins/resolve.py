"""Resolution of relation names and target types to declared relations."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from daokit.domain.errors import ArgumentError

if TYPE_CHECKING:
    from collections.abc import Iterable

    from daokit.domain.metadata import EntityMetadata, EntityRegistry, RelationDescriptor

type RelationRef = str | type


class JoinGraphResolver[TOwner]:
    """Resolve relation references on one owner type.

    A reference is either a relation name (always unambiguous) or a target type,
    which must match exactly one relation of the owner.
    """

    def __init__(self, registry: EntityRegistry, owner_type: type[TOwner]) -> None:
        self.registry = registry
        self.owner: EntityMetadata[TOwner] = registry.metadata_for(owner_type)

    def resolve(self, relation: RelationRef) -> RelationDescriptor:
        if isinstance(relation, str):
            return self.owner.relation(relation)

        names = self.owner.relation_names_for(relation)
        if not names:
            raise ArgumentError(
                f"{self.owner.name} declares no relation to {relation.__qualname__}"
            )
        if len(names) > 1:
            raise ArgumentError(
                f"{self.owner.name} has {len(names)} relations to {relation.__qualname__} "
                f"({', '.join(names)}); pass the relation name instead"
            )
        return self.owner.relations[names[0]]

    def resolve_many(self, relations: Iterable[RelationRef]) -> tuple[RelationDescriptor, ...]:
        """Resolve every reference up front; duplicates collapse to the first occurrence."""

        resolved: dict[str, RelationDescriptor] = {}
        for relation in relations:
            descriptor = self.resolve(relation)
            resolved.setdefault(descriptor.name, descriptor)
        return tuple(resolved.values())

    def all_relations(self) -> tuple[RelationDescriptor, ...]:
        return tuple(self.owner.relations.values())

    def target(self, descriptor: RelationDescriptor) -> EntityMetadata[Any]:
        return self.registry.metadata_for(descriptor.target_type)

    def through(self, descriptor: RelationDescriptor) -> EntityMetadata[Any]:
        if descriptor.through_type is None:
            raise ArgumentError(
                f"{self.owner.name}.{descriptor.name} has no association type"
            )
        return self.registry.metadata_for(descriptor.through_type)
