"""Entity metadata: identity, persisted properties and declared relations.

Entities are plain mutable dataclasses. Everything the core needs to know about
them is declared once, at startup, on an :class:`EntityRegistry`:

- identity properties (the primary key, possibly composite)
- relations to other registered types, with their join properties and cardinality
- many-to-many relations, which go through a registered association type

Every dataclass field that is not a relation is a persisted property. Property
access goes through accessor tables built at registration time.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import StrEnum
from operator import attrgetter
from typing import TYPE_CHECKING, Any, cast

from .errors import ArgumentError, UnregisteredEntityError

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

log = logging.getLogger(__name__)


class Cardinality(StrEnum):
    """How many target entities one owner relates to."""

    ONE = "one"
    MANY = "many"


type JoinPair = tuple[str, str]
type JoinSpec = str | JoinPair | Sequence[JoinPair]


def _is_pair(value: object) -> bool:
    return (
        isinstance(value, tuple)
        and len(value) == 2  # noqa: PLR2004
        and all(isinstance(part, str) for part in value)
    )


def _join_pairs(join_on: JoinSpec) -> tuple[JoinPair, ...]:
    """Normalise a join declaration to ``(near_property, far_property)`` pairs.

    A pair must be a tuple; any other sequence is read as a sequence of pairs.
    """

    if isinstance(join_on, str):
        return ((join_on, join_on),)
    if _is_pair(join_on):
        return (cast("JoinPair", join_on),)
    pairs = tuple(join_on)
    for pair in pairs:
        if not _is_pair(pair):
            raise ArgumentError(
                f"Join entries must be (owner_property, target_property) tuples, got {pair!r}"
            )
    return cast("tuple[JoinPair, ...]", pairs)


@dataclass(frozen=True, slots=True)
class Relation:
    """Declaration of a relation from an owner type to ``target``.

    ``join_on`` is a property name shared by both sides, one
    ``(owner_property, target_property)`` tuple, or a sequence of such tuples for
    composite join keys.

    Many-to-many relations go ``through`` a registered association type. ``join_on``
    then pairs owner properties with association properties and ``through_on`` pairs
    association properties with target properties.
    """

    target: type
    join_on: JoinSpec
    cardinality: Cardinality = Cardinality.MANY
    through: type | None = None
    through_on: JoinSpec = ()

    def pairs(self) -> tuple[JoinPair, ...]:
        return _join_pairs(self.join_on)

    def through_pairs(self) -> tuple[JoinPair, ...]:
        return _join_pairs(self.through_on) if self.through is not None else ()


@dataclass(frozen=True, slots=True)
class RelationDescriptor:
    """Resolved relation of one owner type.

    For association relations ``through_owner_properties`` match ``owner_properties``
    and ``through_target_properties`` match ``target_properties``.
    """

    owner_type: type
    name: str
    target_type: type
    cardinality: Cardinality
    owner_properties: tuple[str, ...]
    target_properties: tuple[str, ...]
    through_type: type | None = None
    through_owner_properties: tuple[str, ...] = ()
    through_target_properties: tuple[str, ...] = ()

    @property
    def is_many(self) -> bool:
        return self.cardinality is Cardinality.MANY

    @property
    def is_through(self) -> bool:
        return self.through_type is not None

    @property
    def through_properties(self) -> tuple[str, ...]:
        return tuple(
            dict.fromkeys(self.through_owner_properties + self.through_target_properties)
        )

    def empty_value(self) -> list[Any] | None:
        return [] if self.is_many else None


class EntityMetadata[TEntity]:
    """Per-type description with by-name property accessors."""

    def __init__(
        self,
        entity_type: type[TEntity],
        *,
        identity: Sequence[str],
        relations: Mapping[str, Relation],
    ) -> None:
        fields = dataclasses.fields(cast("Any", entity_type))
        field_names = tuple(field.name for field in fields)

        self.entity_type = entity_type
        self.name = entity_type.__qualname__
        self._fields = {field.name: field for field in fields}
        self._getters: dict[str, Callable[[object], Any]] = {
            name: attrgetter(name) for name in field_names
        }
        self.properties: tuple[str, ...] = tuple(
            name for name in field_names if name not in relations
        )
        self.identity_properties: tuple[str, ...] = self.require_properties(
            identity, purpose="identity"
        )
        self.relations: dict[str, RelationDescriptor] = {
            name: self._describe(name, relation) for name, relation in relations.items()
        }
        self._relation_names_by_target: dict[type, tuple[str, ...]] = {}
        for descriptor in self.relations.values():
            known = self._relation_names_by_target.get(descriptor.target_type, ())
            self._relation_names_by_target[descriptor.target_type] = (*known, descriptor.name)

    def __repr__(self) -> str:
        return f"EntityMetadata({self.name}, identity={self.identity_properties})"

    def require_properties(self, names: Iterable[str], *, purpose: str) -> tuple[str, ...]:
        """Return ``names`` as a tuple, rejecting unknown or relation properties."""

        resolved = tuple(names)
        unknown = [name for name in resolved if name not in self.properties]
        if unknown:
            raise ArgumentError(
                f"Unknown {purpose} properties for {self.name}: {', '.join(unknown)}"
            )
        return resolved

    def value(self, entity: TEntity, name: str) -> Any:
        try:
            getter = self._getters[name]
        except KeyError:
            raise ArgumentError(f"{self.name} has no property {name!r}") from None
        return getter(entity)

    def values(self, entity: TEntity, names: Sequence[str]) -> tuple[Any, ...]:
        return tuple(self._getters[name](entity) for name in names)

    def set_value(self, entity: TEntity, name: str, value: object) -> None:
        if name not in self._getters:
            raise ArgumentError(f"{self.name} has no property {name!r}")
        setattr(entity, name, value)

    def as_row(self, entity: TEntity, names: Sequence[str] | None = None) -> dict[str, Any]:
        """Return persisted property values keyed by name."""

        return {name: self._getters[name](entity) for name in names or self.properties}

    def new_instance(self, values: Mapping[str, object]) -> TEntity:
        """Build an entity from stored values without running ``__init__``.

        Properties missing from ``values`` (partial selects, relations) get their
        dataclass defaults, or ``None`` when the field has none.
        """

        entity = self.entity_type.__new__(self.entity_type)
        for name, field in self._fields.items():
            if name in values:
                value = values[name]
            elif field.default is not dataclasses.MISSING:
                value = field.default
            elif field.default_factory is not dataclasses.MISSING:
                value = field.default_factory()
            else:
                value = None
            object.__setattr__(entity, name, value)
        return entity

    def relation(self, name: str) -> RelationDescriptor:
        try:
            return self.relations[name]
        except KeyError:
            raise ArgumentError(f"{self.name} declares no relation named {name!r}") from None

    def relation_names_for(self, target_type: type) -> tuple[str, ...]:
        return self._relation_names_by_target.get(target_type, ())

    def _describe(self, name: str, relation: Relation) -> RelationDescriptor:
        if name not in self._fields:
            raise ArgumentError(f"Relation {name!r} is not a field of {self.name}")
        pairs = relation.pairs()
        if not pairs:
            raise ArgumentError(f"Relation {self.name}.{name} has no join properties")
        owner_properties = self.require_properties(
            (owner for owner, _ in pairs), purpose=f"join ({name})"
        )
        if relation.through is None:
            return RelationDescriptor(
                owner_type=self.entity_type,
                name=name,
                target_type=relation.target,
                cardinality=Cardinality(relation.cardinality),
                owner_properties=owner_properties,
                target_properties=tuple(target for _, target in pairs),
            )

        through_pairs = relation.through_pairs()
        if not through_pairs:
            raise ArgumentError(
                f"Relation {self.name}.{name} goes through "
                f"{relation.through.__qualname__} but declares no through_on properties"
            )
        return RelationDescriptor(
            owner_type=self.entity_type,
            name=name,
            target_type=relation.target,
            cardinality=Cardinality(relation.cardinality),
            owner_properties=owner_properties,
            target_properties=tuple(target for _, target in through_pairs),
            through_type=relation.through,
            through_owner_properties=tuple(link for _, link in pairs),
            through_target_properties=tuple(link for link, _ in through_pairs),
        )


class EntityRegistry:
    """Explicit map of entity types to their metadata, built once at startup."""

    def __init__(self) -> None:
        self._metadata: dict[type, EntityMetadata[Any]] = {}
        self._validated = True

    def __contains__(self, entity_type: object) -> bool:
        return entity_type in self._metadata

    @property
    def registered_types(self) -> tuple[type, ...]:
        return tuple(self._metadata)

    def register[TEntity](
        self,
        entity_type: type[TEntity],
        *,
        identity: Sequence[str] = ("id",),
        relations: Mapping[str, Relation] | None = None,
    ) -> EntityMetadata[TEntity]:
        """Register ``entity_type``; owner-side declarations are checked immediately."""

        if not dataclasses.is_dataclass(entity_type) or not isinstance(entity_type, type):
            raise ArgumentError(f"{entity_type!r} is not a dataclass type")
        params = getattr(entity_type, "__dataclass_params__", None)
        if params is not None and params.frozen:
            raise ArgumentError(f"{entity_type.__qualname__} must not be a frozen dataclass")
        if entity_type in self._metadata:
            raise ArgumentError(f"{entity_type.__qualname__} is already registered")
        if isinstance(identity, str):
            identity = (identity,)

        metadata = EntityMetadata(entity_type, identity=identity, relations=relations or {})
        self._metadata[entity_type] = metadata
        self._validated = False
        log.debug("Registered %r with relations %s", metadata, sorted(metadata.relations))
        return metadata

    def metadata_for[TEntity](self, entity_type: type[TEntity]) -> EntityMetadata[TEntity]:
        if not self._validated:
            self.validate()
        try:
            return self._metadata[entity_type]
        except KeyError:
            raise UnregisteredEntityError(entity_type) from None

    def validate(self) -> None:
        """Check every relation against its target's metadata."""

        for metadata in self._metadata.values():
            for descriptor in metadata.relations.values():
                target = self._metadata.get(descriptor.target_type)
                if target is None:
                    raise ArgumentError(
                        f"Relation {metadata.name}.{descriptor.name} targets unregistered type "
                        f"{descriptor.target_type.__qualname__}"
                    )
                purpose = f"join ({metadata.name}.{descriptor.name})"
                target.require_properties(descriptor.target_properties, purpose=purpose)
                if descriptor.through_type is None:
                    continue
                through = self._metadata.get(descriptor.through_type)
                if through is None:
                    raise ArgumentError(
                        f"Relation {metadata.name}.{descriptor.name} goes through "
                        f"unregistered type {descriptor.through_type.__qualname__}"
                    )
                through.require_properties(descriptor.through_properties, purpose=purpose)
        self._validated = True
