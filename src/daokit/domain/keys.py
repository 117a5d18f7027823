"""Comparable keys extracted from entities by property name.

A key over one property is the scalar value itself. A key over several
properties is a :class:`CompositeKey`: equal when every named component is equal,
regardless of the order the properties were listed in.
"""

from __future__ import annotations

from collections.abc import Hashable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .errors import ArgumentError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .metadata import EntityMetadata


@dataclass(frozen=True, slots=True, eq=False)
class CompositeKey:
    """Multi-property key; only ever used as a mapping key, never persisted."""

    components: tuple[tuple[str, Any], ...]

    def as_dict(self) -> dict[str, Any]:
        return dict(self.components)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CompositeKey):
            return NotImplemented
        return self.as_dict() == other.as_dict()

    def __hash__(self) -> int:
        return hash(frozenset(self.components))

    def __repr__(self) -> str:
        inner = ", ".join(f"{name}={value!r}" for name, value in self.components)
        return f"CompositeKey({inner})"


type EntityKey = Hashable | CompositeKey


class KeyExtractor[TEntity]:
    """Build keys for one entity type from a fixed, non-empty property list."""

    def __init__(self, metadata: EntityMetadata[TEntity], properties: Sequence[str]) -> None:
        if isinstance(properties, str):
            properties = (properties,)
        if not properties:
            raise ArgumentError(f"Key properties for {metadata.name} must not be empty")
        self.metadata = metadata
        self.properties = metadata.require_properties(properties, purpose="key")
        self.is_composite = len(self.properties) > 1

    def key(self, entity: TEntity) -> EntityKey:
        if not self.is_composite:
            return self.metadata.value(entity, self.properties[0])
        return CompositeKey(tuple(zip(self.properties, self.values(entity), strict=True)))

    def values(self, entity: TEntity) -> tuple[Any, ...]:
        """Key components in declared order, as used for query construction."""

        return self.metadata.values(entity, self.properties)

    def key_from_values(self, values: Sequence[Any]) -> EntityKey:
        if not self.is_composite:
            return values[0]
        return CompositeKey(tuple(zip(self.properties, values, strict=True)))
