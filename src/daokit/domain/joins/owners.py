"""Join key extraction for owner entities."""

from __future__ import annotations

from typing import TYPE_CHECKING

from daokit.domain.errors import ArgumentError

if TYPE_CHECKING:
    from collections.abc import Iterable

    from daokit.domain.metadata import EntityMetadata, RelationDescriptor
    from daokit.domain.ports import KeyValues


def keyed_owners[TOwner](
    metadata: EntityMetadata[TOwner],
    descriptor: RelationDescriptor,
    owners: Iterable[TOwner],
    *,
    allow_null_join_keys: bool,
) -> tuple[list[tuple[TOwner, KeyValues]], list[TOwner]]:
    """Split owners into ``(owner, join key)`` pairs and owners with a ``None`` join key.

    ``None`` join keys raise unless ``allow_null_join_keys`` is set.
    """

    keyed: list[tuple[TOwner, KeyValues]] = []
    unkeyed: list[TOwner] = []
    for owner in owners:
        key = metadata.values(owner, descriptor.owner_properties)
        if any(value is None for value in key):
            if not allow_null_join_keys:
                raise ArgumentError(
                    f"{metadata.name}.{descriptor.name}: join property "
                    f"{', '.join(descriptor.owner_properties)} is None"
                )
            unkeyed.append(owner)
            continue
        keyed.append((owner, key))
    return keyed, unkeyed


def distinct_keys(keyed: Iterable[tuple[object, KeyValues]]) -> list[KeyValues]:
    return list(dict.fromkeys(key for _, key in keyed))
