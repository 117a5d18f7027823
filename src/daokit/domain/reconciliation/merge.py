"""Property merging between an incoming entity and its stored counterpart."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Collection, Iterable

    from daokit.domain.metadata import EntityMetadata


def merge_into[TEntity](
    metadata: EntityMetadata[TEntity],
    source: TEntity,
    target: TEntity,
    *,
    exclude: Collection[str],
    merge_null_values: bool = False,
) -> TEntity:
    """Copy persisted properties of ``source`` onto ``target`` in place.

    Excluded properties keep the target's value. ``None`` values on the source are
    skipped unless ``merge_null_values`` is set.
    """

    for name in metadata.properties:
        if name in exclude:
            continue
        value = metadata.value(source, name)
        if value is None and not merge_null_values:
            continue
        metadata.set_value(target, name, value)
    return target


def copy_properties[TEntity](
    metadata: EntityMetadata[TEntity],
    source: TEntity,
    target: TEntity,
    names: Iterable[str],
) -> None:
    for name in names:
        metadata.set_value(target, name, metadata.value(source, name))
