"""Bounded, order-preserving chunking of entity and key sequences."""

from __future__ import annotations

from itertools import batched
from typing import TYPE_CHECKING

from .errors import ArgumentError

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator


def require_positive(batch_size: int, *, name: str = "batch_size") -> int:
    if batch_size <= 0:
        raise ArgumentError(f"{name} must be positive, got {batch_size}")
    return batch_size


def split[T](items: Iterable[T], batch_size: int) -> Iterator[list[T]]:
    """Return consecutive chunks of at most ``batch_size`` items; validates eagerly."""

    require_positive(batch_size)
    return (list(chunk) for chunk in batched(items, batch_size))
