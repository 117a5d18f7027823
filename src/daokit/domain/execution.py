"""Transaction scoping and fan-out/fan-in helpers shared by the engines."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator, Sequence

    from .ports import Store, TaskRunner

log = logging.getLogger(__name__)


@contextmanager
def transactional(store: Store, *, needed: bool = True) -> Iterator[None]:
    """Run the block in one scoped transaction, or directly when ``needed`` is false.

    The transaction commits when the block completes and rolls back otherwise.
    """

    if not needed:
        yield
        return
    with store.begin_transaction() as transaction:
        yield
        transaction.commit()


def fan_out[TResult](runner: TaskRunner, units: Sequence[Callable[[], TResult]]) -> list[TResult]:
    """Submit every unit, then block until all of them have finished."""

    if not units:
        return []
    log.debug("Dispatching %d units of work", len(units))
    handles = [runner.submit(unit) for unit in units]
    return runner.await_all(handles)
