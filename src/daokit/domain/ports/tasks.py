"""Port for fire-and-collect concurrent execution."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from concurrent.futures import Future


@runtime_checkable
class TaskRunner(Protocol):
    """Caller-supplied pool of workers for the parallel join variants.

    ``await_all`` blocks until every handle has finished. It returns results in
    submission order or re-raises the first failure once all units are done.
    Units are never cancelled.
    """

    def submit[TResult](self, unit: Callable[[], TResult]) -> Future[TResult]: ...

    def await_all[TResult](self, handles: Sequence[Future[TResult]]) -> list[TResult]: ...
