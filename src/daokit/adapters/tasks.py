"""Thread-pool backed task runner for the parallel join variants."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import TYPE_CHECKING, Literal, Self

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from concurrent.futures import Future
    from types import TracebackType

log = logging.getLogger(__name__)


class ThreadPoolTaskRunner:
    """Run units of work on a ``ThreadPoolExecutor``.

    Units run in fresh threads and therefore outside any transaction bound by the
    caller. Nothing is cancelled: ``await_all`` waits for every unit, then re-raises
    the first failure in completion order.
    """

    def __init__(
        self, max_workers: int | None = None, *, thread_name_prefix: str = "daokit"
    ) -> None:
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix=thread_name_prefix
        )

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> Literal[False]:
        self.shutdown()
        return False

    def submit[TResult](self, unit: Callable[[], TResult]) -> Future[TResult]:
        return self._executor.submit(unit)

    def await_all[TResult](self, handles: Sequence[Future[TResult]]) -> list[TResult]:
        first_failure: BaseException | None = None
        for handle in as_completed(handles):
            failure = handle.exception()
            if failure is not None and first_failure is None:
                first_failure = failure
        if first_failure is not None:
            failed = sum(1 for handle in handles if handle.exception() is not None)
            log.debug("%d of %d units failed", failed, len(handles))
            raise first_failure
        return [handle.result() for handle in handles]

    def shutdown(self, *, wait_for_units: bool = True) -> None:
        self._executor.shutdown(wait=wait_for_units)
