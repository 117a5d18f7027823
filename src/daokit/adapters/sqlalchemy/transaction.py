"""Scoped transactions bound to the calling context."""

from __future__ import annotations

import logging
from contextvars import ContextVar
from typing import TYPE_CHECKING, Literal, Self

from sqlalchemy.exc import SQLAlchemyError

from daokit.domain.errors import StoreAccessError

if TYPE_CHECKING:
    from contextvars import Token
    from types import TracebackType

    from sqlalchemy.engine import Connection, Engine, RootTransaction

log = logging.getLogger(__name__)

_current: ContextVar[SqlAlchemyTransaction | None] = ContextVar(
    "daokit_transaction", default=None
)


def current_transaction() -> SqlAlchemyTransaction | None:
    """Return the transaction bound to this context, if any.

    Worker threads start without a binding.
    """

    return _current.get()


class SqlAlchemyTransaction:
    """Connection-level transaction that rolls back unless committed.

    Entering while another transaction is bound joins it: the inner scope shares the
    outer connection and leaves commit and rollback to the outer scope.
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._outer: SqlAlchemyTransaction | None = None
        self._connection: Connection | None = None
        self._transaction: RootTransaction | None = None
        self._token: Token[SqlAlchemyTransaction | None] | None = None
        self._committed = False

    @property
    def committed(self) -> bool:
        return self._committed

    @property
    def joined(self) -> bool:
        return self._outer is not None

    @property
    def connection(self) -> Connection:
        if self._outer is not None:
            return self._outer.connection
        if self._connection is None:
            raise StoreAccessError("Transaction is not active")
        return self._connection

    def __enter__(self) -> Self:
        if self._connection is not None or self._outer is not None:
            raise StoreAccessError("Transaction already entered")
        outer = _current.get()
        if outer is not None:
            self._outer = outer
            return self
        try:
            self._connection = self._engine.connect()
            self._transaction = self._connection.begin()
        except SQLAlchemyError as exc:
            self._close()
            raise StoreAccessError(f"Could not begin transaction: {exc}") from exc
        self._token = _current.set(self)
        log.debug("Began transaction")
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> Literal[False]:
        try:
            self.rollback_if_not_committed()
        finally:
            self._close()
        return False

    def commit(self) -> None:
        if self._committed:
            raise StoreAccessError("Transaction already committed")
        if self._outer is None:
            if self._transaction is None:
                raise StoreAccessError("Transaction is not active")
            try:
                self._transaction.commit()
            except SQLAlchemyError as exc:
                raise StoreAccessError(f"Commit failed: {exc}") from exc
            log.debug("Committed transaction")
        self._committed = True

    def rollback_if_not_committed(self) -> None:
        if self._committed or self._outer is not None:
            return
        if self._transaction is not None and self._transaction.is_active:
            try:
                self._transaction.rollback()
            except SQLAlchemyError as exc:
                raise StoreAccessError(f"Rollback failed: {exc}") from exc
            log.debug("Rolled back transaction")

    def _close(self) -> None:
        if self._token is not None:
            _current.reset(self._token)
            self._token = None
        if self._connection is not None:
            self._connection.close()
            self._connection = None
        self._transaction = None
