"""Logging setup for applications embedding daokit."""

from __future__ import annotations

import logging

SQL_LOGGER = "sqlalchemy.engine"


def configure_logging(
    *, level: int = logging.INFO, echo_sql: bool = False, force: bool = False
) -> None:
    """Initialise the root logger with a terse format.

    daokit logs chunk queries and per-call summaries at DEBUG under ``daokit.*``.
    ``echo_sql=True`` also raises the SQLAlchemy engine logger to INFO, which logs
    every statement the store issues. Pass ``force=True`` to replace handlers that
    are already installed.
    """

    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%H:%M:%S",
        force=force,
    )
    logging.getLogger(SQL_LOGGER).setLevel(logging.INFO if echo_sql else logging.WARNING)
