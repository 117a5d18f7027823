from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine  # noqa: TC002

from daokit.adapters.sqlalchemy import SqlAlchemyStore, TableRegistry, shutdown, startup
from daokit.adapters.tasks import ThreadPoolTaskRunner
from daokit.domain.metadata import EntityRegistry  # noqa: TC001
from tests.helpers.fake_store import InMemoryStore
from tests.helpers.models import build_registry
from tests.helpers.tables import build_tables

os.environ.setdefault("DATABASE_URI", "sqlite+pysqlite:///:memory:")

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path


@pytest.fixture
def registry() -> EntityRegistry:
    return build_registry()


@pytest.fixture
def memory_store(registry: EntityRegistry) -> InMemoryStore:
    return InMemoryStore(registry)


@pytest.fixture
def tables(registry: EntityRegistry) -> TableRegistry:
    return build_tables(registry)


@pytest.fixture
def sqlite_engine(tmp_path: Path) -> Iterator[Engine]:
    # file-backed so that worker threads get their own connections to the same data
    engine = create_engine(f"sqlite+pysqlite:///{tmp_path / 'daokit.db'}")
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def sqlite_store(
    sqlite_engine: Engine, registry: EntityRegistry, tables: TableRegistry
) -> Iterator[SqlAlchemyStore]:
    startup(engine=sqlite_engine, tables=tables, force=True)
    try:
        yield SqlAlchemyStore(registry, tables)
    finally:
        shutdown()


@pytest.fixture
def runner() -> Iterator[ThreadPoolTaskRunner]:
    with ThreadPoolTaskRunner(max_workers=4) as task_runner:
        yield task_runner
