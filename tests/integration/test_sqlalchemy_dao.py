from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from daokit import EntityDao
from daokit.adapters.sqlalchemy import SqlAlchemyStore
from daokit.config import DaoConfig
from daokit.domain.errors import StoreAccessError
from tests.helpers.models import (
    Account,
    Device,
    Employee,
    EmployeeProject,
    Item,
    Project,
    Statement,
    Transfer,
    User,
    make_user,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from daokit.adapters.tasks import ThreadPoolTaskRunner
    from daokit.domain.metadata import EntityRegistry
    from daokit.domain.ports import KeyValues


class FailingReceiverDeletes(SqlAlchemyStore):
    def batch_delete_by_foreign_key(
        self,
        entity_type: type,
        key_properties: Sequence[str],
        key_values: Sequence[KeyValues],
    ) -> int:
        if tuple(key_properties) == ("receiver_id",):
            raise StoreAccessError("receiver deletes are disabled")
        return super().batch_delete_by_foreign_key(entity_type, key_properties, key_values)


@pytest.fixture
def accounts_store(sqlite_store: SqlAlchemyStore) -> SqlAlchemyStore:
    sqlite_store.batch_insert(
        [Account(id=1, region="eu", number="1"), Account(id=2, region="eu", number="2")]
    )
    sqlite_store.batch_insert(
        [
            Transfer(id=1, sender_id=1, receiver_id=2, amount=10),
            Transfer(id=2, sender_id=2, receiver_id=1, amount=20),
            Transfer(id=3, sender_id=1, receiver_id=2, amount=30),
        ]
    )
    sqlite_store.batch_insert([Statement(id=1, region="eu", account_number="1")])
    return sqlite_store


def _transfer_ids(store: SqlAlchemyStore) -> list[int]:
    found = store.query_by_key_set(Transfer, ["id"], [(1,), (2,), (3,)])
    return sorted(transfer.id for transfer in found if transfer.id is not None)


def test_batch_upsert_example(registry: EntityRegistry, sqlite_store: SqlAlchemyStore) -> None:
    sqlite_store.batch_insert([Item(id=1, key="a", val=10)])
    items = EntityDao(Item, registry=registry, store=sqlite_store)

    persisted = items.batch_upsert([Item(id=1, key="a"), Item(key="b")], ["key"])

    assert persisted[0] == Item(id=1, key="a", val=10)
    assert persisted[1].key == "b"
    assert persisted[1].id is not None
    assert [item.key for item in items.batch_get([1, persisted[1].id])] == ["a", "b"]


def test_batch_upsert_in_chunks(registry: EntityRegistry, sqlite_store: SqlAlchemyStore) -> None:
    items = EntityDao(Item, registry=registry, store=sqlite_store, config=DaoConfig(batch_size=3))
    items.batch_upsert([Item(key=f"k{i}", val=i) for i in range(0, 10, 2)], ["key"])

    persisted = items.batch_upsert([Item(key=f"k{i}", val=100 + i) for i in range(10)], ["key"])

    assert [item.val for item in persisted] == [100 + i for i in range(10)]
    assert len({item.id for item in persisted}) == 10
    stored = sqlite_store.query_by_key_set(Item, ["key"], [(f"k{i}",) for i in range(10)])
    assert sorted(item.val or 0 for item in stored) == [100 + i for i in range(10)]


def test_load_relations_sequential_and_parallel(
    registry: EntityRegistry, accounts_store: SqlAlchemyStore, runner: ThreadPoolTaskRunner
) -> None:
    dao = EntityDao(Account, registry=registry, store=accounts_store, runner=runner)
    sequential = dao.batch_get([1, 2], all_relations=True)
    parallel = dao.batch_get([1, 2])

    dao.load_all_relations(parallel, parallel=True)

    assert [[t.id for t in account.sent or []] for account in sequential] == [[1, 3], [2]]
    assert [[t.id for t in account.received or []] for account in sequential] == [[2], [1, 3]]
    assert [len(account.statements or []) for account in sequential] == [1, 0]
    for left, right in zip(sequential, parallel, strict=True):
        assert left == right


def test_sequential_delete_is_atomic(
    registry: EntityRegistry, accounts_store: SqlAlchemyStore
) -> None:
    failing = FailingReceiverDeletes(
        registry, accounts_store.tables, engine=accounts_store.engine
    )
    dao = EntityDao(Account, registry=registry, store=failing)

    with pytest.raises(StoreAccessError, match="receiver deletes are disabled"):
        dao.delete_relation(Account(id=1), ["sent", "received"])

    assert _transfer_ids(accounts_store) == [1, 2, 3]


def test_sequential_delete_of_all_relations(
    registry: EntityRegistry, accounts_store: SqlAlchemyStore
) -> None:
    dao = EntityDao(Account, registry=registry, store=accounts_store)

    deleted = dao.delete_all_relations(dao.batch_get([1]))

    assert deleted == 2 + 1 + 1
    assert _transfer_ids(accounts_store) == []


def test_parallel_delete_sums_counts(
    registry: EntityRegistry, accounts_store: SqlAlchemyStore, runner: ThreadPoolTaskRunner
) -> None:
    dao = EntityDao(Account, registry=registry, store=accounts_store, runner=runner)

    with pytest.warns(DeprecationWarning):
        deleted = dao.delete_relation(Account(id=1), ["sent", "received"], parallel=True)

    assert deleted == 3
    assert _transfer_ids(accounts_store) == []


def test_refresh_and_load_if_unset(
    registry: EntityRegistry, sqlite_store: SqlAlchemyStore
) -> None:
    sqlite_store.batch_insert([make_user(1, name="Ada")])
    sqlite_store.batch_insert([Device(id=1, user_id=1, model="phone")])
    users = EntityDao(User, registry=registry, store=sqlite_store)
    ada = User(id=1)

    assert users.refresh(ada)
    users.load_relation_if_unset(ada, "devices")
    ada.devices = [*(ada.devices or []), Device(model="unsaved")]
    users.load_relation_if_unset(ada, "devices")

    assert ada.name == "Ada"
    assert [device.model for device in ada.devices] == ["phone", "unsaved"]


@pytest.fixture
def staffed_store(sqlite_store: SqlAlchemyStore) -> SqlAlchemyStore:
    sqlite_store.batch_insert([Employee(id=1, name="Ada"), Employee(id=2, name="Bob")])
    sqlite_store.batch_insert(
        [Project(id=10, title="Apollo"), Project(id=11, title="Gemini"), Project(title="X")]
    )
    sqlite_store.batch_insert(
        [
            EmployeeProject(employee_id=1, project_id=10),
            EmployeeProject(employee_id=1, project_id=11),
            EmployeeProject(employee_id=2, project_id=11),
        ]
    )
    return sqlite_store


def test_association_relations_load_in_both_directions(
    registry: EntityRegistry, staffed_store: SqlAlchemyStore, runner: ThreadPoolTaskRunner
) -> None:
    employees = EntityDao(Employee, registry=registry, store=staffed_store, runner=runner)
    projects = EntityDao(Project, registry=registry, store=staffed_store)

    ada, bob = employees.batch_get([1, 2], relations=["projects"])
    gemini = projects.get(11, all_relations=True)
    parallel = employees.batch_get([1, 2])
    employees.load_all_relations(parallel, parallel=True)

    assert sorted(project.title for project in ada.projects or []) == ["Apollo", "Gemini"]
    assert [project.title for project in bob.projects or []] == ["Gemini"]
    assert gemini is not None
    assert sorted(member.name for member in gemini.members or []) == ["Ada", "Bob"]
    assert [len(employee.projects or []) for employee in parallel] == [2, 1]


def test_association_delete_is_one_transaction(
    registry: EntityRegistry, staffed_store: SqlAlchemyStore
) -> None:
    employees = EntityDao(Employee, registry=registry, store=staffed_store)

    deleted = employees.delete_relation(Employee(id=1), "projects")

    remaining = staffed_store.query_by_key_set(Project, ["id"], [(10,), (11,), (12,)])
    links = staffed_store.query_by_key_set(EmployeeProject, ["employee_id"], [(1,), (2,)])
    assert deleted == 2 + 2
    assert [project.title for project in remaining] == ["X"]
    assert [(link.employee_id, link.project_id) for link in links] == [(2, 11)]
