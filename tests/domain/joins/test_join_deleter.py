from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from daokit.config import DaoConfig
from daokit.domain.errors import ArgumentError, StoreAccessError
from daokit.domain.joins import JoinDeleter, JoinGraphResolver
from daokit.domain.metadata import EntityRegistry  # noqa: TC001
from tests.helpers.fake_store import InMemoryStore  # noqa: TC001
from tests.helpers.models import (
    Account,
    Device,
    Employee,
    EmployeeProject,
    Project,
    Statement,
    Transfer,
    User,
    make_user,
)

if TYPE_CHECKING:
    from daokit.adapters.tasks import ThreadPoolTaskRunner


def _deleter[T](
    registry: EntityRegistry,
    store: InMemoryStore,
    owner_type: type[T],
    *,
    runner: ThreadPoolTaskRunner | None = None,
    **config: int | bool,
) -> JoinDeleter[T]:
    return JoinDeleter(
        JoinGraphResolver(registry, owner_type),
        store,
        config=DaoConfig(**config),
        runner=runner,
    )


@pytest.fixture
def seeded(memory_store: InMemoryStore) -> InMemoryStore:
    memory_store.seed(
        Device(id=1, user_id=1),
        Device(id=2, user_id=1),
        Device(id=3, user_id=2),
        Transfer(id=1, sender_id=1, receiver_id=2),
        Transfer(id=2, sender_id=2, receiver_id=1),
        Transfer(id=3, sender_id=3, receiver_id=1),
        Statement(id=1, region="eu", account_number="1"),
    )
    return memory_store


def test_single_relation_is_one_store_call(
    registry: EntityRegistry, seeded: InMemoryStore
) -> None:
    deleted = _deleter(registry, seeded, User).delete([make_user(1), make_user(3)], Device)

    (call,) = seeded.calls_for("delete")
    assert deleted == 2
    assert call.keys == (("user_id",), (1,), (3,))
    assert not call.in_transaction
    assert [device.id for device in seeded.stored(Device)] == [3]


def test_sequential_multi_relation_delete_is_one_transaction(
    registry: EntityRegistry, seeded: InMemoryStore
) -> None:
    account = Account(id=1, region="eu", number="1")

    deleted = _deleter(registry, seeded, Account).delete_many(
        [account], ["sent", "received", "statements"]
    )

    assert deleted == 4
    assert len(seeded.transactions) == 1
    assert seeded.transactions[0].committed
    assert all(call.in_transaction for call in seeded.calls_for("delete"))
    assert seeded.stored(Transfer) == []
    assert seeded.stored(Statement) == []


def test_sequential_delete_rolls_back_every_relation(
    registry: EntityRegistry, seeded: InMemoryStore
) -> None:
    seeded.fail_when(lambda call: call.operation == "delete" and call.keys[0] == ("receiver_id",))

    with pytest.raises(StoreAccessError):
        _deleter(registry, seeded, Account).delete_many([Account(id=1)], ["sent", "received"])

    assert len(seeded.calls_for("delete")) == 2
    assert [transfer.id for transfer in seeded.stored(Transfer)] == [1, 2, 3]


def test_parallel_delete_sums_independent_counts(
    registry: EntityRegistry, seeded: InMemoryStore, runner: ThreadPoolTaskRunner
) -> None:
    owners = [Account(id=1, region="eu", number="1"), Account(id=4)]
    deleter = _deleter(registry, seeded, Account, runner=runner, allow_null_join_keys=True)

    with pytest.warns(DeprecationWarning, match="not atomic"):
        deleted = deleter.delete_many(owners, ["sent", "received", "statements"], parallel=True)

    assert deleted == 1 + 2 + 1
    assert seeded.transactions == []
    assert seeded.stored(Transfer) == []


def test_parallel_delete_is_not_atomic(
    registry: EntityRegistry, seeded: InMemoryStore, runner: ThreadPoolTaskRunner
) -> None:
    seeded.fail_when(lambda call: call.operation == "delete" and call.keys[0] == ("receiver_id",))

    with pytest.warns(DeprecationWarning), pytest.raises(StoreAccessError):
        _deleter(registry, seeded, Account, runner=runner).delete_many(
            [Account(id=1)], ["sent", "received"], parallel=True
        )

    assert [transfer.id for transfer in seeded.stored(Transfer)] == [2, 3]


def test_parallel_delete_requires_a_runner(
    registry: EntityRegistry, seeded: InMemoryStore
) -> None:
    with pytest.raises(ArgumentError, match="task runner"):
        _deleter(registry, seeded, Account).delete_many([Account(id=1)], ["sent"], parallel=True)


def test_ambiguous_type_fails_before_any_store_call(
    registry: EntityRegistry, seeded: InMemoryStore
) -> None:
    with pytest.raises(ArgumentError):
        _deleter(registry, seeded, Account).delete([Account(id=1)], Transfer)

    assert seeded.calls == []


def test_nothing_to_delete_makes_no_calls(
    registry: EntityRegistry, seeded: InMemoryStore
) -> None:
    deleter = _deleter(registry, seeded, User, allow_null_join_keys=True)

    assert deleter.delete_many([], ["devices", "address"]) == 0
    assert deleter.delete([User()], "devices") == 0
    assert seeded.calls == []
    assert seeded.transactions == []


def test_null_join_key_is_rejected_by_default(
    registry: EntityRegistry, seeded: InMemoryStore
) -> None:
    with pytest.raises(ArgumentError, match="is None"):
        _deleter(registry, seeded, User).delete([User()], "devices")


@pytest.fixture
def staffed(memory_store: InMemoryStore) -> InMemoryStore:
    memory_store.seed(
        Project(id=10, title="Apollo"),
        Project(id=11, title="Gemini"),
        Project(id=12, title="Mercury"),
        EmployeeProject(employee_id=1, project_id=10),
        EmployeeProject(employee_id=1, project_id=11),
        EmployeeProject(employee_id=2, project_id=12),
    )
    return memory_store


def _links(store: InMemoryStore) -> list[tuple[int | None, int | None]]:
    return [(link.employee_id, link.project_id) for link in store.stored(EmployeeProject)]


def test_association_delete_removes_links_and_targets(
    registry: EntityRegistry, staffed: InMemoryStore
) -> None:
    deleted = _deleter(registry, staffed, Employee).delete([Employee(id=1)], "projects")

    links, projects = staffed.calls_for("delete")
    assert deleted == 2 + 2
    assert links.keys == (("employee_id",), (1,))
    assert projects.keys == (("id",), (10,), (11,))
    assert all(call.in_transaction for call in staffed.calls)
    assert [transaction.committed for transaction in staffed.transactions] == [True]
    assert [project.id for project in staffed.stored(Project)] == [12]
    assert _links(staffed) == [(2, 12)]


def test_association_delete_rolls_back_links(
    registry: EntityRegistry, staffed: InMemoryStore
) -> None:
    staffed.fail_when(lambda call: call.operation == "delete" and call.entity_type is Project)

    with pytest.raises(StoreAccessError):
        _deleter(registry, staffed, Employee).delete([Employee(id=1)], Project)

    assert _links(staffed) == [(1, 10), (1, 11), (2, 12)]
    assert len(staffed.stored(Project)) == 3


def test_association_delete_without_links_deletes_no_targets(
    registry: EntityRegistry, staffed: InMemoryStore
) -> None:
    deleted = _deleter(registry, staffed, Employee).delete([Employee(id=3)], "projects")

    assert deleted == 0
    assert [call.entity_type for call in staffed.calls_for("delete")] == [EmployeeProject]
    assert len(staffed.stored(Project)) == 3
