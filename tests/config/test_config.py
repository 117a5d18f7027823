from __future__ import annotations

import os

import pytest

from daokit.config import (
    DEFAULT_BATCH_SIZE,
    ConfigurationError,
    DaoConfig,
    get_dao_config,
    optional_int_env_var,
)


def test_optional_int_env_var(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("DAOKIT_BATCH_SIZE", raising=False)
    assert optional_int_env_var("DAOKIT_BATCH_SIZE", 5) == 5

    monkeypatch.setenv("DAOKIT_BATCH_SIZE", " 17 ")
    assert optional_int_env_var("DAOKIT_BATCH_SIZE", 5) == 17

    monkeypatch.setenv("DAOKIT_BATCH_SIZE", "many")
    with pytest.raises(ConfigurationError, match="DAOKIT_BATCH_SIZE"):
        optional_int_env_var("DAOKIT_BATCH_SIZE", 5)


def test_dao_config_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("DAOKIT_BATCH_SIZE", raising=False)
    monkeypatch.delenv("DAOKIT_JOIN_BATCH_SIZE", raising=False)

    config = get_dao_config()

    assert config == DaoConfig()
    assert config.batch_size == DEFAULT_BATCH_SIZE
    assert not config.merge_null_values
    assert not config.allow_null_join_keys


def test_dao_config_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DAOKIT_BATCH_SIZE", "50")
    monkeypatch.setenv("DAOKIT_JOIN_BATCH_SIZE", "10")

    config = get_dao_config()

    assert (config.batch_size, config.join_batch_size) == (50, 10)
    assert os.getenv("DAOKIT_BATCH_SIZE") == "50"


@pytest.mark.parametrize("field", ["batch_size", "join_batch_size"])
def test_dao_config_rejects_non_positive_sizes(field: str) -> None:
    with pytest.raises(ConfigurationError, match=field):
        DaoConfig(**{field: 0})
