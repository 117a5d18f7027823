"""Batching and merge defaults for DAO operations."""

from __future__ import annotations

from dataclasses import dataclass

from .env import optional_int_env_var
from .errors import ConfigurationError

DEFAULT_BATCH_SIZE = 200
DEFAULT_JOIN_BATCH_SIZE = 200


@dataclass(frozen=True, slots=True)
class DaoConfig:
    """Tunables shared by upsert reconciliation and join loading.

    ``batch_size`` bounds every lookup, insert and update chunk of a batch upsert.
    ``join_batch_size`` bounds how many owners go into one related-rows query.
    ``merge_null_values`` copies ``None`` values of incoming entities onto matched rows
    during an upsert; by default they are treated as "not provided".
    ``allow_null_join_keys`` lets owners with a ``None`` join key be assigned an empty
    relation instead of raising.
    """

    batch_size: int = DEFAULT_BATCH_SIZE
    join_batch_size: int = DEFAULT_JOIN_BATCH_SIZE
    merge_null_values: bool = False
    allow_null_join_keys: bool = False

    def __post_init__(self) -> None:
        if self.batch_size <= 0:
            raise ConfigurationError(f"batch_size must be positive, got {self.batch_size}")
        if self.join_batch_size <= 0:
            raise ConfigurationError(
                f"join_batch_size must be positive, got {self.join_batch_size}"
            )


def get_dao_config() -> DaoConfig:
    return DaoConfig(
        batch_size=optional_int_env_var("DAOKIT_BATCH_SIZE", DEFAULT_BATCH_SIZE),
        join_batch_size=optional_int_env_var("DAOKIT_JOIN_BATCH_SIZE", DEFAULT_JOIN_BATCH_SIZE),
    )
