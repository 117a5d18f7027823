"""Application configuration helpers."""

from __future__ import annotations

from .dao import DEFAULT_BATCH_SIZE, DEFAULT_JOIN_BATCH_SIZE, DaoConfig, get_dao_config
from .env import optional_int_env_var
from .errors import ConfigurationError
from .logging import configure_logging
from .storage import DatabaseConfig, StorageConfig, get_database_config, get_storage_config

__all__ = [
    "DEFAULT_BATCH_SIZE",
    "DEFAULT_JOIN_BATCH_SIZE",
    "ConfigurationError",
    "DaoConfig",
    "DatabaseConfig",
    "StorageConfig",
    "configure_logging",
    "get_dao_config",
    "get_database_config",
    "get_storage_config",
    "optional_int_env_var",
]
