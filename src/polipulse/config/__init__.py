"""Application configuration helpers."""

from __future__ import annotations

from .env import env_int, optional_env_var, require_env_vars
from .errors import ConfigurationError, InvalidConfigurationError, MissingConfigurationError
from .http_resilience import RateLimit, ResilienceConfig, RetryPolicy
from .imports import DEFAULT_IMPORT_WORKERS, ImportConfig, get_import_config
from .logging import configure_logging
from .postgrest import PostgrestConfig, get_postgrest_config
from .storage import (
    DatabaseConfig,
    StorageConfig,
    StoreBackend,
    get_database_config,
    get_storage_config,
    get_store_backend,
)

__all__ = [
    "DEFAULT_IMPORT_WORKERS",
    "ConfigurationError",
    "DatabaseConfig",
    "ImportConfig",
    "InvalidConfigurationError",
    "MissingConfigurationError",
    "PostgrestConfig",
    "RateLimit",
    "ResilienceConfig",
    "RetryPolicy",
    "StorageConfig",
    "StoreBackend",
    "configure_logging",
    "env_int",
    "get_database_config",
    "get_import_config",
    "get_postgrest_config",
    "get_storage_config",
    "get_store_backend",
    "optional_env_var",
    "require_env_vars",
]
