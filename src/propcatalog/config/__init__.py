"""Application configuration helpers."""

from __future__ import annotations

from .catalog import CatalogApiConfig, build_catalog_resilience, get_catalog_api_config
from .env import env_flag, optional_env_var, parsed_env_var, require_env_vars
from .errors import ConfigurationError, InvalidConfigurationError, MissingConfigurationError
from .http_resilience import RateLimit, ResilienceConfig, RetryPolicy
from .logging import configure_logging
from .storage import DatabaseConfig, StorageConfig, get_database_config, get_storage_config

__all__ = [
    "CatalogApiConfig",
    "ConfigurationError",
    "DatabaseConfig",
    "InvalidConfigurationError",
    "MissingConfigurationError",
    "RateLimit",
    "ResilienceConfig",
    "RetryPolicy",
    "StorageConfig",
    "build_catalog_resilience",
    "configure_logging",
    "env_flag",
    "get_catalog_api_config",
    "get_database_config",
    "get_storage_config",
    "optional_env_var",
    "parsed_env_var",
    "require_env_vars",
]
