"""Application configuration helpers."""

from __future__ import annotations

from .catalog import CatalogConfig, get_catalog_config
from .env import optional_env_int, require_env_vars
from .errors import ConfigurationError, MissingConfigurationError
from .http_resilience import CacheConfig, RateLimit, ResilienceConfig, RetryPolicy
from .images import PLACEHOLDER_IMAGE_URL, ImageStorageConfig, get_image_storage_config
from .logging import configure_logging
from .storage import (
    DatabaseConfig,
    DocumentStoreConfig,
    StorageConfig,
    StoreBackend,
    get_database_config,
    get_document_store_config,
    get_storage_config,
)
from .sync import SyncConfig, get_sync_config

__all__ = [
    "PLACEHOLDER_IMAGE_URL",
    "CacheConfig",
    "CatalogConfig",
    "ConfigurationError",
    "DatabaseConfig",
    "DocumentStoreConfig",
    "ImageStorageConfig",
    "MissingConfigurationError",
    "RateLimit",
    "ResilienceConfig",
    "RetryPolicy",
    "StorageConfig",
    "StoreBackend",
    "SyncConfig",
    "configure_logging",
    "get_catalog_config",
    "get_database_config",
    "get_document_store_config",
    "get_image_storage_config",
    "get_storage_config",
    "get_sync_config",
    "optional_env_int",
    "require_env_vars",
]
