"""dirindex Infrastructure Layer.

This layer provides the services the policy engine and the listing flow
build on:
- ConfigManager: Layered configuration, frozen into IndexerConfig per request
- CacheStore: Persistent content cache with TTL and mtime staleness
- Logger: Structured logging system
"""

from .cache_backends import (
    CacheBackend,
    CacheBackendError,
    CacheBackendUnavailable,
    CacheEntry,
    CacheStoreClosed,
    JSONFileBackend,
    SQLiteBackend,
)
from .cache_manager import CacheCategory, CacheStore, open_backend, open_cache_store
from .config_manager import (
    ConfigError,
    ConfigManager,
    ConfigSource,
    IndexerConfig,
    default_config_path,
    load_config,
)
from .logger import Logger, LogLevel, configure_logging, get_logger

__all__ = [
    # Logger exports
    "Logger",
    "LogLevel",
    "get_logger",
    "configure_logging",
    # Cache exports
    "CacheEntry",
    "CacheCategory",
    "CacheBackend",
    "SQLiteBackend",
    "JSONFileBackend",
    "CacheBackendError",
    "CacheBackendUnavailable",
    "CacheStoreClosed",
    "CacheStore",
    "open_backend",
    "open_cache_store",
    # ConfigManager exports
    "ConfigSource",
    "ConfigError",
    "ConfigManager",
    "IndexerConfig",
    "default_config_path",
    "load_config",
]
