#!/usr/bin/env python3
"""Persistent content cache with TTL and filesystem staleness for dirindex.

This module provides the cache used by every request:
- Categories (namespaces) for directory listings, API data, icons, ...
- Optional per-entry TTL with an absolute expiry instant
- Staleness of directory listings driven by modification fingerprints
- Backend selection with permanent fallback from SQLite to a JSON file
- Best-effort semantics: backend failures are logged and become misses

Example:
    >>> cache = open_cache_store(config, LocalFileSystem(config.root_dir))
    >>> cache.set("docs_sort_name_asc", CacheCategory.DIRECTORY, listing)
    >>> cache.get("docs_sort_name_asc", CacheCategory.DIRECTORY)
    >>> cache.cleanup()
"""

import os
import sqlite3
import time
from enum import Enum
from typing import Any, Callable, Optional, Union

from dirindex.core.constants import INDEX_CACHE_SUBDIR, INTERNAL_FOLDER_NAME, CacheType, Limits
from dirindex.core.filesystem import FileSystem, path_last_modified
from dirindex.core.paths import normalize_relative_path, strip_sort_suffix
from dirindex.infrastructure.cache_backends import (
    CacheBackend,
    CacheBackendError,
    CacheBackendUnavailable,
    CacheEntry,
    JSONFileBackend,
    SQLiteBackend,
)
from dirindex.infrastructure.config_manager import IndexerConfig
from dirindex.infrastructure.logger import Logger, get_logger


class CacheCategory(str, Enum):
    """Well-known cache namespaces."""

    DIRECTORY = "directory"  # Folder listings, invalidated by mtime fingerprint
    API = "api"  # Remote API responses
    ICON = "icon"  # Icon lookups
    VERSION = "version"  # Remote version checks
    FILEVIEW = "fileview"  # Rendered file views


Category = Union[CacheCategory, str]

# Failures that turn a cache operation into a miss or a no-op
_SOFT_ERRORS = (CacheBackendError, OSError, sqlite3.Error)


def _category_name(category: Category) -> str:
    if isinstance(category, CacheCategory):
        return category.value
    return str(category)


class CacheStore:
    """Key/value cache over a pluggable backend.

    Entries of the ``directory`` category carry the modification
    fingerprint of the listed folder and are dropped as soon as the
    folder, its children, its grandchildren or the configuration file
    change. Other categories carry their write time and expire only by TTL.
    """

    def __init__(
        self,
        backend: CacheBackend,
        fs: FileSystem,
        config_file: Optional[str] = None,
        clock: Callable[[], float] = time.time,
        fingerprint_depth: Optional[int] = Limits.FINGERPRINT_DEPTH,
        logger: Optional[Logger] = None,
    ):
        """Initialize cache store.

        Args:
            backend: Record store
            fs: Filesystem used for directory fingerprints
            config_file: Active configuration file, part of every fingerprint
            clock: Source of the current time in seconds
            fingerprint_depth: Levels inspected below a folder (None = all)
            logger: Optional logger
        """
        self.backend = backend
        self.fs = fs
        self.config_file = config_file
        self.clock = clock
        self.fingerprint_depth = fingerprint_depth
        self.logger = logger or get_logger("dirindex.cache")

    @property
    def backend_name(self) -> str:
        return self.backend.name

    def fingerprint(self, key: str) -> float:
        """Compute the current fingerprint of the folder a listing key addresses."""
        path = normalize_relative_path(strip_sort_suffix(key))
        return path_last_modified(self.fs, path, self.config_file, self.fingerprint_depth)

    def get(self, key: str, category: Category = CacheCategory.DIRECTORY) -> Optional[Any]:
        """Get a cached payload.

        Args:
            key: Cache key
            category: Cache namespace

        Returns:
            Stored payload, or None if absent, expired or stale
        """
        category = _category_name(category)
        try:
            entry = self.backend.read(key, category)
            if entry is None:
                self.logger.debug("Cache miss", key=key, category=category)
                return None

            if entry.is_expired(self.clock()):
                self.backend.delete(key, category)
                self.logger.debug("Cache entry expired", key=key, category=category)
                return None

            if category == CacheCategory.DIRECTORY.value:
                current = self.fingerprint(key)
                if entry.last_modified < current:
                    self.backend.delete(key, category)
                    self.logger.debug(
                        "Cache entry stale",
                        key=key,
                        stored=entry.last_modified,
                        current=current,
                    )
                    return None

            return entry.payload

        except _SOFT_ERRORS as e:
            self.logger.warning("Cache read failed", key=key, category=category, error=e)
            return None

    def set(
        self,
        key: str,
        category: Category,
        payload: Any,
        ttl: Optional[float] = None,
    ) -> None:
        """Store a payload, replacing any entry with the same key and category.

        Args:
            key: Cache key
            category: Cache namespace
            payload: JSON-serializable value
            ttl: Optional time-to-live in seconds
        """
        category = _category_name(category)
        try:
            now = self.clock()
            if category == CacheCategory.DIRECTORY.value:
                last_modified = self.fingerprint(key)
            else:
                last_modified = now

            entry = CacheEntry(
                key=key,
                category=category,
                payload=payload,
                last_modified=last_modified,
                expires_at=now + ttl if ttl else None,
            )
            self.backend.write(entry)

        except _SOFT_ERRORS as e:
            self.logger.warning("Cache write failed", key=key, category=category, error=e)

    def has(self, key: str, category: Category = CacheCategory.DIRECTORY) -> bool:
        return self.get(key, category) is not None

    def cleanup(self) -> int:
        """Remove every entry whose expiry instant has passed.

        Returns:
            Number of entries removed
        """
        try:
            removed = self.backend.delete_expired(self.clock())
        except _SOFT_ERRORS as e:
            self.logger.warning("Cache cleanup failed", error=e)
            return 0

        if removed:
            self.logger.debug("Cache cleanup", removed=removed)
        return removed

    def clear(self, category: Optional[Category] = None) -> int:
        """Drop one category, or every entry when no category is given.

        Returns:
            Number of entries removed
        """
        try:
            if category is None:
                return self.backend.delete_all()
            return self.backend.delete_category(_category_name(category))
        except _SOFT_ERRORS as e:
            self.logger.warning("Cache clear failed", category=category, error=e)
            return 0

    def close(self) -> None:
        self.backend.close()


def default_cache_dir(root_dir: str) -> str:
    """Return the cache directory inside a served directory."""
    return os.path.join(root_dir, INTERNAL_FOLDER_NAME, INDEX_CACHE_SUBDIR)


def open_backend(cache_type: CacheType, cache_dir: str, logger: Optional[Logger] = None) -> CacheBackend:
    """Create the configured backend, falling back to the JSON file.

    The fallback is permanent for the returned backend: a SQLite failure is
    never retried during the same request.

    Args:
        cache_type: Configured backend
        cache_dir: Directory for cache files
        logger: Optional logger

    Returns:
        Ready backend
    """
    if cache_type == CacheType.SQLITE:
        try:
            return SQLiteBackend(cache_dir)
        except CacheBackendUnavailable as e:
            (logger or get_logger("dirindex.cache")).warning(
                "SQLite cache unavailable, using JSON file", error=e.message
            )
    return JSONFileBackend(cache_dir)


def open_cache_store(
    config: IndexerConfig,
    fs: FileSystem,
    clock: Callable[[], float] = time.time,
    logger: Optional[Logger] = None,
) -> CacheStore:
    """Build the cache store for one request.

    Args:
        config: Request configuration
        fs: Filesystem of the served tree
        clock: Source of the current time
        logger: Optional logger

    Returns:
        Cache store over the selected backend
    """
    logger = logger or get_logger("dirindex.cache")
    cache_dir = config.cache_dir or default_cache_dir(config.root_dir or os.getcwd())
    backend = open_backend(config.cache_type, cache_dir, logger)
    return CacheStore(
        backend,
        fs,
        config_file=config.config_file,
        clock=clock,
        fingerprint_depth=config.fingerprint_depth,
        logger=logger,
    )
