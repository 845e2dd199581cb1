#!/usr/bin/env python3
"""Persistent storage backends for the dirindex cache.

Two interchangeable backends implement the same record store:
- SQLiteBackend: one ``cache.sqlite`` database, one table keyed by
  (cache_key, cache_type); every write is a single transactional upsert
- JSONFileBackend: one ``cache.json`` file mapping "<category>:<key>" to a
  record; every write re-reads and rewrites the whole file

The JSON backend is not safe under concurrent writers: two requests that
read the file before either writes it back will lose one update. The
rewrite itself goes through an atomic rename, so a reader never sees a
partially written file.

Backends only store and delete records. Expiry and staleness decisions
live in ``dirindex.infrastructure.cache_manager``.
"""

import json
import os
import sqlite3
import tempfile
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

from dirindex.core.constants import CACHE_TABLE, JSON_CACHE_FILE, SQLITE_CACHE_FILE, ErrorCode


class CacheBackendError(Exception):
    """I/O failure inside a cache backend."""

    def __init__(self, message: str, error_code: ErrorCode = ErrorCode.INTERNAL_ERROR):
        self.message = message
        self.error_code = error_code
        super().__init__(message)


class CacheBackendUnavailable(CacheBackendError):
    """Backend could not be initialized."""

    def __init__(self, message: str):
        super().__init__(message, ErrorCode.DEPENDENCY_ERROR)


class CacheStoreClosed(Exception):
    """A backend was used after ``close()``."""


@dataclass(frozen=True)
class CacheEntry:
    """One stored cache record."""

    key: str
    category: str
    payload: Any
    last_modified: float
    expires_at: Optional[float] = None

    def is_expired(self, now: float) -> bool:
        """Check if the entry's absolute expiry instant has passed.

        Args:
            now: Current time in seconds since the epoch

        Returns:
            True if expired
        """
        return bool(self.expires_at) and now > self.expires_at


class CacheBackend(ABC):
    """Record store used by CacheStore."""

    name = "backend"

    @abstractmethod
    def read(self, key: str, category: str) -> Optional[CacheEntry]:
        """Return the record for (key, category), or None."""

    @abstractmethod
    def write(self, entry: CacheEntry) -> None:
        """Insert or fully replace the record for (entry.key, entry.category)."""

    @abstractmethod
    def delete(self, key: str, category: str) -> None:
        """Remove one record if present."""

    @abstractmethod
    def delete_expired(self, now: float) -> int:
        """Remove every record whose expiry instant is before ``now``."""

    @abstractmethod
    def delete_category(self, category: str) -> int:
        """Remove every record of one category."""

    @abstractmethod
    def delete_all(self) -> int:
        """Remove every record."""

    def close(self) -> None:
        """Release resources held by the backend."""


class SQLiteBackend(CacheBackend):
    """Cache records in a SQLite database."""

    name = "sqlite"

    def __init__(self, cache_dir: str, timeout: float = 5.0):
        """Open or create the cache database.

        Args:
            cache_dir: Directory holding cache.sqlite
            timeout: Seconds to wait for a lock held by another process

        Raises:
            CacheBackendUnavailable: If the database cannot be opened
        """
        self.cache_dir = cache_dir
        self.db_path = os.path.join(cache_dir, SQLITE_CACHE_FILE)
        self._lock = threading.RLock()
        self._conn: Optional[sqlite3.Connection] = None

        try:
            os.makedirs(cache_dir, mode=0o755, exist_ok=True)
            conn = sqlite3.connect(self.db_path, timeout=timeout, check_same_thread=False)
            with conn:
                conn.execute(
                    f"""CREATE TABLE IF NOT EXISTS {CACHE_TABLE} (
                        cache_key TEXT NOT NULL,
                        cache_type TEXT NOT NULL,
                        data TEXT NOT NULL,
                        last_modified REAL NOT NULL,
                        expires_at REAL DEFAULT NULL,
                        PRIMARY KEY (cache_key, cache_type)
                    )"""
                )
                conn.execute(
                    f"CREATE INDEX IF NOT EXISTS idx_cache_type ON {CACHE_TABLE}(cache_type)"
                )
                conn.execute(
                    f"CREATE INDEX IF NOT EXISTS idx_expires_at ON {CACHE_TABLE}(expires_at)"
                )
        except (sqlite3.Error, OSError) as e:
            raise CacheBackendUnavailable(f"Cannot open cache database {self.db_path}: {e}")

        self._conn = conn

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise CacheStoreClosed(f"Cache database {self.db_path} is closed")
        return self._conn

    def read(self, key: str, category: str) -> Optional[CacheEntry]:
        with self._lock:
            conn = self._connection()
            try:
                row = conn.execute(
                    f"SELECT data, last_modified, expires_at FROM {CACHE_TABLE} "
                    "WHERE cache_key = ? AND cache_type = ?",
                    (key, category),
                ).fetchone()
            except sqlite3.Error as e:
                raise CacheBackendError(f"Cache read failed: {e}")

        if row is None:
            return None

        data, last_modified, expires_at = row
        try:
            payload = json.loads(data)
        except ValueError as e:
            raise CacheBackendError(f"Corrupt cache record {category}:{key}: {e}")

        return CacheEntry(
            key=key,
            category=category,
            payload=payload,
            last_modified=last_modified,
            expires_at=expires_at,
        )

    def write(self, entry: CacheEntry) -> None:
        try:
            data = json.dumps(entry.payload)
        except (TypeError, ValueError) as e:
            raise CacheBackendError(f"Payload for {entry.category}:{entry.key} is not serializable: {e}")

        with self._lock:
            conn = self._connection()
            try:
                with conn:
                    conn.execute(
                        f"INSERT OR REPLACE INTO {CACHE_TABLE} "
                        "(cache_key, cache_type, data, last_modified, expires_at) "
                        "VALUES (?, ?, ?, ?, ?)",
                        (entry.key, entry.category, data, entry.last_modified, entry.expires_at),
                    )
            except sqlite3.Error as e:
                raise CacheBackendError(f"Cache write failed: {e}")

    def _execute_delete(self, where: str, params: tuple) -> int:
        with self._lock:
            conn = self._connection()
            try:
                with conn:
                    cursor = conn.execute(f"DELETE FROM {CACHE_TABLE} {where}", params)
                    return cursor.rowcount
            except sqlite3.Error as e:
                raise CacheBackendError(f"Cache delete failed: {e}")

    def delete(self, key: str, category: str) -> None:
        self._execute_delete("WHERE cache_key = ? AND cache_type = ?", (key, category))

    def delete_expired(self, now: float) -> int:
        return self._execute_delete("WHERE expires_at IS NOT NULL AND expires_at < ?", (now,))

    def delete_category(self, category: str) -> int:
        return self._execute_delete("WHERE cache_type = ?", (category,))

    def delete_all(self) -> int:
        return self._execute_delete("", ())

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None


class JSONFileBackend(CacheBackend):
    """Cache records in a single JSON document.

    Not safe for concurrent writers; see the module docstring.
    """

    name = "json"

    def __init__(self, cache_dir: str):
        """Initialize JSON backend.

        Args:
            cache_dir: Directory holding cache.json
        """
        self.cache_dir = cache_dir
        self.cache_file = os.path.join(cache_dir, JSON_CACHE_FILE)
        self._lock = threading.RLock()
        self._closed = False

    @staticmethod
    def _record_key(key: str, category: str) -> str:
        return f"{category}:{key}"

    def _check_open(self) -> None:
        if self._closed:
            raise CacheStoreClosed(f"Cache file {self.cache_file} is closed")

    def _load(self) -> Dict[str, Dict[str, Any]]:
        """Read the whole document; a missing or corrupt file reads as empty."""
        try:
            with open(self.cache_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except ValueError:
            return {}
        except OSError as e:
            raise CacheBackendError(f"Cannot read {self.cache_file}: {e}")

        return data if isinstance(data, dict) else {}

    def _save(self, data: Dict[str, Dict[str, Any]]) -> None:
        """Rewrite the whole document through a temporary file."""
        try:
            os.makedirs(self.cache_dir, mode=0o755, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix=".cache-", suffix=".json", dir=self.cache_dir)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, indent=4)
                os.replace(tmp_path, self.cache_file)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except (OSError, TypeError, ValueError) as e:
            raise CacheBackendError(f"Cannot write {self.cache_file}: {e}")

    def read(self, key: str, category: str) -> Optional[CacheEntry]:
        with self._lock:
            self._check_open()
            item = self._load().get(self._record_key(key, category))

        if not isinstance(item, dict):
            return None

        return CacheEntry(
            key=key,
            category=category,
            payload=item.get("data"),
            last_modified=item.get("last_modified") or 0,
            expires_at=item.get("expires_at"),
        )

    def write(self, entry: CacheEntry) -> None:
        with self._lock:
            self._check_open()
            data = self._load()
            data[self._record_key(entry.key, entry.category)] = {
                "cache_type": entry.category,
                "data": entry.payload,
                "last_modified": entry.last_modified,
                "expires_at": entry.expires_at,
            }
            self._save(data)

    def _delete_where(self, predicate) -> int:
        with self._lock:
            self._check_open()
            data = self._load()
            doomed = [k for k, item in data.items() if predicate(k, item)]
            if doomed:
                for record_key in doomed:
                    del data[record_key]
                self._save(data)
            return len(doomed)

    def delete(self, key: str, category: str) -> None:
        record_key = self._record_key(key, category)
        self._delete_where(lambda k, item: k == record_key)

    def delete_expired(self, now: float) -> int:
        def expired(record_key: str, item: Any) -> bool:
            expires_at = item.get("expires_at") if isinstance(item, dict) else None
            return bool(expires_at) and expires_at < now

        return self._delete_where(expired)

    def delete_category(self, category: str) -> int:
        prefix = f"{category}:"

        def in_category(record_key: str, item: Any) -> bool:
            if isinstance(item, dict) and "cache_type" in item:
                return item["cache_type"] == category
            return record_key.startswith(prefix)

        return self._delete_where(in_category)

    def delete_all(self) -> int:
        return self._delete_where(lambda k, item: True)

    def close(self) -> None:
        self._closed = True
