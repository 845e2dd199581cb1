#!/usr/bin/env python3
"""Directory listings filtered by the visibility policy.

This module composes the policy engine and the cache store:
- Sort parameters from a request query, with safe fallbacks
- Cache keys that encode the folder and its sort order
- Folder scan keeping only entries the policy indexes
- Write-back of the sorted listing into the ``directory`` cache category

Example:
    >>> lister = DirectoryLister(policy, cache, fs)
    >>> listing = lister.list("docs", SortParams.from_query("size", "desc"))
    >>> [item["name"] for item in listing["files"]]
    ['manual.pdf', 'notes.txt']
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from dirindex.core.constants import SORT_KEY_MARKER, ErrorCode
from dirindex.core.filesystem import FileSystem, directory_size
from dirindex.core.paths import file_extension, join_relative, normalize_relative_path
from dirindex.infrastructure.cache_manager import CacheCategory, CacheStore
from dirindex.infrastructure.logger import get_logger
from dirindex.rules.engine import PolicyEngine

Item = Dict[str, Any]


class ListingError(Exception):
    """Listing could not be produced."""

    def __init__(self, message: str, path: str, error_code: ErrorCode = ErrorCode.INTERNAL_ERROR):
        self.message = message
        self.path = path
        self.error_code = error_code
        super().__init__(message)


class FolderNotFound(ListingError):
    """Requested path is not a folder."""

    def __init__(self, path: str):
        super().__init__(f"Directory not found: {path or '/'}", path, ErrorCode.NOT_FOUND)


class FolderNotVisible(ListingError):
    """Requested folder is hidden by the policy."""

    def __init__(self, path: str):
        super().__init__(f"Directory not accessible: {path or '/'}", path, ErrorCode.PERMISSION_DENIED)


class SortField(Enum):
    """Listing sort columns."""

    NAME = "name"
    SIZE = "size"
    MODIFIED = "modified"
    TYPE = "type"


class SortDirection(Enum):
    """Listing sort directions."""

    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True)
class SortParams:
    """Sort order of one listing."""

    field: SortField = SortField.NAME
    direction: SortDirection = SortDirection.ASC

    @classmethod
    def from_query(cls, sort: Optional[str] = None, direction: Optional[str] = None) -> "SortParams":
        """Build sort parameters from raw query values.

        Unknown fields fall back to ``name`` and unknown directions to ``asc``.

        Args:
            sort: Requested sort column
            direction: Requested direction

        Returns:
            Valid sort parameters
        """
        try:
            sort_field = SortField(sort or SortField.NAME.value)
        except ValueError:
            sort_field = SortField.NAME

        try:
            sort_direction = SortDirection(direction or SortDirection.ASC.value)
        except ValueError:
            sort_direction = SortDirection.ASC

        return cls(sort_field, sort_direction)


def listing_cache_key(path: str, params: SortParams) -> str:
    """Build the ``directory`` cache key for a folder and sort order."""
    return f"{path}{SORT_KEY_MARKER}{params.field.value}_{params.direction.value}"


def _type_key(item: Item) -> str:
    if "extension" in item:
        return str(item["extension"]).lower()
    return "folder" if item.get("is_dir") else ""


_SORT_KEYS = {
    SortField.NAME: lambda item: str(item["name"]).lower(),
    SortField.SIZE: lambda item: item.get("size", 0),
    SortField.MODIFIED: lambda item: item.get("modified", 0),
    SortField.TYPE: _type_key,
}


def sort_items(items: List[Item], params: SortParams) -> List[Item]:
    """Sort listing items.

    Names and types compare case-insensitively, sizes and modification
    times numerically. Folders have the type ``folder``.

    Args:
        items: Listing items
        params: Sort order

    Returns:
        New sorted list
    """
    return sorted(items, key=_SORT_KEYS[params.field], reverse=params.direction == SortDirection.DESC)


class DirectoryLister:
    """Produces policy-filtered, cached folder listings."""

    def __init__(self, policy: PolicyEngine, cache: CacheStore, fs: FileSystem):
        """Initialize lister.

        Args:
            policy: Visibility policy of the current request
            cache: Cache store of the current request
            fs: Filesystem of the served tree
        """
        self.policy = policy
        self.cache = cache
        self.fs = fs
        self.logger = get_logger("dirindex.listing")

    def list(self, path: str = "", params: Optional[SortParams] = None) -> Dict[str, List[Item]]:
        """List a folder.

        Args:
            path: Relative folder path ("" for the root)
            params: Sort order (name ascending by default)

        Returns:
            Mapping with ``directories`` and ``files`` item lists

        Raises:
            FolderNotFound: If the path is not a folder
            FolderNotVisible: If the policy hides the folder
        """
        path = normalize_relative_path(path)
        params = params or SortParams()

        try:
            folder_stat = self.fs.stat(path)
        except OSError as e:
            raise ListingError(f"Cannot inspect {path or '/'}: {e}", path)
        if folder_stat is None or not folder_stat.is_dir:
            raise FolderNotFound(path)

        if not self.policy.is_folder_visible(path):
            raise FolderNotVisible(path)

        key = listing_cache_key(path, params)
        cached = self.cache.get(key, CacheCategory.DIRECTORY)
        if isinstance(cached, dict) and "directories" in cached and "files" in cached:
            self.logger.debug("Listing served from cache", path=path, key=key)
            return cached

        listing = self.scan(path, params)
        self.cache.set(key, CacheCategory.DIRECTORY, listing)
        return listing

    def scan(self, path: str, params: SortParams) -> Dict[str, List[Item]]:
        """Read a folder from disk, bypassing the cache."""
        try:
            names = self.fs.list_children(path)
        except OSError as e:
            raise ListingError(f"Cannot read {path or '/'}: {e}", path)

        directories: List[Item] = []
        files: List[Item] = []

        for name in names:
            child = join_relative(path, name)
            try:
                child_stat = self.fs.stat(child)
            except OSError as e:
                self.logger.debug("Skipping unreadable entry", path=child, error=e)
                continue
            if child_stat is None:
                continue

            item: Item = {"name": name, "modified": child_stat.mtime, "is_dir": child_stat.is_dir}

            if child_stat.is_dir:
                if self.policy.should_index_folder(child):
                    item["size"] = directory_size(self.fs, child)
                    directories.append(item)
            else:
                extension = file_extension(name)
                if self.policy.should_index_file(child, extension):
                    item["size"] = child_stat.size
                    item["extension"] = extension
                    files.append(item)

        self.logger.debug(
            "Scanned folder", path=path, directories=len(directories), files=len(files)
        )
        return {
            "directories": sort_items(directories, params),
            "files": sort_items(files, params),
        }
