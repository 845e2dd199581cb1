"""
dirindex Core: Filesystem abstraction and tree-walk utilities.

The policy engine and cache store never touch ``os`` directly; they go
through a ``FileSystem`` so tests and alternative hosts can supply their
own view of the served tree.

Example:
    >>> fs = LocalFileSystem("/srv/files")
    >>> path_last_modified(fs, "docs", config_file="/srv/files/.indexer_files/config.json")
    1718000000.0
"""
import os
import stat
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

from dirindex.core.constants import INTERNAL_FOLDER_NAME
from dirindex.core.paths import join_relative, normalize_relative_path


@dataclass(frozen=True)
class FileStat:
    """Subset of stat information the indexer needs."""

    is_dir: bool
    mtime: float
    size: int = 0


class FileSystem(ABC):
    """Read-only view of the served tree, addressed by relative paths."""

    @abstractmethod
    def stat(self, path: str) -> Optional[FileStat]:
        """Return stat information, or None if the path does not exist.

        Raises:
            OSError: If the path exists but cannot be inspected
        """

    @abstractmethod
    def list_children(self, path: str) -> List[str]:
        """Return the names of the entries inside a folder.

        Raises:
            OSError: If the folder cannot be read
        """


class LocalFileSystem(FileSystem):
    """FileSystem backed by a directory on local disk."""

    def __init__(self, root: str):
        """Initialize local filesystem view.

        Args:
            root: Directory that relative paths are resolved against
        """
        self.root = os.path.abspath(os.path.expanduser(root))

    def full_path(self, path: str) -> str:
        """Resolve a relative path to an absolute path under the root."""
        relative = normalize_relative_path(path)
        if not relative:
            return self.root
        return os.path.join(self.root, *relative.split("/"))

    def stat(self, path: str) -> Optional[FileStat]:
        try:
            st = os.stat(self.full_path(path))
        except FileNotFoundError:
            return None
        return FileStat(
            is_dir=stat.S_ISDIR(st.st_mode),
            mtime=st.st_mtime,
            size=st.st_size,
        )

    def list_children(self, path: str) -> List[str]:
        return sorted(os.listdir(self.full_path(path)))


def file_mtime(path: Optional[str]) -> float:
    """Return the mtime of an absolute path, or 0 if it is missing."""
    if not path:
        return 0
    try:
        return os.stat(path).st_mtime
    except OSError:
        return 0


def path_last_modified(
    fs: FileSystem,
    path: str,
    config_file: Optional[str] = None,
    depth: Optional[int] = 2,
) -> float:
    """Compute the modification fingerprint of a folder.

    The fingerprint is the folder's own mtime widened by the mtimes of its
    entries down to ``depth`` levels (children are level 1, grandchildren
    level 2) and finally by the configuration file's mtime. Entries that
    cannot be inspected are skipped. Changes below ``depth`` do not move the
    fingerprint. The reserved ``.indexer_files`` folder is never walked: it
    holds the cache itself, and the configuration file inside it is counted
    on its own.

    Args:
        fs: Filesystem to inspect
        path: Relative folder path
        config_file: Absolute path of the active configuration file
        depth: Levels to inspect below the folder, None for the whole tree

    Returns:
        Latest mtime found, or 0 if the path is not a folder
    """
    try:
        root_stat = fs.stat(path)
    except OSError:
        return 0
    if root_stat is None or not root_stat.is_dir:
        return 0

    latest = max(root_stat.mtime, _latest_below(fs, path, depth))
    return max(latest, file_mtime(config_file))


def _latest_below(fs: FileSystem, path: str, remaining: Optional[int]) -> float:
    if remaining is not None and remaining <= 0:
        return 0

    try:
        names = fs.list_children(path)
    except OSError:
        return 0

    next_remaining = None if remaining is None else remaining - 1
    latest = 0.0
    for name in names:
        if name == INTERNAL_FOLDER_NAME:
            continue

        child = join_relative(path, name)
        try:
            child_stat = fs.stat(child)
        except OSError:
            continue
        if child_stat is None:
            continue

        latest = max(latest, child_stat.mtime)
        if child_stat.is_dir:
            latest = max(latest, _latest_below(fs, child, next_remaining))

    return latest


def directory_size(fs: FileSystem, path: str) -> int:
    """Return the total size in bytes of all files below a folder."""
    total = 0
    try:
        names = fs.list_children(path)
    except OSError:
        return 0

    for name in names:
        child = join_relative(path, name)
        try:
            child_stat = fs.stat(child)
        except OSError:
            continue
        if child_stat is None:
            continue
        if child_stat.is_dir:
            total += directory_size(fs, child)
        else:
            total += child_stat.size
    return total
