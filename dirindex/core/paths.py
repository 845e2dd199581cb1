"""
dirindex Core: Relative path helpers.

All paths handled by the policy engine and the cache are relative to the
served root, use forward slashes, and carry no leading or trailing slash.
The empty string denotes the root itself.
"""
import posixpath
import re

from dirindex.core.constants import SORT_KEY_MARKER

# Only the trailing "_sort_<field>_<dir>" written by listing_cache_key
_SORT_SUFFIX = re.compile(re.escape(SORT_KEY_MARKER) + r"[a-z]+_(?:asc|desc)$")


def normalize_relative_path(path: str) -> str:
    """Normalize a requested path into the relative form used everywhere.

    Backslashes become slashes, ``../`` and ``./`` fragments are dropped and
    surrounding slashes are stripped, so the result can never climb out of
    the served root.

    Args:
        path: Raw path as received from a caller

    Returns:
        Normalized relative path ("" for the root)
    """
    if not path:
        return ""

    path = path.replace("\\", "/")
    path = path.replace("../", "").replace("./", "")

    # Collapse duplicate separators
    while "//" in path:
        path = path.replace("//", "/")

    path = path.strip("/")
    if path in (".", ".."):
        return ""
    return path


def join_relative(parent: str, name: str) -> str:
    """Join a child name onto a relative folder path."""
    return f"{parent}/{name}" if parent else name


def parent_dir(path: str) -> str:
    """Return the folder part of a relative path ("" at top level)."""
    return posixpath.dirname(path.rstrip("/"))


def base_name(path: str) -> str:
    """Return the last segment of a relative path."""
    return posixpath.basename(path.rstrip("/"))


def file_extension(name: str) -> str:
    """Return the lower-cased text after the last dot of the base name.

    ``.bashrc`` has the extension ``bashrc`` and ``Makefile`` has none.
    """
    name = base_name(name)
    if "." not in name:
        return ""
    return name.rsplit(".", 1)[1].lower()


def is_hidden(name: str) -> bool:
    """Check if the base name is a dotfile."""
    return base_name(name).startswith(".")


def strip_sort_suffix(key: str) -> str:
    """Remove the ``_sort_<field>_<dir>`` suffix from a listing cache key."""
    return _SORT_SUFFIX.sub("", key)
