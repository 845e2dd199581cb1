"""
dirindex Core: Constants

This module provides system-wide constants, error codes, configuration keys
and default values shared by the policy engine and the cache store.
"""
from enum import Enum, IntEnum

# Version information
DIRINDEX_VERSION = "1.0.0"


# Error codes (0-9 range)
class ErrorCode(IntEnum):
    """Standardized error codes for dirindex operations."""

    INVALID_INPUT = 1  # Bad path, invalid configuration
    NOT_FOUND = 2  # File or resource doesn't exist
    PERMISSION_DENIED = 3  # Path hidden by policy
    DEPENDENCY_ERROR = 5  # Cache backend unavailable
    INTERNAL_ERROR = 6  # Bug in dirindex


# Reserved folder holding the indexer's own metadata (config, caches, icons)
INTERNAL_FOLDER_NAME = ".indexer_files"
INDEX_CACHE_SUBDIR = "index_cache"
CONFIG_FILE_NAME = "config.json"

# Cache store file names
SQLITE_CACHE_FILE = "cache.sqlite"
JSON_CACHE_FILE = "cache.json"
CACHE_TABLE = "unified_cache"

# Separator between a listing path and its sort order in directory cache keys
SORT_KEY_MARKER = "_sort_"


class CacheType(Enum):
    """Cache backend selector."""

    SQLITE = "sqlite"
    JSON = "json"


class SettingKind(Enum):
    """Kinds of per-extension settings."""

    INDEXING = "indexing"
    VIEWING = "viewing"


class Limits:
    """Default values for the cache and the fingerprint walk."""

    # Levels inspected below a directory when computing its fingerprint
    FINGERPRINT_DEPTH = 2


# Configuration keys
class ConfigKey:
    """Configuration key constants."""

    # Top-level sections
    MAIN = "main"
    EXCLUSIONS = "exclusions"
    VIEWABLE_FILES = "viewable_files"
    EXTENSION_MAP = "extension_map"
    CACHE = "cache"
    LOGGING = "logging"

    # main section
    CACHE_TYPE = "cache_type"
    INDEX_ALL = "index_all"
    INDEX_HIDDEN = "index_hidden"
    DENY_LIST = "deny_list"
    ALLOW_LIST = "allow_list"
    LEGACY_DENY_LIST = "custom_exclusions"

    # exclusions section
    INDEX_FOLDERS = "index_folders"
    INDEX_NON_DESCRIPT = "index_non-descript-files"
    VIEW_NON_DESCRIPT = "view_non-descript-files"

    # cache section
    CACHE_DIRECTORY = "directory"
    FINGERPRINT_DEPTH = "fingerprint_depth"

    # logging section
    LOG_LEVEL = "level"
    LOG_FILE = "file"


# Default configuration values
DEFAULT_CONFIG = {
    ConfigKey.MAIN: {
        ConfigKey.CACHE_TYPE: CacheType.SQLITE.value,
        ConfigKey.INDEX_ALL: False,
        ConfigKey.INDEX_HIDDEN: False,
    },
    ConfigKey.EXCLUSIONS: {},
    ConfigKey.VIEWABLE_FILES: {},
    ConfigKey.EXTENSION_MAP: {
        SettingKind.INDEXING.value: {},
        SettingKind.VIEWING.value: {},
    },
    ConfigKey.CACHE: {
        ConfigKey.CACHE_DIRECTORY: None,
        ConfigKey.FINGERPRINT_DEPTH: Limits.FINGERPRINT_DEPTH,
    },
    ConfigKey.LOGGING: {
        ConfigKey.LOG_LEVEL: "INFO",
        ConfigKey.LOG_FILE: None,
    },
}
