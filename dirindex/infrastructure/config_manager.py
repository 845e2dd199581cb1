#!/usr/bin/env python3
"""Layered configuration for dirindex.

This module provides configuration management with:
- 4-level precedence hierarchy
- YAML or JSON config files
- Environment variable overrides
- Immutable per-request snapshots
- Merge strategies for nested configs

Configuration is read fresh for every request; nothing here is cached
across requests, so an edited config file is seen by the next request.

Example:
    >>> manager = ConfigManager()
    >>> manager.load_file("/srv/files/.indexer_files/config.json")
    >>> config = manager.snapshot("/srv/files")
    >>> config.index_hidden
    False
"""

import copy
import os
import threading
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

import yaml

from dirindex.core.constants import (
    CONFIG_FILE_NAME,
    DEFAULT_CONFIG,
    INDEX_CACHE_SUBDIR,
    INTERNAL_FOLDER_NAME,
    CacheType,
    ConfigKey,
    ErrorCode,
    Limits,
    SettingKind,
)

ENV_PREFIX = "DIRINDEX_"
ENV_SECTION_SEPARATOR = "__"


class ConfigSource(Enum):
    """Configuration source precedence levels."""

    COMPILED_DEFAULTS = 1  # Lowest precedence
    CONFIG_FILE = 2
    ENVIRONMENT = 3
    RUNTIME = 4  # Highest precedence


class ConfigError(Exception):
    """Configuration error."""

    def __init__(self, message: str, error_code: ErrorCode = ErrorCode.INVALID_INPUT):
        self.message = message
        self.error_code = error_code
        super().__init__(message)


def _frozen(mapping: Optional[Mapping[str, Any]]) -> Mapping[str, Any]:
    return MappingProxyType(dict(mapping or {}))


@dataclass(frozen=True)
class IndexerConfig:
    """Immutable configuration value for one request."""

    deny_list: str = ""
    allow_list: str = ""
    index_all: bool = False
    index_hidden: bool = False
    cache_type: CacheType = CacheType.SQLITE
    exclusions: Mapping[str, bool] = field(default_factory=lambda: _frozen({}))
    viewable_files: Mapping[str, bool] = field(default_factory=lambda: _frozen({}))
    indexing_extensions: Mapping[str, str] = field(default_factory=lambda: _frozen({}))
    viewing_extensions: Mapping[str, str] = field(default_factory=lambda: _frozen({}))
    root_dir: Optional[str] = None
    cache_dir: Optional[str] = None
    config_file: Optional[str] = None
    fingerprint_depth: Optional[int] = Limits.FINGERPRINT_DEPTH
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @property
    def index_folders(self) -> bool:
        """Default visibility of folders that no rule decides."""
        return bool(self.exclusions.get(ConfigKey.INDEX_FOLDERS, True))

    @property
    def index_non_descript_files(self) -> bool:
        """Whether files without an extension are indexed."""
        return bool(self.exclusions.get(ConfigKey.INDEX_NON_DESCRIPT, True))

    @classmethod
    def from_dict(
        cls,
        data: Mapping[str, Any],
        root_dir: Optional[str] = None,
        config_file: Optional[str] = None,
    ) -> "IndexerConfig":
        """Build a config value from a merged configuration dictionary.

        Args:
            data: Merged configuration (sections main, exclusions, ...)
            root_dir: Served directory
            config_file: Path of the file the data was loaded from

        Returns:
            Immutable configuration
        """
        main = _section(data, ConfigKey.MAIN)
        cache = _section(data, ConfigKey.CACHE)
        logging_section = _section(data, ConfigKey.LOGGING)
        extension_map = _section(data, ConfigKey.EXTENSION_MAP)

        deny_list = main.get(ConfigKey.DENY_LIST)
        if deny_list is None:
            deny_list = main.get(ConfigKey.LEGACY_DENY_LIST, "")

        try:
            cache_type = CacheType(str(main.get(ConfigKey.CACHE_TYPE, CacheType.SQLITE.value)).lower())
        except ValueError:
            cache_type = CacheType.JSON

        cache_dir = cache.get(ConfigKey.CACHE_DIRECTORY)
        if not cache_dir and root_dir:
            cache_dir = os.path.join(root_dir, INTERNAL_FOLDER_NAME, INDEX_CACHE_SUBDIR)

        depth = cache.get(ConfigKey.FINGERPRINT_DEPTH, Limits.FINGERPRINT_DEPTH)
        if depth is not None:
            try:
                depth = int(depth)
            except (TypeError, ValueError):
                depth = Limits.FINGERPRINT_DEPTH
            if depth < 0:
                depth = None

        return cls(
            deny_list=str(deny_list or ""),
            allow_list=str(main.get(ConfigKey.ALLOW_LIST) or ""),
            index_all=bool(main.get(ConfigKey.INDEX_ALL, False)),
            index_hidden=bool(main.get(ConfigKey.INDEX_HIDDEN, False)),
            cache_type=cache_type,
            exclusions=_frozen(_section(data, ConfigKey.EXCLUSIONS)),
            viewable_files=_frozen(_section(data, ConfigKey.VIEWABLE_FILES)),
            indexing_extensions=_frozen(_lower_keys(extension_map.get(SettingKind.INDEXING.value))),
            viewing_extensions=_frozen(_lower_keys(extension_map.get(SettingKind.VIEWING.value))),
            root_dir=root_dir,
            cache_dir=cache_dir,
            config_file=config_file,
            fingerprint_depth=depth,
            log_level=str(logging_section.get(ConfigKey.LOG_LEVEL) or "INFO").upper(),
            log_file=logging_section.get(ConfigKey.LOG_FILE),
        )


def _section(data: Mapping[str, Any], name: str) -> Dict[str, Any]:
    value = data.get(name)
    return dict(value) if isinstance(value, Mapping) else {}


def _lower_keys(mapping: Any) -> Dict[str, str]:
    if not isinstance(mapping, Mapping):
        return {}
    return {str(k).lower(): str(v) for k, v in mapping.items()}


class ConfigManager:
    """Thread-safe layered configuration manager.

    Manages configuration from multiple sources with precedence:
    1. Compiled defaults (lowest)
    2. Config file (YAML or JSON)
    3. Environment variables (DIRINDEX_<SECTION>__<KEY>)
    4. Runtime updates (highest)
    """

    def __init__(self, config_file: Optional[str] = None, load_env: bool = True):
        """Initialize configuration manager.

        Args:
            config_file: Optional config file to load
            load_env: Whether to read DIRINDEX_* environment variables
        """
        self._config: Dict[ConfigSource, Dict[str, Any]] = {}
        self._lock = threading.RLock()
        self.config_file: Optional[str] = None

        # Initialize with defaults
        self._config[ConfigSource.COMPILED_DEFAULTS] = copy.deepcopy(DEFAULT_CONFIG)

        # Load config file if provided
        if config_file:
            self.load_file(config_file)

        # Load environment variables
        if load_env:
            self._load_environment()

    def load_file(self, file_path: str, missing_ok: bool = False) -> None:
        """Load configuration from a YAML or JSON file.

        Args:
            file_path: Path to config file
            missing_ok: Treat a missing file as an empty configuration

        Raises:
            ConfigError: If file cannot be loaded or parsed
        """
        path = Path(file_path).expanduser().resolve()

        if not path.exists():
            if missing_ok:
                return
            raise ConfigError(f"Config file not found: {file_path}", ErrorCode.NOT_FOUND)

        try:
            with open(path, "r", encoding="utf-8") as f:
                config_data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Parse error in {file_path}: {e}", ErrorCode.INVALID_INPUT)
        except OSError as e:
            raise ConfigError(f"Error loading config {file_path}: {e}", ErrorCode.INTERNAL_ERROR)

        # An empty file is an empty configuration
        if config_data is None:
            config_data = {}

        if not isinstance(config_data, dict):
            raise ConfigError(f"Invalid config format in {file_path}", ErrorCode.INVALID_INPUT)

        with self._lock:
            self._config[ConfigSource.CONFIG_FILE] = config_data
            self.config_file = str(path)

    def load_dict(self, config_data: Dict[str, Any], source: ConfigSource = ConfigSource.RUNTIME) -> None:
        """Load configuration from dictionary.

        Args:
            config_data: Configuration dictionary
            source: Configuration source level
        """
        with self._lock:
            self._config[source] = copy.deepcopy(config_data)

    def _load_environment(self) -> None:
        """Load configuration from environment variables.

        Environment variables in format: DIRINDEX_SECTION__KEY=value
        Example: DIRINDEX_MAIN__INDEX_HIDDEN=true
        """
        env_config: Dict[str, Any] = {}

        for key, value in os.environ.items():
            if not key.startswith(ENV_PREFIX):
                continue

            parts = key[len(ENV_PREFIX):].lower().split(ENV_SECTION_SEPARATOR)
            if len(parts) < 2 or not all(parts):
                continue

            # Build nested dictionary
            current = env_config
            for part in parts[:-1]:
                current = current.setdefault(part, {})

            current[parts[-1]] = self._parse_env_value(value)

        if env_config:
            with self._lock:
                self._config[ConfigSource.ENVIRONMENT] = env_config

    def _parse_env_value(self, value: str) -> Any:
        """Parse environment variable value.

        Args:
            value: String value from environment

        Returns:
            Parsed value (int, bool, or str)
        """
        # Try boolean
        if value.lower() in ("true", "yes", "on"):
            return True
        if value.lower() in ("false", "no", "off"):
            return False

        # Try int
        try:
            return int(value)
        except ValueError:
            pass

        # Return as string
        return value

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by key.

        Args:
            key: Dot-separated key path (e.g., "main.index_hidden")
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        with self._lock:
            # Search from highest to lowest precedence
            for source in sorted(self._config.keys(), key=lambda s: s.value, reverse=True):
                value = self._get_nested(self._config[source], key)
                if value is not None:
                    return value

            return default

    def _get_nested(self, config: Dict[str, Any], key: str) -> Optional[Any]:
        """Get value from nested dictionary using dot notation.

        Args:
            config: Configuration dictionary
            key: Dot-separated key path

        Returns:
            Value or None if not found
        """
        current: Any = config
        for part in key.split("."):
            if not isinstance(current, dict) or part not in current:
                return None
            current = current[part]

        return current

    def set(self, key: str, value: Any, source: ConfigSource = ConfigSource.RUNTIME) -> None:
        """Set configuration value.

        Args:
            key: Dot-separated key path
            value: Value to set
            source: Configuration source level
        """
        with self._lock:
            current = self._config.setdefault(source, {})

            parts = key.split(".")
            for part in parts[:-1]:
                current = current.setdefault(part, {})

            current[parts[-1]] = value

    def get_all(self) -> Dict[str, Any]:
        """Get merged configuration from all sources.

        Returns:
            Merged configuration dictionary
        """
        with self._lock:
            merged: Dict[str, Any] = {}

            # Merge from lowest to highest precedence
            for source in sorted(self._config.keys(), key=lambda s: s.value):
                merged = self._deep_merge(merged, self._config[source])

            return merged

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two dictionaries.

        Args:
            base: Base dictionary
            override: Override dictionary

        Returns:
            Merged dictionary
        """
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    def snapshot(self, root_dir: Optional[str] = None) -> IndexerConfig:
        """Freeze the merged configuration into an IndexerConfig.

        Args:
            root_dir: Served directory, used to derive default paths

        Returns:
            Immutable configuration for one request
        """
        return IndexerConfig.from_dict(self.get_all(), root_dir=root_dir, config_file=self.config_file)

    def clear(self, source: Optional[ConfigSource] = None) -> None:
        """Clear configuration.

        Args:
            source: Specific source to clear, or None for all except defaults
        """
        with self._lock:
            if source:
                if source in self._config and source != ConfigSource.COMPILED_DEFAULTS:
                    del self._config[source]
            else:
                for s in [s for s in self._config if s != ConfigSource.COMPILED_DEFAULTS]:
                    del self._config[s]
                self.config_file = None


def default_config_path(root_dir: str) -> str:
    """Return the config file location inside a served directory."""
    return os.path.join(root_dir, INTERNAL_FOLDER_NAME, CONFIG_FILE_NAME)


def load_config(
    root_dir: str,
    config_file: Optional[str] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> IndexerConfig:
    """Read configuration for one request.

    Args:
        root_dir: Served directory
        config_file: Explicit config file; defaults to the one inside root_dir
        overrides: Runtime overrides with the highest precedence

    Returns:
        Immutable configuration

    Raises:
        ConfigError: If an explicitly named file is missing or malformed
    """
    root_dir = os.path.abspath(os.path.expanduser(root_dir))
    manager = ConfigManager()

    if config_file:
        manager.load_file(config_file)
    else:
        manager.load_file(default_config_path(root_dir), missing_ok=True)
        if manager.config_file is None:
            # Still watch the default location so creating it invalidates listings
            manager.config_file = default_config_path(root_dir)

    if overrides:
        manager.load_dict(overrides, ConfigSource.RUNTIME)

    return manager.snapshot(root_dir)
