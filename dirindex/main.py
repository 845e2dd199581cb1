#!/usr/bin/env python3
"""Per-request bootstrap for dirindex.

This module handles:
- Reading a fresh configuration for the served directory
- Component initialization (PolicyEngine, LocalFileSystem, CacheStore)
- One pass of expired-entry cleanup per request
- Releasing the cache backend when the request ends

Nothing survives between requests: each one re-reads the configuration
file and recompiles the rules.

Example:
    >>> with IndexerRequest.open("/srv/files") as request:
    ...     listing = request.lister.list("docs")
"""

import sys
import time
from typing import Any, Callable, Dict, Optional

from dirindex.core.filesystem import LocalFileSystem
from dirindex.infrastructure.cache_manager import CacheStore, open_cache_store
from dirindex.infrastructure.config_manager import IndexerConfig, load_config
from dirindex.infrastructure.logger import Logger, get_logger
from dirindex.listing import DirectoryLister
from dirindex.rules.engine import PolicyEngine


class IndexerRequest:
    """
    Components serving one request against a served directory.

    Handles component lifecycle: creation, cleanup of expired cache
    entries, and closing of the cache backend.
    """

    def __init__(
        self,
        config: IndexerConfig,
        clock: Callable[[], float] = time.time,
        logger: Optional[Logger] = None,
    ):
        """
        Initialize request components.

        Args:
            config: Configuration of this request
            clock: Source of the current time for the cache
            logger: Logger instance
        """
        self.config = config
        self.logger = logger or get_logger("dirindex.request")

        self.logger.debug("Creating PolicyEngine")
        self.policy = PolicyEngine(config)

        self.logger.debug("Creating LocalFileSystem", root=config.root_dir)
        self.fs = LocalFileSystem(config.root_dir or ".")

        self.logger.debug("Creating CacheStore", cache_type=config.cache_type.value)
        self.cache: CacheStore = open_cache_store(config, self.fs, clock=clock)

        self.lister = DirectoryLister(self.policy, self.cache, self.fs)

        removed = self.cache.cleanup()
        self.logger.debug(
            "Request ready",
            backend=self.cache.backend_name,
            expired_removed=removed,
            conflicts=len(self.policy.conflicts),
        )

    @classmethod
    def open(
        cls,
        root_dir: str,
        config_path: Optional[str] = None,
        overrides: Optional[Dict[str, Any]] = None,
        clock: Callable[[], float] = time.time,
    ) -> "IndexerRequest":
        """
        Load configuration and build the components of one request.

        Args:
            root_dir: Served directory
            config_path: Explicit config file (default: inside root_dir)
            overrides: Runtime configuration overrides
            clock: Source of the current time for the cache

        Returns:
            Ready request

        Raises:
            ConfigError: If an explicit config file is missing or malformed
        """
        config = load_config(root_dir, config_path, overrides)
        return cls(config, clock=clock)

    def close(self) -> None:
        """Release the cache backend."""
        self.cache.close()
        self.logger.debug("Request closed")

    def __enter__(self) -> "IndexerRequest":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


def main():
    """
    Entry point when run as standalone script.

    Typically called via cli.py.
    """
    from dirindex.cli import main as cli_main

    return cli_main()


if __name__ == "__main__":
    sys.exit(main())
