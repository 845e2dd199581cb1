"""Shared pytest fixtures for dirindex tests."""
import json
import os
import tempfile
from pathlib import Path
from typing import Any, Callable, Dict, Generator

import pytest

from dirindex.core.filesystem import LocalFileSystem
from dirindex.infrastructure.config_manager import IndexerConfig

# Fixed instant used as "now" by the fake clock
BASE_TIME = 1_700_000_000.0


class FakeClock:
    """Manually advanced clock for TTL tests."""

    def __init__(self, now: float = BASE_TIME):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def set_mtime(path: Path, mtime: float) -> None:
    """Set both access and modification time of a path."""
    os.utime(path, (mtime, mtime))


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def served_dir(temp_dir: Path) -> Path:
    """Create a served directory with a typical tree.

    Every entry gets an mtime in the past so tests can move individual
    entries forward and observe fingerprint changes.
    """
    root = temp_dir / "served"
    root.mkdir()

    (root / "readme.md").write_text("# Files")
    (root / "notes.txt").write_text("notes")
    (root / "Makefile").write_text("all:")
    (root / ".env").write_text("SECRET=1")

    (root / "docs").mkdir()
    (root / "docs" / "manual.pdf").write_bytes(b"%PDF" + b"x" * 96)
    (root / "docs" / "guide.txt").write_text("guide")
    (root / "docs" / "deep").mkdir()
    (root / "docs" / "deep" / "deeper").mkdir()
    (root / "docs" / "deep" / "deeper" / "bottom.txt").write_text("bottom")

    (root / "logs").mkdir()
    (root / "logs" / "app.log").write_text("log line")
    (root / "logs" / "public").mkdir()
    (root / "logs" / "public" / "status.txt").write_text("ok")

    (root / "logging").mkdir()
    (root / "logging" / "setup.py").write_text("# config")

    (root / ".indexer_files").mkdir()

    old = BASE_TIME - 10_000
    for dirpath, dirnames, filenames in os.walk(root):
        for name in dirnames + filenames:
            set_mtime(Path(dirpath) / name, old)
    set_mtime(root, old)

    return root


@pytest.fixture
def fs(served_dir: Path) -> LocalFileSystem:
    """Local filesystem view of the served tree."""
    return LocalFileSystem(str(served_dir))


@pytest.fixture
def clock() -> FakeClock:
    """Fake clock starting at BASE_TIME."""
    return FakeClock()


@pytest.fixture
def make_config(served_dir: Path) -> Callable[..., IndexerConfig]:
    """Factory building an IndexerConfig for the served tree.

    Keyword arguments are merged into the ``main`` section; the sections
    ``exclusions``, ``viewable_files``, ``extension_map`` and ``cache`` can be
    passed as dictionaries.
    """

    def factory(
        exclusions: Dict[str, Any] = None,
        viewable_files: Dict[str, Any] = None,
        extension_map: Dict[str, Any] = None,
        cache: Dict[str, Any] = None,
        **main: Any,
    ) -> IndexerConfig:
        data = {
            "main": main,
            "exclusions": exclusions or {},
            "viewable_files": viewable_files or {},
            "extension_map": extension_map or {},
            "cache": cache or {},
        }
        return IndexerConfig.from_dict(data, root_dir=str(served_dir))

    return factory


@pytest.fixture
def write_config(served_dir: Path) -> Callable[[Dict[str, Any]], Path]:
    """Write a config.json into the served tree's .indexer_files folder."""

    def writer(data: Dict[str, Any]) -> Path:
        path = served_dir / ".indexer_files" / "config.json"
        path.write_text(json.dumps(data))
        return path

    return writer


@pytest.fixture
def touch() -> Callable[[Path, float], None]:
    """Set the mtime of a path (see set_mtime)."""
    return set_mtime
