#!/usr/bin/env python3
"""Tests for CacheStore and backend selection."""

from unittest.mock import MagicMock, patch

import pytest

from dirindex.core.constants import CacheType
from dirindex.infrastructure.cache_backends import (
    CacheBackendError,
    CacheBackendUnavailable,
    CacheStoreClosed,
    JSONFileBackend,
    SQLiteBackend,
)
from dirindex.infrastructure.cache_manager import (
    CacheCategory,
    CacheStore,
    default_cache_dir,
    open_backend,
    open_cache_store,
)
from dirindex.listing import SortParams, listing_cache_key

OLD = 1_700_000_000.0 - 10_000
LISTING = {"directories": [], "files": [{"name": "guide.txt", "size": 5}]}


@pytest.fixture(params=["sqlite", "json"])
def backend(request, temp_dir):
    """Each backend, stored outside the served tree."""
    cache_dir = str(temp_dir / "cache")
    store = SQLiteBackend(cache_dir) if request.param == "sqlite" else JSONFileBackend(cache_dir)
    yield store
    store.close()


@pytest.fixture
def cache(backend, fs, clock):
    """CacheStore over the served tree with a fake clock."""
    return CacheStore(backend, fs, clock=clock)


class TestCacheCategory:
    """Tests for CacheCategory."""

    def test_values(self):
        """Test well-known category names."""
        assert [c.value for c in CacheCategory] == ["directory", "api", "icon", "version", "fileview"]

    def test_plain_strings_accepted(self, cache):
        """Test categories are open strings."""
        cache.set("k", "thumbnails", [1])
        assert cache.get("k", "thumbnails") == [1]


class TestGetSet:
    """Tests for storing and reading payloads."""

    def test_missing(self, cache):
        """Test an absent key is a miss."""
        assert cache.get("nope", CacheCategory.API) is None
        assert not cache.has("nope", CacheCategory.API)

    def test_round_trip(self, cache):
        """Test a stored payload reads back."""
        cache.set("latest", CacheCategory.VERSION, {"version": "2.1.0"})
        assert cache.get("latest", CacheCategory.VERSION) == {"version": "2.1.0"}
        assert cache.has("latest", CacheCategory.VERSION)

    def test_idempotent(self, cache):
        """Test writing the same payload twice equals writing it once."""
        cache.set("latest", CacheCategory.VERSION, "x")
        cache.set("latest", CacheCategory.VERSION, "x")
        assert cache.get("latest", CacheCategory.VERSION) == "x"
        assert cache.clear(CacheCategory.VERSION) == 1

    def test_last_write_wins(self, cache):
        """Test a later write replaces the payload."""
        cache.set("latest", CacheCategory.VERSION, "a")
        cache.set("latest", CacheCategory.VERSION, "b")
        assert cache.get("latest", CacheCategory.VERSION) == "b"

    def test_categories_separate(self, cache):
        """Test equal keys in different categories do not collide."""
        cache.set("k", CacheCategory.API, "api")
        cache.set("k", CacheCategory.ICON, "icon")
        assert cache.get("k", CacheCategory.API) == "api"
        assert cache.get("k", CacheCategory.ICON) == "icon"

    def test_non_directory_timestamp(self, cache, backend, clock):
        """Test non-directory entries record the write time."""
        cache.set("k", CacheCategory.API, 1)
        assert backend.read("k", "api").last_modified == clock.now


class TestTTL:
    """Tests for time-to-live expiry."""

    def test_expires_after_ttl(self, cache, backend, clock):
        """Test an entry disappears once the clock passes its TTL."""
        cache.set("k", CacheCategory.API, "v", ttl=60)
        clock.advance(59)
        assert cache.get("k", CacheCategory.API) == "v"
        clock.advance(2)
        assert cache.get("k", CacheCategory.API) is None
        assert backend.read("k", "api") is None

    def test_one_second_ttl(self, cache, clock):
        """Test a one-second entry is served now and gone once the clock passes it."""
        cache.set("k", CacheCategory.VERSION, "v", ttl=1)
        assert cache.get("k", CacheCategory.VERSION) == "v"
        clock.advance(1.5)
        assert cache.get("k", CacheCategory.VERSION) is None

    def test_boundary_still_valid(self, cache, clock):
        """Test an entry is valid exactly at its expiry instant."""
        cache.set("k", CacheCategory.API, "v", ttl=60)
        clock.advance(60)
        assert cache.get("k", CacheCategory.API) == "v"

    def test_zero_ttl_never_expires(self, cache, backend, clock):
        """Test a falsy TTL stores no expiry."""
        cache.set("k", CacheCategory.API, "v", ttl=0)
        assert backend.read("k", "api").expires_at is None
        clock.advance(10**9)
        assert cache.get("k", CacheCategory.API) == "v"

    def test_cleanup(self, cache, clock):
        """Test cleanup removes only expired entries."""
        cache.set("short", CacheCategory.API, 1, ttl=10)
        cache.set("long", CacheCategory.API, 2, ttl=1000)
        cache.set("forever", CacheCategory.ICON, 3)
        clock.advance(100)
        assert cache.cleanup() == 1
        assert cache.get("long", CacheCategory.API) == 2
        assert cache.get("forever", CacheCategory.ICON) == 3

    def test_cleanup_nothing(self, cache):
        """Test cleanup of a fresh cache."""
        assert cache.cleanup() == 0


class TestDirectoryStaleness:
    """Tests for fingerprint-driven invalidation of directory listings."""

    def test_fresh_listing(self, cache):
        """Test an unchanged folder serves its listing."""
        cache.set("docs_sort_name_asc", CacheCategory.DIRECTORY, LISTING)
        assert cache.get("docs_sort_name_asc") == LISTING

    def test_repeated_reads_stay_hits(self, cache):
        """Test reads without filesystem changes never turn into misses."""
        cache.set("docs_sort_name_asc", CacheCategory.DIRECTORY, LISTING)
        for _ in range(3):
            assert cache.get("docs_sort_name_asc") == LISTING

    def test_stores_fingerprint(self, cache, backend):
        """Test directory entries record the folder fingerprint."""
        cache.set("docs_sort_size_desc", CacheCategory.DIRECTORY, LISTING)
        assert backend.read("docs_sort_size_desc", "directory").last_modified == OLD

    def test_child_change(self, cache, backend, served_dir, touch):
        """Test a changed child invalidates the listing."""
        cache.set("docs_sort_name_asc", CacheCategory.DIRECTORY, LISTING)
        touch(served_dir / "docs" / "guide.txt", OLD + 100)
        assert cache.get("docs_sort_name_asc") is None
        assert backend.read("docs_sort_name_asc", "directory") is None

    def test_grandchild_change(self, cache, served_dir, touch):
        """Test a changed grandchild invalidates the listing."""
        cache.set("docs_sort_name_asc", CacheCategory.DIRECTORY, LISTING)
        touch(served_dir / "docs" / "deep" / "deeper", OLD + 100)
        assert cache.get("docs_sort_name_asc") is None

    def test_great_grandchild_change(self, cache, served_dir, touch):
        """Test changes three levels down keep the listing."""
        cache.set("docs_sort_name_asc", CacheCategory.DIRECTORY, LISTING)
        touch(served_dir / "docs" / "deep" / "deeper" / "bottom.txt", OLD + 100)
        assert cache.get("docs_sort_name_asc") == LISTING

    def test_marker_in_folder_name(self, cache, backend, served_dir, touch):
        """Test a folder named like the sort marker still goes stale."""
        folder = served_dir / "my_sort_files"
        folder.mkdir()
        (folder / "a.txt").write_text("a")
        touch(folder / "a.txt", OLD)
        touch(folder, OLD)

        key = listing_cache_key("my_sort_files", SortParams())
        cache.set(key, CacheCategory.DIRECTORY, LISTING)
        assert backend.read(key, "directory").last_modified == OLD

        (folder / "b.txt").write_text("b")
        touch(folder / "b.txt", OLD + 100)
        assert cache.get(key) is None

    def test_full_depth(self, backend, fs, clock, served_dir, touch):
        """Test fingerprint_depth=None catches deep changes."""
        cache = CacheStore(backend, fs, clock=clock, fingerprint_depth=None)
        cache.set("docs_sort_name_asc", CacheCategory.DIRECTORY, LISTING)
        touch(served_dir / "docs" / "deep" / "deeper" / "bottom.txt", OLD + 100)
        assert cache.get("docs_sort_name_asc") is None

    def test_config_change(self, backend, fs, clock, temp_dir, touch):
        """Test editing the configuration invalidates listings."""
        config_file = temp_dir / "config.json"
        config_file.write_text("{}")
        touch(config_file, OLD + 1)
        cache = CacheStore(backend, fs, config_file=str(config_file), clock=clock)
        cache.set("docs_sort_name_asc", CacheCategory.DIRECTORY, LISTING)
        assert cache.get("docs_sort_name_asc") == LISTING
        touch(config_file, OLD + 1000)
        assert cache.get("docs_sort_name_asc") is None

    def test_root_listing(self, cache, served_dir, touch):
        """Test the root listing key maps to the served root."""
        cache.set("_sort_name_asc", CacheCategory.DIRECTORY, LISTING)
        assert cache.get("_sort_name_asc") == LISTING
        touch(served_dir / "notes.txt", OLD + 5)
        assert cache.get("_sort_name_asc") is None

    def test_vanished_folder(self, cache, served_dir):
        """Test a deleted folder has fingerprint 0 and never looks newer."""
        cache.set("logging_sort_name_asc", CacheCategory.DIRECTORY, LISTING)
        (served_dir / "logging" / "setup.py").unlink()
        (served_dir / "logging").rmdir()
        assert cache.get("logging_sort_name_asc") == LISTING

    def test_other_categories_ignore_filesystem(self, cache, served_dir, touch):
        """Test only directory entries are checked against the tree."""
        cache.set("docs", CacheCategory.FILEVIEW, "<p>cached</p>")
        touch(served_dir / "docs" / "guide.txt", OLD + 100)
        assert cache.get("docs", CacheCategory.FILEVIEW) == "<p>cached</p>"


class TestClear:
    """Tests for clear."""

    def test_clear_category(self, cache):
        """Test clearing one category."""
        cache.set("a", CacheCategory.API, 1)
        cache.set("b", CacheCategory.ICON, 2)
        assert cache.clear(CacheCategory.API) == 1
        assert cache.get("b", CacheCategory.ICON) == 2

    def test_clear_all(self, cache):
        """Test clearing everything."""
        cache.set("a", CacheCategory.API, 1)
        cache.set("b", "custom", 2)
        assert cache.clear() == 2
        assert cache.get("b", "custom") is None


class TestFailures:
    """Tests for best-effort behavior on backend failures."""

    @pytest.fixture
    def broken(self, fs, clock):
        backend = MagicMock()
        backend.name = "broken"
        backend.read.side_effect = CacheBackendError("disk gone")
        backend.write.side_effect = CacheBackendError("disk gone")
        backend.delete_expired.side_effect = CacheBackendError("disk gone")
        backend.delete_category.side_effect = OSError("disk gone")
        backend.delete_all.side_effect = CacheBackendError("disk gone")
        logger = MagicMock()
        return CacheStore(backend, fs, clock=clock, logger=logger), logger

    def test_read_failure_is_miss(self, broken):
        """Test a failing read is a miss."""
        cache, logger = broken
        assert cache.get("k", CacheCategory.API) is None
        logger.warning.assert_called_once()

    def test_write_failure_is_noop(self, broken):
        """Test a failing write does not raise."""
        cache, logger = broken
        cache.set("k", CacheCategory.API, 1)
        logger.warning.assert_called_once()

    def test_cleanup_and_clear_failures(self, broken):
        """Test maintenance failures report zero removals."""
        cache, logger = broken
        assert cache.cleanup() == 0
        assert cache.clear(CacheCategory.API) == 0
        assert cache.clear() == 0
        assert logger.warning.call_count == 3

    def test_unserializable_payload(self, cache):
        """Test an unserializable payload is dropped."""
        cache.set("k", CacheCategory.API, object())
        assert cache.get("k", CacheCategory.API) is None

    def test_closed_store_raises(self, cache):
        """Test use after close is an error."""
        cache.close()
        with pytest.raises(CacheStoreClosed):
            cache.get("k", CacheCategory.API)


class TestOpenCacheStore:
    """Tests for backend selection."""

    def test_default_cache_dir(self, served_dir):
        """Test the cache lives in the reserved folder."""
        assert default_cache_dir(str(served_dir)) == str(served_dir / ".indexer_files" / "index_cache")

    def test_sqlite(self, make_config, fs, served_dir):
        """Test the SQLite backend is used when configured."""
        cache = open_cache_store(make_config(cache_type="sqlite"), fs)
        try:
            assert cache.backend_name == "sqlite"
            assert (served_dir / ".indexer_files" / "index_cache" / "cache.sqlite").exists()
        finally:
            cache.close()

    def test_json(self, make_config, fs):
        """Test the JSON backend is used when configured."""
        cache = open_cache_store(make_config(cache_type="json"), fs)
        assert cache.backend_name == "json"
        cache.close()

    def test_fallback_to_json(self, make_config, fs):
        """Test an unavailable SQLite backend falls back to the JSON file."""
        logger = MagicMock()
        with patch(
            "dirindex.infrastructure.cache_manager.SQLiteBackend",
            side_effect=CacheBackendUnavailable("no sqlite"),
        ):
            cache = open_cache_store(make_config(cache_type="sqlite"), fs, logger=logger)
        assert cache.backend_name == "json"
        logger.warning.assert_called_once()
        cache.set("k", CacheCategory.API, 1)
        assert cache.get("k", CacheCategory.API) == 1
        cache.close()

    def test_open_backend(self, temp_dir):
        """Test open_backend by cache type."""
        backend = open_backend(CacheType.JSON, str(temp_dir))
        assert isinstance(backend, JSONFileBackend)

    def test_settings_passed(self, make_config, fs, clock):
        """Test fingerprint depth and clock come from the request."""
        config = make_config(cache_type="json", cache={"fingerprint_depth": -1})
        cache = open_cache_store(config, fs, clock=clock)
        assert cache.fingerprint_depth is None
        assert cache.clock is clock
        cache.close()
