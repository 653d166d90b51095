"""Tests for the artifact cache.

Tests cover:
- Index bookkeeping and configuration models
- Index persistence, versioning and corruption recovery
- Cache, save, lookup and delete operations
- LRU eviction with hysteresis and age-based expiry
- Transaction rollback when the index cannot be written
- Concurrent use of one store from several threads
"""

import json
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

from . import lib as cache_lib
from .errors import IndexCorruptionError, StorageError
from .index import INDEX_VERSION, load_index, save_index
from .lib import ArtifactStore
from .models import (
    MS_PER_DAY,
    CacheConfig,
    ExpiryBasis,
    StoredEntry,
    StoreIndex,
)

KIB = 1024
T0 = 1_700_000_000_000

# =============================================================================
# Fixtures
# =============================================================================


class FakeClock:
    """Manually advanced millisecond clock."""

    def __init__(self, start: int = T0):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config():
    """Cap of 100 KiB so eviction can be driven with small files."""
    return CacheConfig(max_size_mb=100 / 1024, max_age_days=7)


@pytest.fixture
def store(temp_dir, config, clock):
    s = ArtifactStore(temp_dir / "cache", temp_dir / "edits", config, clock=clock)
    s.initialize()
    return s


@pytest.fixture
def source_file(temp_dir, write_file):
    return write_file(temp_dir / "src" / "photo.jpg", 10 * KIB)


def assert_sum_consistent(store: ArtifactStore) -> None:
    index = store._index
    assert index.total_size_bytes == sum(e.size_bytes for e in index.entries.values())
    assert store.get_stats().total_size_bytes == index.total_size_bytes


# =============================================================================
# Model Tests
# =============================================================================


class TestModels:
    """Tests for index bookkeeping and configuration."""

    @pytest.mark.unit
    def test_index_add_remove_keeps_total(self):
        """The running total follows add and remove."""
        index = StoreIndex()
        index.add(StoredEntry("a", Path("/a"), 1, 1, 100))
        index.add(StoredEntry("b", Path("/b"), 2, 2, 50))
        assert index.total_size_bytes == 150

        removed = index.remove("a")
        assert removed is not None and removed.key == "a"
        assert index.total_size_bytes == 50
        assert index.remove("missing") is None
        assert index.total_size_bytes == 50

    @pytest.mark.unit
    def test_index_add_replaces_same_key(self):
        """Re-adding a key does not double count its size."""
        index = StoreIndex()
        index.add(StoredEntry("a", Path("/a"), 1, 1, 100))
        index.add(StoredEntry("a", Path("/a"), 1, 1, 30))
        assert len(index) == 1
        assert index.total_size_bytes == 30

    @pytest.mark.unit
    def test_oldest_breaks_ties_by_first_encountered(self):
        """Equal access times resolve to the first entry inserted."""
        index = StoreIndex()
        index.add(StoredEntry("first", Path("/1"), 5, 5, 1))
        index.add(StoredEntry("second", Path("/2"), 5, 5, 1))
        index.add(StoredEntry("newer", Path("/3"), 9, 9, 1))
        assert index.oldest().key == "first"
        assert index.oldest(exclude={"first"}).key == "second"

    @pytest.mark.unit
    def test_entry_age_basis(self):
        """Age is measured from access or creation time."""
        entry = StoredEntry("k", Path("/k"), created_at=0, last_accessed_at=60)
        assert entry.age_ms(100) == 40
        assert entry.age_ms(100, ExpiryBasis.CREATED) == 100

    @pytest.mark.unit
    def test_config_defaults(self):
        """CacheConfig default values."""
        config = CacheConfig()
        assert config.max_size_bytes == 100 * 1024 * 1024
        assert config.eviction_target_bytes == 80 * 1024 * 1024
        assert config.max_age_ms == 7 * MS_PER_DAY
        assert config.expiry_basis == ExpiryBasis.ACCESSED

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "kwargs,match",
        [
            ({"max_size_mb": 0}, "max_size_mb"),
            ({"max_age_days": -1}, "max_age_days"),
            ({"eviction_target_ratio": 1.5}, "eviction_target_ratio"),
        ],
    )
    def test_config_rejects_invalid_values(self, kwargs, match):
        """Invalid limits raise ValueError."""
        with pytest.raises(ValueError, match=match):
            CacheConfig(**kwargs)

    @pytest.mark.unit
    def test_config_from_environment(self, monkeypatch):
        """Environment variables feed CacheConfig."""
        monkeypatch.setenv("AIDIT_CACHE_MAX_SIZE_MB", "25")
        monkeypatch.setenv("AIDIT_CACHE_MAX_AGE_DAYS", "2")
        monkeypatch.setenv("AIDIT_CACHE_EXPIRY_BASIS", "Created")
        config = CacheConfig.from_environment()
        assert config.max_size_mb == 25
        assert config.max_age_days == 2
        assert config.expiry_basis == ExpiryBasis.CREATED

    @pytest.mark.unit
    def test_config_unknown_expiry_basis_falls_back(self, monkeypatch):
        """An unknown expiry basis uses access time."""
        monkeypatch.setenv("AIDIT_CACHE_EXPIRY_BASIS", "whenever")
        assert CacheConfig.from_environment().expiry_basis == ExpiryBasis.ACCESSED


# =============================================================================
# Index Persistence Tests
# =============================================================================


class TestIndexPersistence:
    """Tests for the persisted index document."""

    @pytest.mark.unit
    def test_missing_file_is_empty_index(self, temp_dir):
        """No index file means an empty index."""
        index = load_index(temp_dir / "index.json")
        assert len(index) == 0
        assert index.total_size_bytes == 0

    @pytest.mark.unit
    def test_written_document_layout(self, temp_dir):
        """The document carries version, entries and totalSize."""
        index = StoreIndex()
        index.add(StoredEntry("k", temp_dir / "k.jpg", 10, 20, 300))
        path = temp_dir / "index.json"
        save_index(path, index)

        data = json.loads(path.read_text())
        assert data["version"] == INDEX_VERSION
        assert data["totalSize"] == 300
        assert data["entries"]["k"] == {
            "uri": str(temp_dir / "k.jpg"),
            "timestamp": 20,
            "created": 10,
            "size": 300,
        }
        assert not (temp_dir / "index.json.tmp").exists()

    @pytest.mark.unit
    def test_legacy_document_is_accepted(self, temp_dir):
        """Documents without version or created fields still load."""
        path = temp_dir / "index.json"
        path.write_text(
            json.dumps(
                {
                    "entries": {"old": {"uri": "/x/old.jpg", "timestamp": 42, "size": 7}},
                    "totalSize": 7,
                }
            )
        )
        index = load_index(path)
        entry = index.get("old")
        assert entry is not None
        assert entry.created_at == 42
        assert entry.last_accessed_at == 42
        assert index.total_size_bytes == 7

    @pytest.mark.unit
    def test_total_is_recomputed(self, temp_dir):
        """A wrong totalSize is replaced by the sum of entries."""
        path = temp_dir / "index.json"
        path.write_text(
            json.dumps(
                {
                    "entries": {
                        "a": {"uri": "/a", "timestamp": 1, "size": 5},
                        "b": {"uri": "/b", "timestamp": 1, "size": 6},
                    },
                    "totalSize": 999,
                }
            )
        )
        assert load_index(path).total_size_bytes == 11

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "payload",
        [
            "{not json",
            json.dumps({"version": INDEX_VERSION + 1, "entries": {}}),
            json.dumps({"entries": {"a": {"uri": "/a", "timestamp": -5}}}),
            json.dumps([1, 2, 3]),
            json.dumps({"entries": {"k": {"uri": "/tmp/bad\u0000name.jpg", "timestamp": 0}}}),
        ],
    )
    def test_invalid_documents_raise_corruption(self, temp_dir, payload):
        """Unparseable, future or malformed documents are corrupt."""
        path = temp_dir / "index.json"
        path.write_text(payload)
        with pytest.raises(IndexCorruptionError):
            load_index(path)


# =============================================================================
# ArtifactStore Tests
# =============================================================================


class TestArtifactStoreLifecycle:
    """Tests for initialization and index reload."""

    @pytest.mark.unit
    def test_initialize_creates_directories(self, store):
        """Both managed and permanent directories exist."""
        assert store.cache_dir.is_dir()
        assert store.edits_dir.is_dir()
        assert store.initialized

    @pytest.mark.unit
    def test_initialize_is_idempotent(self, store, source_file):
        """A second initialize keeps the in-memory index."""
        store.cache_image(source_file)
        store.initialize()
        assert store.get_stats().entry_count == 1

    @pytest.mark.unit
    def test_corrupt_index_starts_empty(self, temp_dir, config, clock):
        """A corrupt index is discarded instead of raising."""
        cache_dir = temp_dir / "cache"
        cache_dir.mkdir()
        (cache_dir / "index.json").write_text("\x00garbage")

        store = ArtifactStore(cache_dir, temp_dir / "edits", config, clock=clock)
        store.initialize()
        assert store.get_stats().entry_count == 0
        assert json.loads((cache_dir / "index.json").read_text())["entries"] == {}

    @pytest.mark.unit
    def test_unusable_entry_path_starts_empty(self, temp_dir, config, clock):
        """An entry whose path the OS rejects makes the index corrupt, not fatal."""
        cache_dir = temp_dir / "cache"
        cache_dir.mkdir()
        entry = {"uri": "/tmp/bad\u0000name.jpg", "timestamp": 0, "size": 5}
        document = {"entries": {"k": entry}}
        (cache_dir / "index.json").write_text(json.dumps(document))

        store = ArtifactStore(cache_dir, temp_dir / "edits", config, clock=clock)
        store.initialize()
        assert store.initialized
        assert store.get_stats().entry_count == 0

    @pytest.mark.unit
    def test_index_survives_restart(self, store, source_file, config, clock):
        """A new store over the same directory sees persisted entries."""
        cached = store.cache_image(source_file, "enhance")
        key = store.find_key(cached)

        reopened = ArtifactStore(store.cache_dir, store.edits_dir, config, clock=clock)
        reopened.initialize()
        assert reopened.get_stats() == store.get_stats()
        assert reopened.get_cached(key) == cached

    @pytest.mark.unit
    def test_lazy_initialization(self, temp_dir, config, clock, source_file):
        """Operations initialize the store on first use."""
        store = ArtifactStore(temp_dir / "c", temp_dir / "e", config, clock=clock)
        store.cache_image(source_file)
        assert store.initialized


class TestArtifactStoreOperations:
    """Tests for cache, save, lookup and delete."""

    @pytest.mark.unit
    def test_cache_image_records_entry(self, store, source_file):
        """Caching copies the file and tracks its size."""
        cached = store.cache_image(source_file, "auto-enhance")

        assert cached.parent == store.cache_dir
        assert cached.suffix == ".jpg"
        assert cached.read_bytes() == source_file.read_bytes()

        key = store.find_key(cached)
        assert key is not None
        assert key.startswith("photo_auto-enhance_")
        entry = store.get_entry(key)
        assert entry.size_bytes == 10 * KIB
        assert entry.created_at == entry.last_accessed_at == T0
        assert store.get_stats().total_size_bytes == 10 * KIB

    @pytest.mark.unit
    def test_cache_image_generates_unique_keys(self, store, source_file):
        """Same source, operation and millisecond still yield distinct keys."""
        first = store.cache_image(source_file, "crop")
        second = store.cache_image(source_file, "crop")
        assert first != second
        assert store.get_stats().entry_count == 2

    @pytest.mark.unit
    def test_cache_image_without_suffix(self, store, temp_dir, write_file):
        """Sources without a suffix are stored as .jpg."""
        cached = store.cache_image(write_file(temp_dir / "blob", 10))
        assert cached.suffix == ".jpg"

    @pytest.mark.unit
    def test_cache_missing_source_raises(self, store, temp_dir):
        """A failed copy raises and leaves the index unchanged."""
        with pytest.raises(StorageError) as excinfo:
            store.cache_image(temp_dir / "nope.jpg")
        assert excinfo.value.path == temp_dir / "nope.jpg"
        assert store.get_stats().entry_count == 0
        assert [p.name for p in store.cache_dir.iterdir()] == ["index.json"]

    @pytest.mark.unit
    def test_save_edit_is_unmanaged(self, store, source_file):
        """Saved edits land in the permanent dir and not in the index."""
        saved = store.save_edit(source_file, "My Holiday!")
        assert saved == store.edits_dir / "My-Holiday.jpg"
        assert saved.exists()
        assert store.get_stats().entry_count == 0
        assert store.find_key(saved) is None

    @pytest.mark.unit
    def test_save_edit_generated_name(self, store, source_file):
        """Without a name the clock provides one."""
        saved = store.save_edit(source_file)
        assert saved.name == f"edit_{T0}.jpg"

    @pytest.mark.unit
    def test_save_edit_keeps_single_suffix(self, store, source_file):
        """A name already ending in the suffix is not doubled."""
        assert store.save_edit(source_file, "final.jpg").name == "final.jpg"

    @pytest.mark.unit
    def test_save_edit_same_millisecond_keeps_both(self, store, temp_dir, write_file):
        """Two generated names in one clock tick do not overwrite each other."""
        first = store.save_edit(write_file(temp_dir / "s" / "a.jpg", 10))
        second = store.save_edit(write_file(temp_dir / "s" / "b.jpg", 20))

        assert first != second
        assert first.name == f"edit_{T0}.jpg"
        assert second.name.startswith(f"edit_{T0}_")
        assert sorted(p.stat().st_size for p in store.list_saved_edits()) == [10, 20]

    @pytest.mark.unit
    def test_save_edit_same_name_keeps_both(self, store, source_file):
        """Saving twice under one name keeps the earlier file."""
        first = store.save_edit(source_file, "final")
        second = store.save_edit(source_file, "final")
        assert first.name == "final.jpg"
        assert second.name.startswith("final_") and second.suffix == ".jpg"
        assert len(store.list_saved_edits()) == 2

    @pytest.mark.unit
    def test_save_edit_missing_source_raises(self, store, temp_dir):
        """A failed copy raises StorageError."""
        with pytest.raises(StorageError):
            store.save_edit(temp_dir / "missing.jpg")

    @pytest.mark.unit
    def test_list_saved_edits(self, store, source_file):
        """Saved edits are listed, sorted by name."""
        store.save_edit(source_file, "b")
        store.save_edit(source_file, "a")
        assert [p.name for p in store.list_saved_edits()] == ["a.jpg", "b.jpg"]

    @pytest.mark.unit
    def test_list_saved_edits_unreadable(self, store):
        """An unreadable directory yields an empty list."""
        store.edits_dir.rmdir()
        store.edits_dir.write_text("not a directory")
        assert store.list_saved_edits() == []

    @pytest.mark.unit
    def test_get_cached_touches_entry(self, store, source_file, clock):
        """Reads refresh the access time and persist it."""
        cached = store.cache_image(source_file)
        key = store.find_key(cached)
        clock.advance(5_000)

        assert store.get_cached(key) == cached
        assert store.get_entry(key).last_accessed_at == T0 + 5_000
        assert store.get_entry(key).created_at == T0

        data = json.loads(store.index_path.read_text())
        assert data["entries"][key]["timestamp"] == T0 + 5_000

    @pytest.mark.unit
    def test_get_cached_unknown_key(self, store):
        """Unknown keys are absent."""
        assert store.get_cached("nope") is None

    @pytest.mark.unit
    def test_get_cached_prunes_stale_entry(self, store, source_file):
        """A key whose file was deleted externally is pruned."""
        kept = store.cache_image(source_file)
        gone = store.cache_image(source_file)
        gone_key = store.find_key(gone)
        gone.unlink()

        before = store.get_stats().entry_count
        assert store.get_cached(gone_key) is None
        assert store.get_stats().entry_count == before - 1
        assert store.get_stats().total_size_bytes == kept.stat().st_size
        assert gone_key not in json.loads(store.index_path.read_text())["entries"]

    @pytest.mark.unit
    def test_delete_is_idempotent(self, store, source_file):
        """Deleting twice equals deleting once."""
        cached = store.cache_image(source_file)
        store.delete(cached)
        after_first = (store.get_stats(), store.index_path.read_text())

        store.delete(cached)
        assert (store.get_stats(), store.index_path.read_text()) == after_first
        assert not cached.exists()
        assert store.get_stats().entry_count == 0

    @pytest.mark.unit
    def test_delete_saved_edit(self, store, source_file):
        """Saved edits are deleted without touching the index."""
        cached = store.cache_image(source_file)
        saved = store.save_edit(source_file, "keep")
        store.delete(saved)
        assert not saved.exists()
        assert store.find_key(cached) is not None

    @pytest.mark.unit
    def test_delete_unknown_path(self, store, temp_dir):
        """Deleting a path that never existed is a no-op."""
        store.delete(temp_dir / "never.jpg")
        assert store.get_stats().entry_count == 0

    @pytest.mark.unit
    def test_delete_invalid_path(self, store, source_file):
        """A path the OS rejects is logged, not raised."""
        store.cache_image(source_file)
        store.delete("/tmp/bad\x00name.jpg")
        assert store.get_stats().entry_count == 1

    @pytest.mark.unit
    def test_clear_cache_keeps_saved_edits(self, store, source_file):
        """Clearing empties the cache but not the permanent directory."""
        cached = store.cache_image(source_file)
        saved = store.save_edit(source_file, "keep")

        store.clear_cache()
        assert store.get_stats().entry_count == 0
        assert store.get_stats().total_size_bytes == 0
        assert not cached.exists()
        assert saved.exists()
        assert store.cache_dir.is_dir()
        assert json.loads(store.index_path.read_text())["entries"] == {}

    @pytest.mark.unit
    def test_clear_cache_failure_raises(self, store, source_file, monkeypatch):
        """A directory that cannot be removed surfaces as StorageError."""
        cached = store.cache_image(source_file)

        def fail(path, *args, **kwargs):
            raise PermissionError(13, "Permission denied", str(path))

        monkeypatch.setattr(cache_lib.shutil, "rmtree", fail)
        with pytest.raises(StorageError) as excinfo:
            store.clear_cache()

        assert excinfo.value.path == store.cache_dir
        assert store.get_stats().entry_count == 1
        assert cached.exists()

    @pytest.mark.unit
    def test_sum_invariant_over_mixed_operations(self, store, temp_dir, write_file):
        """The running total matches the entries after every operation."""
        paths = []
        for i, size in enumerate([3 * KIB, 7 * KIB, 11 * KIB, 13 * KIB]):
            src = write_file(temp_dir / "src" / f"img{i}.png", size)
            paths.append(store.cache_image(src, "op"))
            assert_sum_consistent(store)

        store.delete(paths[1])
        assert_sum_consistent(store)

        paths[2].unlink()
        store.get_cached(store.find_key(paths[2]) or "")
        assert_sum_consistent(store)

        store.delete(paths[1])
        store.reconcile()
        assert_sum_consistent(store)
        assert store.get_stats().total_size_bytes == 16 * KIB


class TestEviction:
    """Tests for size-bounded LRU eviction."""

    @pytest.mark.unit
    def test_three_large_images_evict_oldest(self, store, temp_dir, write_file, clock):
        """Three 40 KiB files under a 100 KiB cap leave two entries."""
        cached = []
        for i in range(3):
            src = write_file(temp_dir / "src" / f"big{i}.jpg", 40 * KIB)
            cached.append(store.cache_image(src))
            clock.advance(1_000)

        stats = store.get_stats()
        assert stats.entry_count == 2
        assert stats.total_size_bytes <= store.config.eviction_target_bytes
        assert not cached[0].exists()
        assert cached[1].exists() and cached[2].exists()
        assert_sum_consistent(store)

    @pytest.mark.unit
    def test_no_eviction_at_cap(self, store, temp_dir, write_file, clock):
        """Exactly reaching the cap does not evict."""
        for i in range(4):
            src = write_file(temp_dir / "src" / f"q{i}.jpg", 25 * KIB)
            store.cache_image(src)
            clock.advance(1)

        assert store.get_stats().total_size_bytes == store.config.max_size_bytes
        assert store.get_stats().entry_count == 4

    @pytest.mark.unit
    def test_eviction_respects_recent_reads(self, store, temp_dir, write_file, clock):
        """A read moves an entry to the back of the eviction order."""
        first = store.cache_image(write_file(temp_dir / "s" / "a.jpg", 40 * KIB))
        clock.advance(10)
        second = store.cache_image(write_file(temp_dir / "s" / "b.jpg", 40 * KIB))
        clock.advance(10)
        store.get_cached(store.find_key(first))
        clock.advance(10)
        store.cache_image(write_file(temp_dir / "s" / "c.jpg", 40 * KIB))

        assert first.exists()
        assert not second.exists()

    @pytest.mark.unit
    def test_evicts_down_to_target(self, store, temp_dir, write_file, clock):
        """Eviction continues past the cap down to the hysteresis target."""
        cached = []
        for i in range(10):
            cached.append(store.cache_image(write_file(temp_dir / "s" / f"{i}.jpg", 10 * KIB)))
            clock.advance(1)
        assert store.get_stats().entry_count == 10

        cached.append(store.cache_image(write_file(temp_dir / "s" / "x.jpg", 5 * KIB)))

        # 105 KiB -> drop 10 KiB entries oldest first until <= 80 KiB
        assert store.get_stats().total_size_bytes == 75 * KIB
        assert [p.exists() for p in cached[:3]] == [False, False, False]
        assert all(p.exists() for p in cached[3:])

    @pytest.mark.unit
    def test_oversized_entry_is_kept(self, store, temp_dir, write_file):
        """The entry just inserted is never evicted by its own insertion."""
        small = store.cache_image(write_file(temp_dir / "s" / "small.jpg", 10 * KIB))
        huge = store.cache_image(write_file(temp_dir / "s" / "huge.jpg", 120 * KIB))

        assert huge.exists()
        assert not small.exists()
        assert store.get_stats().entry_count == 1


class TestExpiry:
    """Tests for age-based cleanup at initialization."""

    def _reopen(self, store, clock, **config_kwargs):
        config = CacheConfig(max_size_mb=100 / 1024, max_age_days=7, **config_kwargs)
        reopened = ArtifactStore(store.cache_dir, store.edits_dir, config, clock=clock)
        reopened.initialize()
        return reopened

    @pytest.mark.unit
    def test_expired_entries_removed_on_initialize(self, store, source_file, clock):
        """Entries older than the max age are deleted with their files."""
        cached = store.cache_image(source_file)
        clock.advance(8 * MS_PER_DAY)

        reopened = self._reopen(store, clock)
        assert reopened.get_stats().entry_count == 0
        assert not cached.exists()

    @pytest.mark.unit
    def test_access_based_expiry(self, store, source_file, clock):
        """By default a recent read keeps an old entry alive."""
        cached = store.cache_image(source_file)
        clock.advance(6 * MS_PER_DAY)
        store.get_cached(store.find_key(cached))
        clock.advance(2 * MS_PER_DAY)

        reopened = self._reopen(store, clock)
        assert reopened.get_stats().entry_count == 1

    @pytest.mark.unit
    def test_creation_based_expiry(self, store, source_file, clock):
        """With the created basis, reads do not extend the lifetime."""
        cached = store.cache_image(source_file)
        clock.advance(6 * MS_PER_DAY)
        store.get_cached(store.find_key(cached))
        clock.advance(2 * MS_PER_DAY)

        reopened = self._reopen(store, clock, expiry_basis=ExpiryBasis.CREATED)
        assert reopened.get_stats().entry_count == 0


class TestReconcile:
    """Tests for reconciliation and full cleanup."""

    @pytest.mark.unit
    def test_reconcile_removes_orphans_and_stale(self, store, source_file):
        """Orphan files are deleted and missing files pruned."""
        kept = store.cache_image(source_file)
        stale = store.cache_image(source_file)
        stale.unlink()
        orphan = store.cache_dir / "orphan.jpg"
        orphan.write_bytes(b"x")

        result = store.reconcile()
        assert result.entries_removed == 1
        assert result.orphans_removed == 1
        assert result.bytes_freed == 10 * KIB
        assert not orphan.exists()
        assert kept.exists()
        assert store.index_path.exists()

    @pytest.mark.unit
    def test_cleanup_merges_results(self, store, source_file, clock):
        """cleanup() runs expiry and reconciliation together."""
        store.cache_image(source_file)
        (store.cache_dir / "orphan.jpg").write_bytes(b"x")
        clock.advance(8 * MS_PER_DAY)

        result = store.cleanup()
        assert result.entries_removed == 1
        assert result.orphans_removed == 1
        assert result.errors == []


class TestTransactions:
    """Tests for rollback when the index cannot be written."""

    @pytest.fixture
    def failing_save(self, monkeypatch):
        def fail(path, index):
            raise StorageError("disk full", path)

        def install():
            monkeypatch.setattr(cache_lib, "save_index", fail)

        return install

    @pytest.mark.unit
    def test_cache_image_rolls_back(self, store, source_file, failing_save):
        """A failed persist leaves no entry and no copied file."""
        failing_save()
        with pytest.raises(StorageError, match="disk full"):
            store.cache_image(source_file)

        assert store.get_stats().entry_count == 0
        assert [p.name for p in store.cache_dir.iterdir()] == ["index.json"]

    @pytest.mark.unit
    def test_read_touch_failure_still_returns(self, store, source_file, failing_save, clock):
        """A failed access-time persist does not hide the file."""
        cached = store.cache_image(source_file)
        key = store.find_key(cached)
        failing_save()
        clock.advance(100)

        assert store.get_cached(key) == cached
        assert store.get_entry(key).last_accessed_at == T0

    @pytest.mark.unit
    def test_delete_failure_keeps_entry(self, store, source_file, failing_save):
        """Index state stays at the last persisted version."""
        cached = store.cache_image(source_file)
        failing_save()
        store.delete(cached)

        assert store.get_stats().entry_count == 1
        assert_sum_consistent(store)


class TestConcurrency:
    """Tests for calls from several threads against one store."""

    @pytest.mark.unit
    def test_parallel_mutations_keep_index_consistent(self, temp_dir, write_file):
        """Interleaved cache, read and delete calls leave a consistent index."""
        store = ArtifactStore(temp_dir / "cache", temp_dir / "edits", CacheConfig())
        store.initialize()
        sources = [
            write_file(temp_dir / "src" / f"p{i}.jpg", (i + 1) * 100) for i in range(24)
        ]

        with ThreadPoolExecutor(max_workers=8) as pool:
            cached = list(pool.map(lambda src: store.cache_image(src, "op"), sources))

        assert len(set(cached)) == len(sources)
        assert store.get_stats().entry_count == len(sources)
        assert_sum_consistent(store)

        doomed, kept = cached[::2], cached[1::2]
        keys = [store.find_key(path) for path in kept]

        def work(i: int):
            if i < len(doomed):
                store.delete(doomed[i])
                return None
            return store.get_cached(keys[i - len(doomed)])

        with ThreadPoolExecutor(max_workers=8) as pool:
            reads = [r for r in pool.map(work, range(len(doomed) + len(kept))) if r]

        assert sorted(reads) == sorted(kept)
        assert store.get_stats().entry_count == len(kept)
        assert_sum_consistent(store)
        assert not any(path.exists() for path in doomed)

        reopened = ArtifactStore(store.cache_dir, store.edits_dir, CacheConfig())
        reopened.initialize()
        assert set(reopened._index.entries) == set(store._index.entries)
        assert reopened.get_stats() == store.get_stats()
