"""Artifact store for derived images.

Keeps cached images in a managed directory with a persisted JSON index,
bounded by total size (LRU eviction with a hysteresis band) and by age.
Saved edits go to a separate permanent directory that is never evicted.
"""

import contextlib
import logging
import re
import shutil
import threading
import time
from collections.abc import Callable, Iterator
from pathlib import Path
from uuid import uuid4

from .errors import IndexCorruptionError, StorageError
from .index import load_index, save_index
from .models import CacheConfig, CacheStats, CleanupResult, StoredEntry, StoreIndex

logger = logging.getLogger(__name__)

DEFAULT_SUFFIX = ".jpg"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def _now_ms() -> int:
    return int(time.time() * 1000)


def _safe_name(name: str) -> str:
    """Reduce *name* to characters that are safe in a file name."""
    return _UNSAFE_CHARS.sub("-", name).strip("-.")


class ArtifactStore:
    """Size- and age-bounded store of cached image files.

    Every mutation of the index is write-through: the full index is persisted
    before the call returns. Mutating calls are serialized by an internal
    lock, so a store may be shared between threads.

    Example:
        >>> store = ArtifactStore(cache_dir, edits_dir)
        >>> store.initialize()
        >>> cached = store.cache_image("photo.jpg", "enhance")
        >>> key = store.find_key(cached)
        >>> store.get_cached(key) == cached
        True

    Args:
        cache_dir: Managed directory for cached files and the index.
        edits_dir: Permanent directory for saved edits.
        config: Size and age limits. If None, uses defaults.
        clock: Returns the current time in milliseconds since epoch.
    """

    def __init__(
        self,
        cache_dir: Path | str,
        edits_dir: Path | str,
        config: CacheConfig | None = None,
        clock: Callable[[], int] | None = None,
    ):
        self.cache_dir = Path(cache_dir).expanduser().resolve()
        self.edits_dir = Path(edits_dir).expanduser().resolve()
        self._config = config or CacheConfig()
        self._clock = clock or _now_ms
        self._index = StoreIndex()
        self._initialized = False
        self._lock = threading.RLock()

    @property
    def config(self) -> CacheConfig:
        """Get cache configuration."""
        return self._config

    @property
    def index_path(self) -> Path:
        """Location of the persisted index."""
        return self.cache_dir / self._config.index_filename

    @property
    def initialized(self) -> bool:
        return self._initialized

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def initialize(self) -> None:
        """Create directories, load the index and drop expired entries.

        Safe to call more than once. A corrupt index is discarded and the
        store starts empty.

        Raises:
            StorageError: If the directories cannot be created.
        """
        with self._lock:
            if self._initialized:
                return

            try:
                self.cache_dir.mkdir(parents=True, exist_ok=True)
                self.edits_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise StorageError(f"Failed to create cache directories: {e}") from e

            try:
                self._index = load_index(self.index_path)
            except IndexCorruptionError as e:
                logger.warning(f"Discarding corrupt cache index: {e}")
                self._index = StoreIndex()

            self._initialized = True
            self._cleanup_expired()

            logger.info(
                f"Initialized artifact store at {self.cache_dir} "
                f"({len(self._index)} entries)"
            )

    def _ensure_initialized(self) -> None:
        if not self._initialized:
            self.initialize()

    @contextlib.contextmanager
    def _transaction(self) -> Iterator[StoreIndex]:
        """Mutate the index and persist it as one step.

        On any failure the in-memory index is restored to its state before
        the transaction, which is the last successfully persisted state.
        """
        with self._lock:
            snapshot = self._index.snapshot()
            try:
                yield self._index
                save_index(self.index_path, self._index)
            except BaseException:
                self._index = snapshot
                raise

    # =========================================================================
    # Cache Operations
    # =========================================================================

    def _generate_key(self, source: Path, operation: str | None) -> str:
        parts = [_safe_name(source.stem) or "img"]
        if operation:
            parts.append(_safe_name(operation))

        while True:
            key = "_".join([*parts, str(self._clock()), uuid4().hex[:8]])
            if key not in self._index:
                return key

    def cache_image(self, source: Path | str, operation: str | None = None) -> Path:
        """Copy *source* into the cache and track it in the index.

        Args:
            source: File to cache.
            operation: Optional tag of the edit that produced the file.

        Returns:
            Path of the cached copy.

        Raises:
            StorageError: If the copy or the index write fails. The index is
                left unchanged in that case.
        """
        self._ensure_initialized()
        source = Path(source)

        with self._lock:
            key = self._generate_key(source, operation)
            destination = self.cache_dir / f"{key}{source.suffix or DEFAULT_SUFFIX}"

            try:
                shutil.copyfile(source, destination)
                size = destination.stat().st_size
            except OSError as e:
                with contextlib.suppress(OSError):
                    destination.unlink(missing_ok=True)
                raise StorageError(f"Failed to cache image {source}: {e}", source) from e

            now = self._clock()
            entry = StoredEntry(
                key=key,
                location=destination,
                created_at=now,
                last_accessed_at=now,
                size_bytes=size,
            )

            try:
                with self._transaction() as index:
                    index.add(entry)
            except StorageError:
                with contextlib.suppress(OSError):
                    destination.unlink(missing_ok=True)
                raise

            logger.debug(f"Cached {source} as {key} ({size} bytes)")
            self._evict_if_needed(protect=key)
            return destination

    def save_edit(self, source: Path | str, name: str | None = None) -> Path:
        """Copy *source* into the permanent saved-edits directory.

        Saved edits are not tracked by the index and never evicted.

        Args:
            source: File to save.
            name: Optional file name; generated from the clock if omitted.
                An existing file is never replaced; a random suffix is added
                to the name instead.

        Returns:
            Path of the saved copy.

        Raises:
            StorageError: If the copy fails.
        """
        self._ensure_initialized()
        source = Path(source)
        suffix = source.suffix or DEFAULT_SUFFIX

        stem = _safe_name(name) if name else ""
        if not stem:
            stem = f"edit_{self._clock()}"
        if stem.lower().endswith(suffix.lower()):
            stem = stem[: -len(suffix)]

        with self._lock:
            # Saved edits are never overwritten
            destination = self.edits_dir / f"{stem}{suffix}"
            while destination.exists():
                destination = self.edits_dir / f"{stem}_{uuid4().hex[:8]}{suffix}"

            try:
                self.edits_dir.mkdir(parents=True, exist_ok=True)
                shutil.copyfile(source, destination)
            except OSError as e:
                raise StorageError(f"Failed to save edit {source}: {e}", source) from e

        logger.debug(f"Saved edit {destination}")
        return destination

    def get_cached(self, key: str) -> Path | None:
        """Look up *key* and refresh its access time.

        An entry whose file has disappeared is pruned and reported as absent.

        Args:
            key: Entry key.

        Returns:
            Path of the cached file, or None if unknown or stale.
        """
        self._ensure_initialized()

        with self._lock:
            entry = self._index.get(key)
            if entry is None:
                return None

            if not entry.location.exists():
                logger.warning(f"Pruning stale cache entry {key}: {entry.location}")
                try:
                    with self._transaction() as index:
                        index.remove(key)
                except StorageError as e:
                    logger.warning(f"Failed to persist stale entry removal: {e}")
                return None

            location = entry.location
            try:
                with self._transaction() as index:
                    index.entries[key].touch(self._clock())
            except StorageError as e:
                logger.warning(f"Failed to record access to {key}: {e}")
            return location

    def get_entry(self, key: str) -> StoredEntry | None:
        """Get entry metadata without touching it."""
        self._ensure_initialized()
        return self._index.get(key)

    def find_key(self, ref: Path | str) -> str | None:
        """Find the key of the entry stored at *ref*."""
        self._ensure_initialized()
        path = Path(ref)
        with self._lock:
            return self._index.find_key(path) or self._index.find_key(
                path.expanduser().resolve()
            )

    def list_saved_edits(self) -> list[Path]:
        """List saved edits; empty if the directory cannot be read."""
        self._ensure_initialized()
        try:
            return sorted(p for p in self.edits_dir.iterdir() if p.is_file())
        except OSError as e:
            logger.warning(f"Cannot list saved edits in {self.edits_dir}: {e}")
            return []

    def delete(self, ref: Path | str) -> None:
        """Delete a cached file or saved edit.

        Deleting a file that does not exist is not an error. Index entries
        pointing at *ref* are removed once the file is gone.
        """
        self._ensure_initialized()
        path = Path(ref)

        with self._lock:
            try:
                path.unlink(missing_ok=True)
            except (OSError, ValueError) as e:
                logger.error(f"Failed to delete {path}: {e}")
                return

            key = self.find_key(path)
            if key is None:
                return

            try:
                with self._transaction() as index:
                    index.remove(key)
            except StorageError as e:
                logger.warning(f"Failed to persist removal of {key}: {e}")
                return

            logger.debug(f"Deleted cache entry {key}")

    def clear_cache(self) -> None:
        """Delete every cached file and reset the index.

        Saved edits are not affected.

        Raises:
            StorageError: If the cache directory cannot be removed or
                recreated, or the empty index cannot be written.
        """
        self._ensure_initialized()

        with self._lock:
            try:
                with contextlib.suppress(FileNotFoundError):
                    shutil.rmtree(self.cache_dir)
                self.cache_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise StorageError(
                    f"Failed to clear cache {self.cache_dir}: {e}", self.cache_dir
                ) from e

            with self._transaction() as index:
                index.clear()

            logger.info(f"Cleared artifact cache at {self.cache_dir}")

    # =========================================================================
    # Maintenance
    # =========================================================================

    def _discard(self, index: StoreIndex, entry: StoredEntry, result: CleanupResult):
        """Delete *entry*'s file and drop it from *index*."""
        try:
            entry.location.unlink(missing_ok=True)
        except (OSError, ValueError) as e:
            # The entry still goes; reconcile() removes the file later.
            result.errors.append(f"{entry.location}: {e}")
        index.remove(entry.key)
        result.entries_removed += 1
        result.bytes_freed += entry.size_bytes

    def _evict_if_needed(self, protect: str | None = None) -> CleanupResult:
        """Evict least recently used entries once the cache exceeds its cap.

        Eviction continues down to the hysteresis target, not just the cap.
        The entry named by *protect* (the one just inserted) is never chosen.
        """
        result = CleanupResult()

        with self._lock:
            if self._index.total_size_bytes <= self._config.max_size_bytes:
                return result

            exclude = {protect} if protect else None
            try:
                with self._transaction() as index:
                    target = self._config.eviction_target_bytes
                    while index.total_size_bytes > target:
                        victim = index.oldest(exclude)
                        if victim is None:
                            break
                        self._discard(index, victim, result)
            except StorageError as e:
                logger.warning(f"Cache eviction failed: {e}")
                return CleanupResult(errors=[str(e)])

        if result.entries_removed:
            logger.info(
                f"Evicted {result.entries_removed} cache entries, "
                f"freed {result.mb_freed:.2f} MB"
            )
        return result

    def _cleanup_expired(self) -> CleanupResult:
        """Remove entries older than the configured maximum age."""
        result = CleanupResult()
        now = self._clock()
        max_age = self._config.max_age_ms
        basis = self._config.expiry_basis

        with self._lock:
            try:
                with self._transaction() as index:
                    for entry in list(index.entries.values()):
                        if entry.age_ms(now, basis) > max_age:
                            self._discard(index, entry, result)
            except StorageError as e:
                logger.warning(f"Expired entry cleanup failed: {e}")
                return CleanupResult(errors=[str(e)])

        if result.entries_removed:
            logger.info(f"Removed {result.entries_removed} expired cache entries")
        return result

    def reconcile(self) -> CleanupResult:
        """Bring the index and the cache directory back in line.

        Drops entries whose file is missing and deletes files in the cache
        directory that no entry references.
        """
        self._ensure_initialized()
        result = CleanupResult()

        with self._lock:
            try:
                with self._transaction() as index:
                    for entry in list(index.entries.values()):
                        if not entry.location.exists():
                            index.remove(entry.key)
                            result.entries_removed += 1
                            result.bytes_freed += entry.size_bytes
            except StorageError as e:
                result.errors.append(str(e))
                return result

            known = self._index.locations()
            exempt = {
                self.index_path,
                self.index_path.with_name(self.index_path.name + ".tmp"),
            }
            try:
                children = list(self.cache_dir.iterdir())
            except OSError as e:
                result.errors.append(f"{self.cache_dir}: {e}")
                return result

            for path in children:
                if not path.is_file() or path in known or path in exempt:
                    continue
                try:
                    path.unlink()
                    result.orphans_removed += 1
                except OSError as e:
                    result.errors.append(f"{path}: {e}")

        if result.entries_removed or result.orphans_removed:
            logger.info(
                f"Reconciled cache: {result.entries_removed} stale entries, "
                f"{result.orphans_removed} orphan files"
            )
        return result

    def cleanup(self) -> CleanupResult:
        """Run expiry, reconciliation and eviction in one pass."""
        self._ensure_initialized()
        result = CleanupResult()
        with self._lock:
            result.merge(self._cleanup_expired())
            result.merge(self.reconcile())
            result.merge(self._evict_if_needed())
        return result

    def get_stats(self) -> CacheStats:
        """Current entry count and total size, without I/O."""
        return CacheStats(
            entry_count=len(self._index),
            total_size_bytes=self._index.total_size_bytes,
        )


__all__ = ["ArtifactStore"]
