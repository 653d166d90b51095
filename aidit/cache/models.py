"""Data models for the artifact cache.

This module defines the in-memory records tracked by the artifact store,
its configuration, and the result types returned by maintenance passes.
"""

import copy
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from aidit.config import EnvVar, get_environment

MS_PER_DAY = 24 * 60 * 60 * 1000
BYTES_PER_MB = 1024 * 1024


class ExpiryBasis(str, Enum):
    """Timestamp an entry's age is measured from."""

    ACCESSED = "accessed"  # Time since last read (LRU + TTL)
    CREATED = "created"  # Time since the file was cached


@dataclass
class StoredEntry:
    """One physical file tracked by the artifact store.

    Attributes:
        key: Unique identifier of the entry.
        location: Path of the cached file.
        created_at: Creation time in milliseconds since epoch.
        last_accessed_at: Last read time in milliseconds since epoch.
        size_bytes: File size measured when the entry was created.
    """

    key: str
    location: Path
    created_at: int
    last_accessed_at: int
    size_bytes: int = 0

    def touch(self, now_ms: int) -> None:
        """Update last_accessed_at timestamp."""
        self.last_accessed_at = now_ms

    def age_ms(self, now_ms: int, basis: ExpiryBasis = ExpiryBasis.ACCESSED) -> int:
        """Age of the entry relative to *now_ms*."""
        reference = (
            self.created_at if basis == ExpiryBasis.CREATED else self.last_accessed_at
        )
        return now_ms - reference


@dataclass
class StoreIndex:
    """Mapping of keys to entries with a running size total.

    All mutation goes through `add` and `remove` so that `total_size_bytes`
    always equals the sum of the entries' sizes.
    """

    entries: dict[str, StoredEntry] = field(default_factory=dict)
    total_size_bytes: int = 0

    def __contains__(self, key: object) -> bool:
        return key in self.entries

    def __len__(self) -> int:
        return len(self.entries)

    def get(self, key: str) -> StoredEntry | None:
        return self.entries.get(key)

    def add(self, entry: StoredEntry) -> None:
        """Insert *entry*, replacing any entry with the same key."""
        self.remove(entry.key)
        self.entries[entry.key] = entry
        self.total_size_bytes += entry.size_bytes

    def remove(self, key: str) -> StoredEntry | None:
        """Remove and return the entry for *key*, if any."""
        entry = self.entries.pop(key, None)
        if entry is not None:
            self.total_size_bytes -= entry.size_bytes
        return entry

    def find_key(self, location: Path | str) -> str | None:
        """Reverse lookup of an entry key by its file location."""
        target = Path(location)
        for key, entry in self.entries.items():
            if entry.location == target:
                return key
        return None

    def oldest(self, exclude: set[str] | None = None) -> StoredEntry | None:
        """Least recently accessed entry; first encountered wins ties."""
        oldest: StoredEntry | None = None
        for entry in self.entries.values():
            if exclude and entry.key in exclude:
                continue
            if oldest is None or entry.last_accessed_at < oldest.last_accessed_at:
                oldest = entry
        return oldest

    def locations(self) -> set[Path]:
        return {entry.location for entry in self.entries.values()}

    def snapshot(self) -> "StoreIndex":
        """Deep copy used to roll back a failed transaction."""
        return copy.deepcopy(self)

    def clear(self) -> None:
        self.entries.clear()
        self.total_size_bytes = 0


@dataclass
class CacheConfig:
    """Configuration for the artifact store.

    Attributes:
        max_size_mb: Maximum total cache size in MiB.
        max_age_days: Maximum entry age in days.
        eviction_target_ratio: Fraction of the cap eviction shrinks down to.
        expiry_basis: Whether age counts from last access or creation.
        index_filename: Name of the persisted index inside the cache dir.
    """

    max_size_mb: float = 100
    max_age_days: float = 7
    eviction_target_ratio: float = 0.8
    expiry_basis: ExpiryBasis = ExpiryBasis.ACCESSED
    index_filename: str = "index.json"

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.max_size_mb <= 0:
            raise ValueError(f"max_size_mb must be positive, got {self.max_size_mb}")
        if self.max_age_days <= 0:
            raise ValueError(
                f"max_age_days must be positive, got {self.max_age_days}"
            )
        if not 0.0 < self.eviction_target_ratio <= 1.0:
            raise ValueError(
                "eviction_target_ratio must be in (0, 1], "
                f"got {self.eviction_target_ratio}"
            )
        self.expiry_basis = ExpiryBasis(self.expiry_basis)

    @property
    def max_size_bytes(self) -> int:
        """Get max size in bytes."""
        return int(self.max_size_mb * BYTES_PER_MB)

    @property
    def eviction_target_bytes(self) -> int:
        """Size the cache is shrunk to once it exceeds the cap."""
        return int(self.max_size_bytes * self.eviction_target_ratio)

    @property
    def max_age_ms(self) -> int:
        """Get max age in milliseconds."""
        return int(self.max_age_days * MS_PER_DAY)

    @classmethod
    def from_environment(cls) -> "CacheConfig":
        """Build a config from AIDIT_CACHE_* environment variables."""
        basis = get_environment(EnvVar.AIDIT_CACHE_EXPIRY_BASIS)
        try:
            expiry_basis = ExpiryBasis(basis.lower())
        except ValueError:
            expiry_basis = ExpiryBasis.ACCESSED

        return cls(
            max_size_mb=get_environment(EnvVar.AIDIT_CACHE_MAX_SIZE_MB),
            max_age_days=get_environment(EnvVar.AIDIT_CACHE_MAX_AGE_DAYS),
            expiry_basis=expiry_basis,
        )


@dataclass
class CacheStats:
    """Statistics about cache usage."""

    entry_count: int = 0
    total_size_bytes: int = 0

    @property
    def total_size_mb(self) -> float:
        """Get total size in MB."""
        return self.total_size_bytes / BYTES_PER_MB


@dataclass
class CleanupResult:
    """Result of a cache maintenance pass.

    Attributes:
        entries_removed: Index entries dropped (expired, evicted or stale).
        orphans_removed: Files in the cache dir that no entry referenced.
        bytes_freed: Total bytes released from the index.
        errors: Error messages for files that could not be deleted.
    """

    entries_removed: int = 0
    orphans_removed: int = 0
    bytes_freed: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def mb_freed(self) -> float:
        """Get MB freed."""
        return self.bytes_freed / BYTES_PER_MB

    def merge(self, other: "CleanupResult") -> None:
        """Accumulate *other* into this result."""
        self.entries_removed += other.entries_removed
        self.orphans_removed += other.orphans_removed
        self.bytes_freed += other.bytes_freed
        self.errors.extend(other.errors)


__all__ = [
    "ExpiryBasis",
    "StoredEntry",
    "StoreIndex",
    "CacheConfig",
    "CacheStats",
    "CleanupResult",
]
