"""Artifact cache for aidit.

This module stores derived images in a managed cache directory with a
persisted index, bounded by total size and age, and copies confirmed
results into a permanent saved-edits directory.

Example:
    >>> from aidit.cache import ArtifactStore, CacheConfig
    >>> store = ArtifactStore("~/.aidit/cache", "~/.aidit/edits", CacheConfig())
    >>> store.initialize()
    >>> cached = store.cache_image("result.jpg", "auto-enhance")
    >>> store.get_stats().entry_count
    1

Features:
    - Write-through JSON index (versioned, atomically replaced)
    - LRU eviction down to a hysteresis target once the size cap is exceeded
    - Age-based expiry on startup
    - Lazy pruning of entries whose file disappeared
    - Reconciliation of orphan files

Configuration:
    Limits can be configured via CacheConfig:
    - max_size_mb: Maximum cache size (default: 100 MiB)
    - max_age_days: Maximum entry age (default: 7 days)
    - eviction_target_ratio: Eviction target as a fraction of the cap (0.8)
"""

from .errors import CacheError, IndexCorruptionError, StorageError
from .lib import ArtifactStore
from .models import (
    CacheConfig,
    CacheStats,
    CleanupResult,
    ExpiryBasis,
    StoredEntry,
    StoreIndex,
)

__all__ = [
    # Store
    "ArtifactStore",
    # Models
    "CacheConfig",
    "CacheStats",
    "CleanupResult",
    "ExpiryBasis",
    "StoredEntry",
    "StoreIndex",
    # Errors
    "CacheError",
    "StorageError",
    "IndexCorruptionError",
]
