"""Exceptions raised by the artifact cache."""

from pathlib import Path


class CacheError(Exception):
    """Base error for artifact cache operations."""


class StorageError(CacheError):
    """A file copy, delete or index write failed.

    Attributes:
        path: The path the failing operation was working on, if known.
    """

    def __init__(self, message: str, path: Path | str | None = None):
        super().__init__(message)
        self.path = Path(path) if path is not None else None


class IndexCorruptionError(CacheError):
    """The persisted index could not be read or parsed."""

    def __init__(self, message: str, path: Path | str | None = None):
        super().__init__(message)
        self.path = Path(path) if path is not None else None


__all__ = ["CacheError", "StorageError", "IndexCorruptionError"]
