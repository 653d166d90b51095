"""Persisted index document for the artifact store.

The index is a single JSON document inside the cache directory:

    {
        "version": 1,
        "entries": {key: {"uri": ..., "timestamp": ..., "created": ..., "size": ...}},
        "totalSize": n
    }

`timestamp` is the last access time and `created` the creation time, both in
milliseconds since epoch. Documents written before versioning carry neither
`version` nor `created` and are still accepted.
"""

import contextlib
import logging
import os
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import IndexCorruptionError, StorageError
from .models import StoredEntry, StoreIndex

logger = logging.getLogger(__name__)

INDEX_VERSION = 1


class EntryRecord(BaseModel):
    """Wire form of a StoredEntry."""

    model_config = ConfigDict(extra="ignore")

    uri: str = Field(..., min_length=1, description="Path of the cached file")
    timestamp: int = Field(..., ge=0, description="Last access, ms since epoch")
    created: int | None = Field(None, ge=0, description="Creation, ms since epoch")
    size: int = Field(0, ge=0, description="File size in bytes")

    @field_validator("uri")
    @classmethod
    def _usable_path(cls, value: str) -> str:
        if "\x00" in value:
            raise ValueError("uri must not contain NUL bytes")
        return value


class IndexDocument(BaseModel):
    """Wire form of the whole StoreIndex."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    version: int = Field(
        INDEX_VERSION,
        ge=1,
        le=INDEX_VERSION,
        description="Schema version; newer documents are rejected",
    )
    entries: dict[str, EntryRecord] = Field(default_factory=dict)
    total_size: int = Field(0, alias="totalSize")


def document_to_index(document: IndexDocument) -> StoreIndex:
    """Convert a validated document to an in-memory index.

    The running total is rebuilt from the entries rather than trusted.
    """
    index = StoreIndex()
    for key, record in document.entries.items():
        created = record.created if record.created is not None else record.timestamp
        index.add(
            StoredEntry(
                key=key,
                location=Path(record.uri),
                created_at=created,
                last_accessed_at=record.timestamp,
                size_bytes=record.size,
            )
        )

    if index.total_size_bytes != document.total_size:
        logger.debug(
            f"Index total {document.total_size} disagrees with entries, "
            f"using {index.total_size_bytes}"
        )
    return index


def index_to_document(index: StoreIndex) -> IndexDocument:
    """Convert an in-memory index to its wire form."""
    return IndexDocument(
        version=INDEX_VERSION,
        entries={
            key: EntryRecord(
                uri=str(entry.location),
                timestamp=entry.last_accessed_at,
                created=entry.created_at,
                size=entry.size_bytes,
            )
            for key, entry in index.entries.items()
        },
        total_size=index.total_size_bytes,
    )


def load_index(path: Path) -> StoreIndex:
    """Load the index stored at *path*.

    A missing file yields an empty index.

    Raises:
        IndexCorruptionError: If the file cannot be read or fails validation.
    """
    if not path.exists():
        return StoreIndex()

    try:
        raw = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise IndexCorruptionError(f"Cannot read index {path}: {e}", path) from e

    try:
        document = IndexDocument.model_validate_json(raw)
    except ValidationError as e:
        raise IndexCorruptionError(
            f"Invalid index {path}: {e.error_count()} validation error(s)", path
        ) from e

    return document_to_index(document)


def save_index(path: Path, index: StoreIndex) -> None:
    """Atomically write *index* to *path*.

    Raises:
        StorageError: If the document cannot be written.
    """
    payload = index_to_document(index).model_dump_json(by_alias=True, indent=2)
    tmp_path = path.with_suffix(path.suffix + ".tmp")

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with tmp_path.open("w", encoding="utf-8") as handle:
            handle.write(payload)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, path)
    except OSError as e:
        with contextlib.suppress(OSError):
            tmp_path.unlink(missing_ok=True)
        raise StorageError(f"Failed to write index {path}: {e}", path) from e


__all__ = [
    "INDEX_VERSION",
    "EntryRecord",
    "IndexDocument",
    "load_index",
    "save_index",
    "document_to_index",
    "index_to_document",
]
