"""Domain models for the kbcore corpus."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class IndexingStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class Source:
    """One uploaded document tracked through the ingestion lifecycle.

    ``progress_note`` is transient (stage in flight) and ``error_message`` is
    terminal-only. ``indexing_error`` folds both back into the single field
    of the persisted corpus schema.
    """

    id: str
    name: str
    level: str
    topic: str
    download_url: str | None = None
    mime_type: str = "text/plain"
    storage_path: str | None = None
    status: IndexingStatus = IndexingStatus.PENDING
    progress_note: str | None = None
    error_message: str | None = None
    chunks_written: int | None = None
    indexed_at: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    @property
    def indexing_error(self) -> str | None:
        if self.status is IndexingStatus.FAILED:
            return self.error_message
        if self.status is IndexingStatus.PROCESSING:
            return self.progress_note
        return None

    def to_record(self) -> dict:
        """Return the camelCase corpus record for this source."""
        return {
            "sourceId": self.id,
            "sourceName": self.name,
            "level": self.level,
            "topic": self.topic,
            "downloadURL": self.download_url,
            "mimeType": self.mime_type,
            "indexingStatus": self.status.value,
            "indexingError": self.indexing_error,
            "chunksWritten": self.chunks_written,
            "indexedAt": self.indexed_at,
        }


@dataclass
class Chunk:
    source_id: str
    source_name: str
    level: str
    topic: str
    text: str
    chunk_number: int
    download_url: str | None = None
    id: str | None = None
    created_at: str | None = None
    rowid: int | None = None  # vec table key; None for unsaved chunks

    def to_record(self) -> dict:
        return {
            "id": self.id,
            "sourceId": self.source_id,
            "sourceName": self.source_name,
            "level": self.level,
            "topic": self.topic,
            "text": self.text,
            "chunkNumber": self.chunk_number,
            "createdAt": self.created_at,
            "downloadURL": self.download_url,
        }
