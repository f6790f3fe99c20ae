"""Closed error taxonomy for ingestion and retrieval.

Every failure path maps to exactly one ``KbError`` subclass. ``kind`` is the
stable identifier surfaced in structured results; ``str(exc)`` is the
stage-prefixed message written to the Source record for operator triage.
"""

from __future__ import annotations


class KbError(Exception):
    """Base class for all pipeline errors."""

    kind: str = "KbError"
    stage: str = "pipeline"

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"{self.stage} failed: {detail}")


class ExtractionEmpty(KbError):
    """Extraction produced no text (empty or whitespace-only)."""

    kind = "ExtractionEmpty"
    stage = "text extraction"


class ExtractionUnavailable(KbError):
    """Extraction service unreachable or returned a malformed response."""

    kind = "ExtractionUnavailable"
    stage = "text extraction"


class ObjectFetchFailed(ExtractionUnavailable):
    """Document bytes could not be fetched from object storage."""


class InvalidChunkConfig(KbError, ValueError):
    kind = "InvalidChunkConfig"
    stage = "chunking"


class ChunkingProducedNothing(KbError):
    kind = "ChunkingProducedNothing"
    stage = "chunking"


class IndexingBatchFailed(KbError):
    """A chunk batch could not be written.

    Attributes:
        batch_index: 0-based index of the failing batch.
        committed: Number of chunks committed by earlier batches.
    """

    kind = "IndexingBatchFailed"
    stage = "indexing"

    def __init__(self, detail: str, batch_index: int = 0, committed: int = 0) -> None:
        self.batch_index = batch_index
        self.committed = committed
        super().__init__(detail)


class EmbeddingUnavailable(KbError):
    kind = "EmbeddingUnavailable"
    stage = "embedding"


class RetrievalQueryFailed(KbError):
    kind = "RetrievalQueryFailed"
    stage = "search"


class StatusWriteFailed(KbError):
    """Reading or writing a Source status record failed.

    A failed write of the ``failed`` status itself is only logged.
    """

    kind = "StatusWriteFailed"
    stage = "status update"
