"""Ingestion orchestrator — one document from upload to searchable chunks.

process_document():
  1. Mark the source ``processing`` ("Extracting text...")
  2. Fetch bytes from object storage and extract text
  3. "Chunking text..." → sliding-window chunks; zero chunks is a failure
  4. "Indexing N chunks..." → Indexer replaces the source's previous chunks
  5. Mark ``success`` with the chunk count

Every stage failure is caught here, written to the source as ``failed`` with a
stage-prefixed message, and returned as an ``IngestResult``. Runs for the same
source are serialized by ``SourceLocks``.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass

from kbcore.config import ChunkingCfg
from kbcore.db.models import IndexingStatus, Source
from kbcore.db.repository import Repository
from kbcore.errors import (
    ChunkingProducedNothing,
    ExtractionUnavailable,
    IndexingBatchFailed,
    KbError,
    ObjectFetchFailed,
    StatusWriteFailed,
)
from kbcore.ingest.chunker import TextChunker
from kbcore.ingest.extractor import TextExtractor, choose_mode
from kbcore.ingest.indexer import Indexer
from kbcore.pipeline.locks import SourceLocks
from kbcore.pipeline.status import StatusTracker
from kbcore.storage.base import ObjectStore, WritableObjectStore

logger = logging.getLogger(__name__)

NOTE_EXTRACTING = "Extracting text..."
NOTE_CHUNKING = "Chunking text..."


@dataclass
class IngestResult:
    success: bool
    source_id: str
    chunks_written: int = 0
    error: str | None = None
    error_kind: str | None = None

    def to_record(self) -> dict:
        record: dict = {"success": self.success}
        if self.success:
            record["chunksWritten"] = self.chunks_written
        else:
            record["error"] = self.error
        return record


class IngestionOrchestrator:
    """Drive sources through extraction, chunking and indexing.

    Args:
        repo:         Repository backing sources and chunks.
        store:        Object store holding uploaded documents.
        extractor:    Text extractor adapter.
        indexer:      Chunk indexer.
        chunking:     Window size / overlap.
        remote_store: Store used for ``http(s)://`` download URLs of sources
                      that have no storage path in *store*.
        locks:        Shared per-source lock registry.
    """

    def __init__(
        self,
        repo: Repository,
        store: ObjectStore,
        extractor: TextExtractor,
        indexer: Indexer,
        chunking: ChunkingCfg | None = None,
        remote_store: ObjectStore | None = None,
        locks: SourceLocks | None = None,
    ) -> None:
        chunking = chunking or ChunkingCfg()
        self._repo = repo
        self._store = store
        self._remote = remote_store
        self._extractor = extractor
        self._indexer = indexer
        self._chunker = TextChunker(chunking.chunk_size, chunking.overlap)
        self._status = StatusTracker(repo)
        self._locks = locks or SourceLocks()

    @property
    def status(self) -> StatusTracker:
        return self._status

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register_source(
        self,
        source_id: str,
        source_name: str,
        level: str,
        topic: str,
        mime_type: str = "text/plain",
        data: bytes | None = None,
        download_url: str | None = None,
    ) -> Source:
        """Record a source as ``pending``, storing *data* in the object store if given.

        Raises:
            ValueError: *data* was given but the object store is read-only.
            StatusWriteFailed: The source row could not be written.
        """
        storage_path = None
        if data is not None:
            if not isinstance(self._store, WritableObjectStore):
                raise ValueError("object store is read-only; cannot upload document bytes")
            storage_path = f"sources/{source_id}/{source_name}"
            download_url = self._store.put(storage_path, data)
        source = Source(
            id=source_id,
            name=source_name,
            level=level,
            topic=topic,
            download_url=download_url,
            mime_type=mime_type,
            storage_path=storage_path,
        )
        self._status.register(source)
        logger.info("Registered source %s (%s)", source_id, source_name)
        return self._status.get(source_id) or source

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    def process_document(
        self,
        source_id: str,
        source_name: str,
        level: str,
        topic: str,
        download_url: str | None,
        mime_type: str,
        mode: str | None = None,
    ) -> IngestResult:
        """Extract, chunk and index one uploaded document. Never raises on stage failures."""
        with self._locks.hold(source_id):
            try:
                source = self._ensure_source(
                    source_id, source_name, level, topic, download_url, mime_type
                )
                self._status.mark_processing(source_id, NOTE_EXTRACTING)
                data = self._fetch(source)
                text = self._extract(data, mime_type, mode or choose_mode(mime_type, level))
                count = self._chunk_and_index(source, text)
            except KbError as exc:
                return self._fail(source_id, exc)
        return IngestResult(success=True, source_id=source_id, chunks_written=count)

    def process_text(
        self,
        source_id: str,
        source_name: str,
        level: str,
        topic: str,
        text: str,
        download_url: str | None = None,
    ) -> IngestResult:
        """Chunk and index already-extracted text (pasted notes, transcripts)."""
        with self._locks.hold(source_id):
            try:
                source = self._ensure_source(
                    source_id, source_name, level, topic, download_url, "text/plain"
                )
                self._status.mark_processing(source_id, NOTE_CHUNKING)
                count = self._chunk_and_index(source, text)
            except KbError as exc:
                return self._fail(source_id, exc)
        return IngestResult(success=True, source_id=source_id, chunks_written=count)

    def retry(self, source_id: str) -> IngestResult:
        """Re-run ``process_document`` for a registered source from its stored fields.

        Raises:
            KeyError: *source_id* is not registered.
        """
        try:
            source = self._status.get(source_id)
        except StatusWriteFailed as exc:
            return self._fail(source_id, exc)
        if source is None:
            raise KeyError(source_id)
        logger.info("Retrying %s (was %s)", source_id, source.status.value)
        return self.process_document(
            source.id,
            source.name,
            source.level,
            source.topic,
            source.download_url,
            source.mime_type,
        )

    def delete_source(self, source_id: str) -> bool:
        """Remove a source, its chunks and its stored object. Returns False if unknown."""
        with self._locks.hold(source_id):
            source = self._status.get(source_id)
            if source is None:
                return False
            removed = self._repo.delete_chunks_by_source(source_id)
            if source.storage_path and isinstance(self._store, WritableObjectStore):
                self._store.delete(source.storage_path)
            self._repo.delete_source(source_id)
        logger.info("Deleted source %s and %d chunks", source_id, removed)
        return True

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _ensure_source(
        self,
        source_id: str,
        source_name: str,
        level: str,
        topic: str,
        download_url: str | None,
        mime_type: str,
    ) -> Source:
        """Upsert the source with the fields of this run and return the stored record.

        A new *download_url* replaces the previous location; the object uploaded
        for the old one is no longer the source's content and is removed.
        """
        existing = self._status.get(source_id)
        storage_path = None
        relocated = False
        if existing is not None:
            if download_url is None or download_url == existing.download_url:
                download_url = existing.download_url
                storage_path = existing.storage_path
            else:
                relocated = True
                logger.info("%s moved to %s", source_id, download_url)
            if existing.status is IndexingStatus.SUCCESS:
                logger.info(
                    "Re-indexing %s (%s chunks currently)", source_id, existing.chunks_written
                )

        self._status.register(
            Source(
                id=source_id,
                name=source_name,
                level=level,
                topic=topic,
                download_url=download_url,
                mime_type=mime_type,
                storage_path=storage_path,
            ),
            keep_storage_path=not relocated,
        )
        if relocated and existing.storage_path:
            self._discard_object(existing.storage_path)

        source = self._status.get(source_id)
        if source is None:
            raise StatusWriteFailed(f"source {source_id} vanished after registration")
        return source

    def _discard_object(self, storage_path: str) -> None:
        if not isinstance(self._store, WritableObjectStore):
            return
        try:
            self._store.delete(storage_path)
        except (OSError, KbError) as exc:
            logger.warning("Could not remove stale object %s: %s", storage_path, exc)

    def _fetch(self, source: Source) -> bytes:
        if source.storage_path:
            return self._store.fetch(source.storage_path)
        url = source.download_url
        if not url:
            raise ObjectFetchFailed(f"source {source.id} has no stored object or download URL")
        if url.startswith(("http://", "https://")) and self._remote is not None:
            return self._remote.fetch(url)
        return self._store.fetch(url)

    def _extract(self, data: bytes, mime_type: str, mode: str) -> str:
        try:
            return self._extractor.extract(data, mime_type, mode)
        except KbError:
            raise
        except Exception as exc:
            logger.exception("Unexpected extraction error")
            raise ExtractionUnavailable(str(exc) or type(exc).__name__) from exc

    def _chunk_and_index(self, source: Source, text: str) -> int:
        self._status.mark_processing(source.id, NOTE_CHUNKING)
        texts = self._chunker.split(text)
        if not texts:
            raise ChunkingProducedNothing("text content was too short to be chunked")

        self._status.mark_processing(source.id, f"Indexing {len(texts)} chunks...")
        try:
            count = self._indexer.index(
                source.id,
                source.name,
                source.level,
                source.topic,
                texts,
                download_url=source.download_url,
            )
        except sqlite3.Error as exc:
            raise IndexingBatchFailed(str(exc)) from exc
        self._status.mark_success(source.id, count)
        return count

    def _fail(self, source_id: str, exc: KbError) -> IngestResult:
        message = str(exc)
        self._status.mark_failed(source_id, message)
        return IngestResult(
            success=False, source_id=source_id, error=message, error_kind=exc.kind
        )
