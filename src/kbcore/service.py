"""KnowledgeBase — wires config, database, storage and services into one facade.

This is the surface the CLI (and any embedding application) talks to:
``process_document``, ``search``, ``get_source_status``, ``purge_all_chunks``
and ``set_distance_threshold`` plus source registration, retry, removal and
transcript ingestion.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from pathlib import Path

from kbcore.config import KbConfig
from kbcore.db.connection import Database
from kbcore.db.models import IndexingStatus, Source
from kbcore.db.repository import Repository
from kbcore.db.schema import initialize
from kbcore.errors import KbError
from kbcore.ingest.embedder import EmbeddingService, LiteLLMEmbedder
from kbcore.ingest.extractor import (
    GenerativeExtractionService,
    LiteLLMExtractionService,
    TextExtractor,
)
from kbcore.ingest.indexer import Indexer
from kbcore.pipeline.orchestrator import IngestionOrchestrator, IngestResult
from kbcore.pipeline.transcript import TranscriptIngestor
from kbcore.rag.retriever import RetrievalEngine, SearchDiagnostics, SearchOutcome
from kbcore.rag.settings import RetrievalConfigStore
from kbcore.storage.base import ObjectStore
from kbcore.storage.http import HttpObjectStore
from kbcore.storage.local import LocalObjectStore

logger = logging.getLogger(__name__)


@dataclass
class PurgeResult:
    success: bool
    deleted_count: int
    error: str | None = None


class KnowledgeBase:
    """Open a corpus database and expose ingestion + retrieval operations.

    Collaborators default to the LiteLLM-backed services and a local object
    store under ``storage.object_root``; tests pass fakes instead.
    """

    def __init__(
        self,
        config: KbConfig | None = None,
        *,
        db_path: Path | str | None = None,
        embedder: EmbeddingService | None = None,
        extraction_service: GenerativeExtractionService | None = None,
        store: ObjectStore | None = None,
        remote_store: ObjectStore | None = None,
    ) -> None:
        self.config = config or KbConfig()
        self.db_path = Path(db_path or self.config.storage.db_path)
        self._conn: sqlite3.Connection = Database(self.db_path).connect()
        initialize(self._conn)

        self.repo = Repository(self._conn)
        self.embedder = embedder or LiteLLMEmbedder(self.config.embedding)
        self.store = store or LocalObjectStore(self.config.storage.object_root)
        extractor = TextExtractor(
            extraction_service or LiteLLMExtractionService(self.config.extraction),
            native_pdf=self.config.extraction.native_pdf,
        )
        self.indexer = Indexer(self.repo, self.embedder, self.config.indexing.batch_size)
        self.orchestrator = IngestionOrchestrator(
            self.repo,
            self.store,
            extractor,
            self.indexer,
            chunking=self.config.chunking,
            remote_store=remote_store or HttpObjectStore(),
        )
        self.retrieval_settings = RetrievalConfigStore(self.repo, self.config.retrieval)
        self.engine = RetrievalEngine(self.repo, self.embedder, self.retrieval_settings)
        self.transcripts = TranscriptIngestor(self.orchestrator, self.config.extraction)

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> KnowledgeBase:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Ingestion
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
        return self.orchestrator.register_source(
            source_id, source_name, level, topic, mime_type, data=data, download_url=download_url
        )

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
        return self.orchestrator.process_document(
            source_id, source_name, level, topic, download_url, mime_type, mode=mode
        )

    def process_text(
        self, source_id: str, source_name: str, level: str, topic: str, text: str
    ) -> IngestResult:
        return self.orchestrator.process_text(source_id, source_name, level, topic, text)

    def ingest_transcript(
        self, transcript: str, source_name: str, level: str, topic: str
    ) -> IngestResult:
        return self.transcripts.ingest(transcript, source_name, level, topic)

    def retry(self, source_id: str) -> IngestResult:
        return self.orchestrator.retry(source_id)

    def delete_source(self, source_id: str) -> bool:
        return self.orchestrator.delete_source(source_id)

    def get_source_status(self, source_id: str) -> Source | None:
        return self.repo.get_source(source_id)

    def list_sources(self, status: IndexingStatus | None = None) -> list[Source]:
        return self.repo.list_sources(status)

    def purge_all_chunks(self) -> PurgeResult:
        """Delete every chunk in bounded pages. Sources keep their status records."""
        try:
            deleted = self.indexer.purge_all()
        except KbError as exc:
            logger.error("Purge stopped: %s", exc)
            return PurgeResult(
                success=False, deleted_count=getattr(exc, "committed", 0), error=str(exc)
            )
        logger.info("Purged %d chunks", deleted)
        return PurgeResult(success=True, deleted_count=deleted)

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    def search(
        self,
        query: str,
        distance_threshold: float | None = None,
        *,
        level: str | None = None,
        topic: str | None = None,
    ) -> SearchOutcome:
        return self.engine.search(query, distance_threshold, level=level, topic=topic)

    def search_by_priority(
        self, query: str, distance_threshold: float | None = None, *, topic: str | None = None
    ) -> SearchOutcome:
        return self.engine.search_by_priority(query, distance_threshold, topic=topic)

    def diagnose(
        self,
        query: str,
        distance_threshold: float | None = None,
        *,
        level: str | None = None,
        topic: str | None = None,
    ) -> SearchDiagnostics:
        return self.engine.diagnose(query, distance_threshold, level=level, topic=topic)

    def get_distance_threshold(self) -> float:
        return self.retrieval_settings.get().distance_threshold

    def set_distance_threshold(self, value: float) -> float:
        return self.retrieval_settings.set_distance_threshold(value)
