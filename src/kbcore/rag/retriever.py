"""Dense retriever: query embedding → sqlite-vec KNN → distance-threshold filter.

search():
  1. Preprocess the query (lowercase, collapse whitespace)
  2. Embed it with the same model used at index time
  3. KNN over the whole corpus, or over the chunks matching the level / topic
     filters (``candidate_k`` cosine-distance candidates)
  4. Keep ``distance <= threshold``, closest first, at most ``top_k``

"No relevant grounding" (zero results) is a successful outcome. A failed
embedding or KNN query is reported as ``success=False`` with a generic
end-user message; the stage detail stays in ``detail`` for operators.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field

from kbcore.db.models import Chunk
from kbcore.db.repository import Repository
from kbcore.db.vectors import model_to_slug, vec_table_name
from kbcore.errors import KbError, RetrievalQueryFailed
from kbcore.ingest.embedder import EmbeddingService
from kbcore.rag.settings import RetrievalConfig, RetrievalConfigStore

logger = logging.getLogger(__name__)

SEARCH_UNAVAILABLE = "search unavailable"

PRIORITY_LEVELS: tuple[str, ...] = ("High", "Medium", "Low", "Chat History")


@dataclass
class SearchResult:
    source_id: str
    source_name: str
    level: str
    topic: str
    text: str
    distance: float
    chunk_number: int | None = None
    download_url: str | None = None

    @classmethod
    def from_chunk(cls, chunk: Chunk, distance: float) -> SearchResult:
        return cls(
            source_id=chunk.source_id,
            source_name=chunk.source_name,
            level=chunk.level,
            topic=chunk.topic,
            text=chunk.text,
            distance=distance,
            chunk_number=chunk.chunk_number,
            download_url=chunk.download_url,
        )

    def to_record(self) -> dict:
        return {
            "sourceId": self.source_id,
            "sourceName": self.source_name,
            "level": self.level,
            "topic": self.topic,
            "text": self.text,
            "distance": self.distance,
            "chunkNumber": self.chunk_number,
            "downloadURL": self.download_url,
        }


@dataclass
class SearchOutcome:
    """Result of one search call.

    Attributes:
        success: False only when the query could not be executed.
        results: Filtered results, ascending distance. Empty on no match.
        error:   End-user message when ``success`` is False.
        detail:  Stage-prefixed failure message for operators.
        error_kind: Taxonomy kind of the failure.
    """

    success: bool
    results: list[SearchResult] = field(default_factory=list)
    error: str | None = None
    detail: str | None = None
    error_kind: str | None = None


@dataclass
class SearchDiagnostics:
    """Operator view of one query: pre-filter candidates and the query vector."""

    query: str
    normalized_query: str
    threshold: float
    embedding: list[float] = field(default_factory=list)
    candidates: list[SearchResult] = field(default_factory=list)
    results: list[SearchResult] = field(default_factory=list)
    error: str | None = None

    @property
    def candidate_count(self) -> int:
        return len(self.candidates)


def preprocess_query(query: str) -> str:
    """Lowercase and collapse runs of whitespace. Chunk text is never normalized."""
    return " ".join(query.lower().split())


class RetrievalEngine:
    """Semantic search over the chunk corpus.

    Args:
        repo:         Repository backing chunks + vec tables.
        embedder:     Embedding service; must match the model used at index time.
        config_store: Source of the current ``RetrievalConfig`` when a call
                      does not pass one explicitly.
    """

    def __init__(
        self,
        repo: Repository,
        embedder: EmbeddingService,
        config_store: RetrievalConfigStore,
    ) -> None:
        self._repo = repo
        self._embedder = embedder
        self._config_store = config_store

    def search(
        self,
        query: str,
        distance_threshold: float | None = None,
        *,
        level: str | None = None,
        topic: str | None = None,
        config: RetrievalConfig | None = None,
    ) -> SearchOutcome:
        config = self._resolve(config, distance_threshold)
        try:
            _, _, _, results = self._run(query, config, level, topic)
        except KbError as exc:
            logger.error("Search for %r failed: %s", query, exc)
            return SearchOutcome(
                success=False, error=SEARCH_UNAVAILABLE, detail=str(exc), error_kind=exc.kind
            )
        logger.debug("Search %r: %d results at threshold %s", query, len(results), config.distance_threshold)
        return SearchOutcome(success=True, results=results)

    def search_by_priority(
        self,
        query: str,
        distance_threshold: float | None = None,
        *,
        topic: str | None = None,
        levels: tuple[str, ...] = PRIORITY_LEVELS,
        config: RetrievalConfig | None = None,
    ) -> SearchOutcome:
        """Search *levels* in order and return the first level with any result.

        The query is embedded once; each level runs its own KNN restricted to that
        level. A level whose KNN query fails is skipped.
        """
        config = self._resolve(config, distance_threshold)
        normalized = preprocess_query(query)
        try:
            table = self._corpus_table()
            if not normalized or table is None:
                return SearchOutcome(success=True)
            embedding = self._embedder.embed(normalized)
        except KbError as exc:
            logger.error("Search for %r failed: %s", query, exc)
            return SearchOutcome(
                success=False, error=SEARCH_UNAVAILABLE, detail=str(exc), error_kind=exc.kind
            )
        for level in levels:
            try:
                candidates = self._candidates(table, embedding, config, level, topic)
            except RetrievalQueryFailed as exc:
                logger.error("Search in level %r failed: %s", level, exc)
                continue
            results = _filter(candidates, config)
            if results:
                return SearchOutcome(success=True, results=results)
        return SearchOutcome(success=True)

    def diagnose(
        self,
        query: str,
        distance_threshold: float | None = None,
        *,
        level: str | None = None,
        topic: str | None = None,
    ) -> SearchDiagnostics:
        """Run a search and report raw candidates + the query embedding. Never raises."""
        config = self._resolve(None, distance_threshold)
        diagnostics = SearchDiagnostics(
            query=query,
            normalized_query=preprocess_query(query),
            threshold=config.distance_threshold,
        )
        try:
            _, embedding, candidates, results = self._run(query, config, level, topic)
        except KbError as exc:
            diagnostics.error = str(exc)
            return diagnostics
        diagnostics.embedding = embedding
        diagnostics.candidates = candidates
        diagnostics.results = results
        return diagnostics

    # ------------------------------------------------------------------

    def _resolve(self, config: RetrievalConfig | None, threshold: float | None) -> RetrievalConfig:
        config = config or self._config_store.get()
        if threshold is not None:
            config = config.with_threshold(threshold)
        return config

    def _run(
        self,
        query: str,
        config: RetrievalConfig,
        level: str | None,
        topic: str | None,
    ) -> tuple[str, list[float], list[SearchResult], list[SearchResult]]:
        normalized = preprocess_query(query)
        table = self._corpus_table()
        if not normalized or table is None:
            return normalized, [], [], []
        embedding = self._embedder.embed(normalized)
        candidates = self._candidates(table, embedding, config, level, topic)
        return normalized, embedding, candidates, _filter(candidates, config)

    def _corpus_table(self) -> str | None:
        """Vec table of the configured model, or None while nothing has been indexed."""
        table = vec_table_name(model_to_slug(self._embedder.model))
        try:
            return table if self._repo.has_vec_table(table) else None
        except sqlite3.Error as exc:
            raise RetrievalQueryFailed(str(exc)) from exc

    def _candidates(
        self,
        table: str,
        embedding: list[float],
        config: RetrievalConfig,
        level: str | None,
        topic: str | None,
    ) -> list[SearchResult]:
        try:
            rows = self._repo.search_vec(
                table, embedding, limit=config.candidate_k, level=level, topic=topic
            )
        except sqlite3.Error as exc:
            raise RetrievalQueryFailed(str(exc)) from exc
        return [SearchResult.from_chunk(chunk, distance) for chunk, distance in rows]


def _filter(candidates: list[SearchResult], config: RetrievalConfig) -> list[SearchResult]:
    kept = [c for c in candidates if c.distance <= config.distance_threshold]
    kept.sort(key=lambda c: c.distance)
    return kept[: config.top_k]
