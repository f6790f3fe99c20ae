"""Indexer — write embedded chunk records into the corpus in capped batches.

For one source:
1. Embed every chunk text (``EmbeddingService.embed_many``). Nothing in the
   corpus changes if this fails, so a previous successful index survives.
2. Delete all existing chunks + embeddings of the source.
3. Write chunk rows + vectors in sequential batches of at most ``batch_size``;
   each batch is one transaction.

A failure in step 3 after earlier batches committed leaves a partially
indexed source; ``IndexingBatchFailed`` reports how many chunks landed and the
caller must schedule a full re-index.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Callable

from kbcore.db.models import Chunk
from kbcore.db.repository import Repository
from kbcore.db.vectors import model_to_slug
from kbcore.errors import IndexingBatchFailed
from kbcore.ingest.embedder import EmbeddingService

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 400


class Indexer:
    """Persist chunk texts with embeddings for a source.

    Args:
        repo:       Open Repository instance.
        embedder:   Embedding service; its ``model`` selects the vec table.
        batch_size: Maximum chunks per write transaction (and per purge page).
    """

    def __init__(
        self,
        repo: Repository,
        embedder: EmbeddingService,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        self._repo = repo
        self._embedder = embedder
        self.batch_size = batch_size
        self._vec_table: str | None = None

    @property
    def vec_table(self) -> str:
        if self._vec_table is None:
            self._vec_table = self._repo.ensure_vec_table(
                model_to_slug(self._embedder.model), self._embedder.dimensions
            )
        return self._vec_table

    def index(
        self,
        source_id: str,
        source_name: str,
        level: str,
        topic: str,
        chunk_texts: list[str],
        download_url: str | None = None,
        on_batch: Callable[[int, int], None] | None = None,
    ) -> int:
        """Replace the chunks of *source_id* with *chunk_texts*. Returns the count written.

        ``chunk_number`` is the 1-based position in *chunk_texts*. *on_batch* is
        called with (chunks committed so far, total) after each batch commits.

        Raises:
            EmbeddingUnavailable: Embedding failed; the corpus is unchanged.
            IndexingBatchFailed: Removing old chunks or writing a batch failed.
        """
        chunks = [
            Chunk(
                source_id=source_id,
                source_name=source_name,
                level=level,
                topic=topic,
                text=text,
                chunk_number=number,
                download_url=download_url,
            )
            for number, text in enumerate(chunk_texts, start=1)
        ]
        embeddings = self._embedder.embed_many(chunk_texts)

        try:
            table = self.vec_table
            removed = self._repo.delete_chunks_by_source(source_id)
        except sqlite3.Error as exc:
            raise IndexingBatchFailed(f"could not remove previous chunks: {exc}") from exc
        if removed:
            logger.info("Removed %d previous chunks of %s", removed, source_id)

        committed = 0
        total = len(chunks)
        for batch_index, start in enumerate(range(0, total, self.batch_size)):
            end = start + self.batch_size
            try:
                self._repo.add_chunks(
                    table, self._embedder.model, chunks[start:end], embeddings[start:end]
                )
            except (sqlite3.Error, ValueError) as exc:
                logger.error(
                    "Batch %d of %s failed after %d chunks committed: %s",
                    batch_index, source_id, committed, exc,
                )
                raise IndexingBatchFailed(
                    f"batch {batch_index + 1} failed after {committed} of {total} "
                    f"chunks were written: {exc}",
                    batch_index=batch_index,
                    committed=committed,
                ) from exc
            committed += len(chunks[start:end])
            logger.debug("Committed batch %d of %s (%d/%d)", batch_index, source_id, committed, total)
            if on_batch is not None:
                on_batch(committed, total)

        return committed

    def purge_all(self, on_page: Callable[[int], None] | None = None) -> int:
        """Delete every chunk in the corpus in bounded pages. Returns the count deleted.

        Loops until a page comes back smaller than ``batch_size``. Only deletes,
        so an interrupted purge is finished by simply running it again.

        Raises:
            IndexingBatchFailed: A page failed; ``committed`` holds the running count.
        """
        deleted = 0
        page_index = 0
        while True:
            try:
                n = self._repo.purge_page(self.batch_size)
            except sqlite3.Error as exc:
                raise IndexingBatchFailed(
                    f"purge page {page_index + 1} failed after {deleted} chunks were deleted: {exc}",
                    batch_index=page_index,
                    committed=deleted,
                ) from exc
            deleted += n
            page_index += 1
            if n:
                logger.info("Deleted a page of %d chunks. Total deleted: %d", n, deleted)
            if on_page is not None:
                on_page(deleted)
            if n < self.batch_size:
                break
        return deleted
