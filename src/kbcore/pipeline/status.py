"""Source status tracker — the per-source lifecycle record.

    pending → processing → success
                        ↘ failed
    success / failed → processing   (re-index or retry)

``success`` always carries ``chunks_written`` and ``indexed_at``; a status
write that finds no eligible row is reported as ``StatusWriteFailed``.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Any, Callable

from kbcore.db.models import Source
from kbcore.db.repository import Repository
from kbcore.errors import StatusWriteFailed

logger = logging.getLogger(__name__)


class StatusTracker:
    def __init__(self, repo: Repository) -> None:
        self._repo = repo

    def register(self, source: Source, keep_storage_path: bool = True) -> None:
        """Create *source* as ``pending`` (or refresh its descriptive fields)."""
        try:
            self._repo.add_source(source, keep_storage_path=keep_storage_path)
        except sqlite3.Error as exc:
            raise StatusWriteFailed(f"could not register source {source.id}: {exc}") from exc

    def get(self, source_id: str) -> Source | None:
        """Return the current record of *source_id*, or None if it is not registered.

        Raises:
            StatusWriteFailed: The status record could not be read.
        """
        try:
            return self._repo.get_source(source_id)
        except sqlite3.Error as exc:
            raise StatusWriteFailed(f"could not read source {source_id}: {exc}") from exc

    def mark_processing(self, source_id: str, note: str) -> None:
        """Set ``processing`` with a human-readable progress note.

        Raises:
            StatusWriteFailed: The source row is missing or the write failed.
        """
        self._write(self._repo.set_processing, source_id, note, "processing")
        logger.debug("%s: %s", source_id, note)

    def mark_success(self, source_id: str, chunks_written: int) -> None:
        """Set ``success`` with the chunk count; ``indexed_at`` is stamped by the store.

        Raises:
            StatusWriteFailed: The source is not processing or the write failed.
        """
        self._write(self._repo.set_success, source_id, chunks_written, "success")
        logger.info("%s indexed: %d chunks", source_id, chunks_written)

    def mark_failed(self, source_id: str, error: str) -> bool:
        """Set ``failed`` with *error*. Never raises; returns False if the write failed."""
        try:
            self._write(self._repo.set_failed, source_id, error, "failed")
        except StatusWriteFailed:
            logger.error("Could not record failure of %s (%s)", source_id, error, exc_info=True)
            return False
        logger.warning("%s failed: %s", source_id, error)
        return True

    @staticmethod
    def _write(
        setter: Callable[[str, Any], bool], source_id: str, value: Any, status: str
    ) -> None:
        try:
            updated = setter(source_id, value)
        except sqlite3.Error as exc:
            raise StatusWriteFailed(f"could not set {source_id} to {status}: {exc}") from exc
        if not updated:
            raise StatusWriteFailed(f"no eligible source {source_id} to set to {status}")
