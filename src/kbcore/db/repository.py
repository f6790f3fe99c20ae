"""Repository pattern for all corpus database operations.

Single interface for: sources (and their status columns), chunks, vec
embeddings, bounded purge pages and process-wide settings.
Vec tables are model-managed (ensure_vec_table); repository handles read + write.
"""

from __future__ import annotations

import json
import sqlite3
import threading
import uuid

from kbcore.db.models import Chunk, IndexingStatus, Source
from kbcore.db.vectors import ensure_vec_table, list_vec_tables, vec_table_exists

_SOURCE_COLUMNS = (
    "id, name, level, topic, download_url, mime_type, storage_path, status, "
    "progress_note, error_message, chunks_written, indexed_at, created_at, updated_at"
)

_CHUNK_COLUMNS = (
    "rowid AS rowid, id, source_id, source_name, level, topic, text, chunk_number, "
    "download_url, created_at"
)


class Repository:
    """Data access layer for all corpus entities.

    Wraps an open sqlite3.Connection and provides typed methods for sources,
    chunks, vec embeddings and settings. The connection is owned by the caller
    and must be closed after use. Every method holds an internal lock for the
    duration of its local SQL work only, so one Repository can be shared by
    several ingestion threads.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        """Initialise with an open database connection.

        Args:
            conn: An open sqlite3.Connection with sqlite-vec loaded and schema
                initialised (see kbcore.db.schema.initialize).
        """
        self._conn = conn
        self._lock = threading.RLock()

    @property
    def conn(self) -> sqlite3.Connection:
        return self._conn

    # ------------------------------------------------------------------
    # Sources
    # ------------------------------------------------------------------

    def add_source(self, source: Source, keep_storage_path: bool = True) -> None:
        """Insert a source record, or refresh its descriptive fields if it exists.

        Status columns of an existing row are left untouched, so registering the
        same upload twice never rewinds its lifecycle. With *keep_storage_path*
        a missing ``storage_path`` keeps the stored one; otherwise it replaces it.
        """
        storage_path_sql = (
            "COALESCE(excluded.storage_path, sources.storage_path)"
            if keep_storage_path
            else "excluded.storage_path"
        )
        with self._lock:
            self._conn.execute(
                f"""
                INSERT INTO sources (id, name, level, topic, download_url, mime_type,
                                     storage_path, status)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name = excluded.name,
                    level = excluded.level,
                    topic = excluded.topic,
                    download_url = excluded.download_url,
                    mime_type = excluded.mime_type,
                    storage_path = {storage_path_sql},
                    updated_at = datetime('now')
                """,  # noqa: S608
                (
                    source.id,
                    source.name,
                    source.level,
                    source.topic,
                    source.download_url,
                    source.mime_type,
                    source.storage_path,
                    source.status.value,
                ),
            )
            self._conn.commit()

    def get_source(self, source_id: str) -> Source | None:
        """Return a source by ID, or None if not found."""
        with self._lock:
            row = self._conn.execute(
                f"SELECT {_SOURCE_COLUMNS} FROM sources WHERE id = ?", (source_id,)
            ).fetchone()
        return _row_to_source(row) if row else None

    def list_sources(self, status: IndexingStatus | None = None) -> list[Source]:
        """Return sources ordered by creation time (oldest first), optionally by status."""
        sql = f"SELECT {_SOURCE_COLUMNS} FROM sources"
        params: tuple = ()
        if status is not None:
            sql += " WHERE status = ?"
            params = (status.value,)
        sql += " ORDER BY created_at, id"
        with self._lock:
            rows = self._conn.execute(sql, params).fetchall()
        return [_row_to_source(r) for r in rows]

    def delete_source(self, source_id: str) -> None:
        """Delete a source record by ID. Does not cascade to chunks or embeddings."""
        with self._lock:
            self._conn.execute("DELETE FROM sources WHERE id = ?", (source_id,))
            self._conn.commit()

    # ------------------------------------------------------------------
    # Source status columns
    # ------------------------------------------------------------------

    def set_processing(self, source_id: str, note: str | None) -> bool:
        """Move *source_id* to ``processing`` with *note*. Returns False if no row."""
        return self._update_status(
            """
            UPDATE sources SET status = 'processing', progress_note = ?,
                error_message = NULL, chunks_written = NULL, indexed_at = NULL,
                updated_at = datetime('now')
            WHERE id = ?
            """,
            (note, source_id),
        )

    def set_success(self, source_id: str, chunks_written: int) -> bool:
        """Move a ``processing`` source to ``success``, stamping count + time in one statement."""
        return self._update_status(
            """
            UPDATE sources SET status = 'success', progress_note = NULL,
                error_message = NULL, chunks_written = ?, indexed_at = datetime('now'),
                updated_at = datetime('now')
            WHERE id = ? AND status = 'processing'
            """,
            (chunks_written, source_id),
        )

    def set_failed(self, source_id: str, message: str) -> bool:
        """Move a pending or processing source to ``failed``. Chunks are not touched."""
        return self._update_status(
            """
            UPDATE sources SET status = 'failed', progress_note = NULL,
                error_message = ?, chunks_written = NULL, indexed_at = NULL,
                updated_at = datetime('now')
            WHERE id = ? AND status IN ('pending', 'processing')
            """,
            (message, source_id),
        )

    def _update_status(self, sql: str, params: tuple) -> bool:
        with self._lock:
            cur = self._conn.execute(sql, params)
            self._conn.commit()
        return cur.rowcount > 0

    # ------------------------------------------------------------------
    # Chunks + vec embeddings
    # ------------------------------------------------------------------

    def ensure_vec_table(self, model_slug: str, dimensions: int) -> str:
        """Create the vec table for *model_slug* if missing. Returns its name."""
        with self._lock:
            return ensure_vec_table(self._conn, model_slug, dimensions)

    def has_vec_table(self, table: str) -> bool:
        with self._lock:
            return vec_table_exists(self._conn, table)

    def add_chunks(
        self,
        table: str,
        embedding_model: str,
        chunks: list[Chunk],
        embeddings: list[list[float]],
    ) -> list[int]:
        """Insert *chunks* and their *embeddings* in one transaction.

        All rows commit together or none do. Assigns ``id`` (uuid) and ``rowid``
        on each chunk. Returns the new rowids in input order.
        """
        if len(chunks) != len(embeddings):
            raise ValueError(
                f"chunk/embedding count mismatch: {len(chunks)} != {len(embeddings)}"
            )
        rowids: list[int] = []
        with self._lock:
            try:
                for chunk, embedding in zip(chunks, embeddings):
                    chunk_id = chunk.id or uuid.uuid4().hex
                    cur = self._conn.execute(
                        """
                        INSERT INTO chunks (id, source_id, source_name, level, topic, text,
                                            chunk_number, download_url, embedding_model)
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                        """,
                        (
                            chunk_id,
                            chunk.source_id,
                            chunk.source_name,
                            chunk.level,
                            chunk.topic,
                            chunk.text,
                            chunk.chunk_number,
                            chunk.download_url,
                            embedding_model,
                        ),
                    )
                    rowid = cur.lastrowid
                    self._conn.execute(
                        f"INSERT INTO {table}(rowid, embedding) VALUES (?, ?)",
                        (rowid, json.dumps(embedding)),
                    )
                    chunk.id = chunk_id
                    chunk.rowid = rowid
                    rowids.append(rowid)
                self._conn.commit()
            except Exception:
                self._conn.rollback()
                for chunk in chunks:
                    chunk.rowid = None
                raise
        return rowids

    def get_chunk_by_rowid(self, rowid: int) -> Chunk | None:
        with self._lock:
            row = self._conn.execute(
                f"SELECT {_CHUNK_COLUMNS} FROM chunks WHERE rowid = ?", (rowid,)
            ).fetchone()
        return _row_to_chunk(row) if row else None

    def list_chunks_by_source(self, source_id: str) -> list[Chunk]:
        """Return the chunks of *source_id* ordered by ``chunk_number``."""
        with self._lock:
            rows = self._conn.execute(
                f"SELECT {_CHUNK_COLUMNS} FROM chunks WHERE source_id = ? ORDER BY chunk_number",
                (source_id,),
            ).fetchall()
        return [_row_to_chunk(r) for r in rows]

    def count_chunks_by_source(self, source_id: str) -> int:
        with self._lock:
            return self._conn.execute(
                "SELECT COUNT(*) FROM chunks WHERE source_id = ?", (source_id,)
            ).fetchone()[0]

    def count_chunks(self) -> int:
        with self._lock:
            return self._conn.execute("SELECT COUNT(*) FROM chunks").fetchone()[0]

    def delete_chunks_by_source(self, source_id: str) -> int:
        """Delete chunks + embeddings (every vec table) for a source. Returns chunk count."""
        with self._lock:
            rowids = [
                r[0]
                for r in self._conn.execute(
                    "SELECT rowid FROM chunks WHERE source_id = ?", (source_id,)
                ).fetchall()
            ]
            if not rowids:
                return 0
            try:
                self._delete_rowids(rowids)
                self._conn.commit()
            except Exception:
                self._conn.rollback()
                raise
        return len(rowids)

    def purge_page(self, limit: int) -> int:
        """Delete up to *limit* chunks (+ embeddings) in one transaction.

        Returns the number of chunks deleted. Callers loop until a page comes
        back smaller than *limit*.
        """
        if limit < 1:
            raise ValueError(f"limit must be >= 1, got {limit}")
        with self._lock:
            rowids = [
                r[0]
                for r in self._conn.execute(
                    "SELECT rowid FROM chunks ORDER BY rowid LIMIT ?", (limit,)
                ).fetchall()
            ]
            if not rowids:
                return 0
            try:
                self._delete_rowids(rowids)
                self._conn.commit()
            except Exception:
                self._conn.rollback()
                raise
        return len(rowids)

    def _delete_rowids(self, rowids: list[int]) -> None:
        placeholders = ",".join("?" * len(rowids))
        for table in list_vec_tables(self._conn):
            self._conn.execute(
                f"DELETE FROM [{table}] WHERE rowid IN ({placeholders})",  # noqa: S608
                rowids,
            )
        self._conn.execute(
            f"DELETE FROM chunks WHERE rowid IN ({placeholders})",  # noqa: S608
            rowids,
        )

    def search_vec(
        self,
        table: str,
        embedding: list[float],
        limit: int = 10,
        level: str | None = None,
        topic: str | None = None,
    ) -> list[tuple[Chunk, float]]:
        """Nearest-neighbour search across all sources. Returns (chunk, distance) ascending.

        *level* / *topic* restrict the candidate set before ranking, so the
        *limit* nearest chunks are taken from the matching chunks only. The
        filtered path computes exact cosine distances with
        ``vec_distance_cosine`` over the chunks that pass the filter.
        """
        if level is None and topic is None:
            sql = f"""
                WITH knn AS (
                    SELECT rowid, distance FROM {table}
                    WHERE embedding MATCH ? AND k = ?
                )
                SELECT c.rowid AS rowid, c.id, c.source_id, c.source_name, c.level, c.topic,
                       c.text, c.chunk_number, c.download_url, c.created_at,
                       knn.distance AS distance
                FROM knn JOIN chunks c ON c.rowid = knn.rowid
                ORDER BY knn.distance
                """  # noqa: S608
            params: tuple = (json.dumps(embedding), limit)
        else:
            where = []
            filters: list[str] = []
            if level is not None:
                where.append("c.level = ?")
                filters.append(level)
            if topic is not None:
                where.append("c.topic = ?")
                filters.append(topic)
            sql = f"""
                SELECT c.rowid AS rowid, c.id, c.source_id, c.source_name, c.level, c.topic,
                       c.text, c.chunk_number, c.download_url, c.created_at,
                       vec_distance_cosine(v.embedding, ?) AS distance
                FROM chunks c JOIN {table} v ON v.rowid = c.rowid
                WHERE {" AND ".join(where)}
                ORDER BY distance
                LIMIT ?
                """  # noqa: S608
            params = (json.dumps(embedding), *filters, limit)
        with self._lock:
            rows = self._conn.execute(sql, params).fetchall()
        return [(_row_to_chunk(r), float(r["distance"])) for r in rows]

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def get_setting(self, key: str) -> str | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT value FROM settings WHERE key = ?", (key,)
            ).fetchone()
        return row["value"] if row else None

    def set_setting(self, key: str, value: str) -> None:
        """Upsert a process-wide setting."""
        with self._lock:
            self._conn.execute(
                """
                INSERT INTO settings (key, value) VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = datetime('now')
                """,
                (key, value),
            )
            self._conn.commit()


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------

def _row_to_source(row: sqlite3.Row) -> Source:
    return Source(
        id=row["id"],
        name=row["name"],
        level=row["level"],
        topic=row["topic"],
        download_url=row["download_url"],
        mime_type=row["mime_type"],
        storage_path=row["storage_path"],
        status=IndexingStatus(row["status"]),
        progress_note=row["progress_note"],
        error_message=row["error_message"],
        chunks_written=row["chunks_written"],
        indexed_at=row["indexed_at"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_chunk(row: sqlite3.Row) -> Chunk:
    return Chunk(
        rowid=row["rowid"],
        id=row["id"],
        source_id=row["source_id"],
        source_name=row["source_name"],
        level=row["level"],
        topic=row["topic"],
        text=row["text"],
        chunk_number=row["chunk_number"],
        download_url=row["download_url"],
        created_at=row["created_at"],
    )
