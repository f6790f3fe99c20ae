"""Tests for the forward-only migration runner and schema constraints."""

from __future__ import annotations

import sqlite3

import pytest

from kbcore.db.connection import Database
from kbcore.db.migrations import MIGRATIONS, run_migrations
from kbcore.db.schema import CURRENT_VERSION, initialize


def _fresh_conn(tmp_path):
    return Database(tmp_path / "test.db").connect()


def _table_exists(conn, name: str) -> bool:
    return conn.execute(
        "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?", (name,)
    ).fetchone() is not None


def test_run_migrations_records_version(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    version = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()[0]
    assert version == MIGRATIONS[-1][0] == CURRENT_VERSION
    conn.close()


def test_level_topic_index_created(tmp_path):
    conn = _fresh_conn(tmp_path)
    initialize(conn)
    row = conn.execute(
        "SELECT name FROM sqlite_master WHERE type = 'index' AND name = 'idx_chunks_level_topic'"
    ).fetchone()
    assert row is not None
    conn.close()


def test_run_migrations_idempotent(tmp_path):
    conn = _fresh_conn(tmp_path)
    initialize(conn)
    initialize(conn)
    count = conn.execute("SELECT COUNT(*) FROM schema_version").fetchone()[0]
    assert count == len(MIGRATIONS)
    conn.close()


@pytest.mark.parametrize("table", ["sources", "chunks", "settings"])
def test_run_migrations_creates_tables(tmp_path, table):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    assert _table_exists(conn, table)
    conn.close()


def test_unknown_status_rejected(tmp_db):
    with pytest.raises(sqlite3.IntegrityError):
        tmp_db.execute(
            "INSERT INTO sources (id, name, level, status) VALUES ('s', 'n', 'High', 'indexed')"
        )


def test_success_requires_count_and_timestamp(tmp_db):
    with pytest.raises(sqlite3.IntegrityError):
        tmp_db.execute(
            "INSERT INTO sources (id, name, level, status) VALUES ('s', 'n', 'High', 'success')"
        )


def test_non_success_rejects_count(tmp_db):
    with pytest.raises(sqlite3.IntegrityError):
        tmp_db.execute(
            "INSERT INTO sources (id, name, level, status, chunks_written, indexed_at) "
            "VALUES ('s', 'n', 'High', 'failed', 3, datetime('now'))"
        )


def test_chunk_number_unique_per_source(tmp_db):
    sql = (
        "INSERT INTO chunks (id, source_id, source_name, level, text, chunk_number, embedding_model) "
        "VALUES (?, 's1', 'doc', 'High', 'x', 1, 'm')"
    )
    tmp_db.execute(sql, ("a",))
    with pytest.raises(sqlite3.IntegrityError):
        tmp_db.execute(sql, ("b",))
