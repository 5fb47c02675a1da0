"""Tests for database schema initialization."""

from __future__ import annotations

import sqlite3

import pytest

from marble.db.schema import CURRENT_VERSION, initialize


def _table_columns(conn, table: str) -> set[str]:
    rows = conn.execute(f"PRAGMA table_info({table})").fetchall()
    return {row["name"] for row in rows}


def _table_exists(conn, table: str) -> bool:
    row = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name=?", (table,)
    ).fetchone()
    return row is not None


@pytest.mark.parametrize("table", ["users", "folders", "files", "chunks", "messages", "schema_version"])
def test_tables_exist(tmp_db, table):
    assert _table_exists(tmp_db, table)


def test_files_columns(tmp_db):
    assert _table_columns(tmp_db, "files") == {
        "id", "folder_id", "owner_id", "visibility", "file_name", "blob_key",
        "size", "status", "mime_type", "created_at",
    }


def test_chunks_columns(tmp_db):
    assert _table_columns(tmp_db, "chunks") == {
        "id", "file_id", "folder_id", "owner_id", "visibility", "chunk_index",
        "start_line", "end_line", "content", "created_at",
    }


def test_schema_version_recorded(tmp_db):
    version = tmp_db.execute("SELECT MAX(version) FROM schema_version").fetchone()[0]
    assert version == CURRENT_VERSION


def test_initialize_idempotent(tmp_db):
    initialize(tmp_db)
    rows = tmp_db.execute("SELECT COUNT(*) FROM schema_version").fetchone()[0]
    assert rows == CURRENT_VERSION


def _seed_file(conn, file_id="f1"):
    conn.execute("INSERT INTO users (id, email) VALUES ('u1', 'u1@example.com')")
    conn.execute(
        "INSERT INTO folders (id, name, visibility, owner_id) VALUES ('d1', 'My Space', 'private', 'u1')"
    )
    conn.execute(
        "INSERT INTO files (id, folder_id, owner_id, visibility, file_name, blob_key, size, status) "
        "VALUES (?, 'd1', 'u1', 'private', 'a.txt', 'k', 1, 'uploading')",
        (file_id,),
    )


def test_deleting_file_cascades_to_chunks(tmp_db):
    _seed_file(tmp_db)
    tmp_db.execute(
        "INSERT INTO chunks (id, file_id, folder_id, owner_id, visibility, chunk_index, "
        "start_line, end_line, content) VALUES ('c1', 'f1', 'd1', 'u1', 'private', 0, 1, 1, 'x')"
    )
    tmp_db.execute("DELETE FROM files WHERE id = 'f1'")
    tmp_db.commit()
    assert tmp_db.execute("SELECT COUNT(*) FROM chunks").fetchone()[0] == 0


def test_status_check_constraint(tmp_db):
    _seed_file(tmp_db)
    with pytest.raises(sqlite3.IntegrityError):
        tmp_db.execute("UPDATE files SET status = 'processing' WHERE id = 'f1'")


def test_visibility_check_constraint(tmp_db):
    with pytest.raises(sqlite3.IntegrityError):
        tmp_db.execute("INSERT INTO folders (id, name, visibility) VALUES ('x', 'X', 'secret')")
