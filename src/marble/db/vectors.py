"""sqlite-vec backed vector indexes for both index API generations.

Generation A (``SqliteNamespacedIndex``) partitions vectors by an explicit
namespace string passed on every call. Generation B (``SqliteFilteredIndex``)
keeps every vector in one global space; isolation comes from metadata fields
and a metadata filter at query time. Both answer with raw match dicts
``{"id", "score", "metadata"}``; marble.rag.vector_store turns them into
VectorMatch objects.

Search is exact: ``vec_distance_cosine`` over every candidate row,
score = 1 - cosine distance.
"""

from __future__ import annotations

import json
import re
import sqlite3
import threading
from typing import Any

from marble.errors import VectorIndexError

NAMESPACED_TABLE = "vec_namespaced"
GLOBAL_TABLE = "vec_global"

_CREATE_NAMESPACED = f"""
CREATE TABLE IF NOT EXISTS {NAMESPACED_TABLE} (
    namespace   TEXT NOT NULL,
    id          TEXT NOT NULL,
    embedding   BLOB NOT NULL,
    metadata    TEXT NOT NULL DEFAULT '{{}}',
    PRIMARY KEY (namespace, id)
)
"""

_CREATE_GLOBAL = f"""
CREATE TABLE IF NOT EXISTS {GLOBAL_TABLE} (
    id          TEXT PRIMARY KEY,
    embedding   BLOB NOT NULL,
    metadata    TEXT NOT NULL DEFAULT '{{}}'
)
"""

_FILTER_KEY_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")


def ensure_vector_tables(conn: sqlite3.Connection) -> None:
    """Create both vector tables if they don't already exist (idempotent)."""
    conn.execute(_CREATE_NAMESPACED)
    conn.execute(_CREATE_GLOBAL)
    conn.commit()


class _SqliteIndexBase:
    """Shared plumbing: dimension checks, locking, sqlite error wrapping."""

    def __init__(self, conn: sqlite3.Connection, dimensions: int) -> None:
        if dimensions < 1:
            raise ValueError(f"dimensions must be >= 1, got {dimensions}")
        self._conn = conn
        self.dimensions = dimensions
        self._lock = threading.Lock()
        ensure_vector_tables(conn)

    def _check_dimensions(self, values: list[float]) -> None:
        if len(values) != self.dimensions:
            raise VectorIndexError(
                f"Vector has {len(values)} dimensions, index expects {self.dimensions}"
            )

    def _execute(self, sql: str, params: Any = ()) -> list[sqlite3.Row]:
        with self._lock:
            try:
                rows = self._conn.execute(sql, params).fetchall()
                self._conn.commit()
            except sqlite3.Error as exc:
                raise VectorIndexError(f"Vector index operation failed: {exc}") from exc
        return rows

    def _execute_many(self, sql: str, params: list[tuple]) -> None:
        with self._lock:
            try:
                self._conn.executemany(sql, params)
                self._conn.commit()
            except sqlite3.Error as exc:
                raise VectorIndexError(f"Vector index operation failed: {exc}") from exc


def _rows_to_matches(rows: list[sqlite3.Row]) -> list[dict[str, Any]]:
    return [
        {
            "id": r["id"],
            "score": 1.0 - float(r["distance"]),
            "metadata": json.loads(r["metadata"]) if r["metadata"] else {},
        }
        for r in rows
    ]


class SqliteNamespacedIndex(_SqliteIndexBase):
    """Generation A index: every operation is scoped to one namespace."""

    def upsert(self, namespace: str, vectors: list[dict[str, Any]]) -> None:
        """Insert or replace ``{"id", "values", "metadata"}`` items in *namespace*."""
        params = []
        for v in vectors:
            self._check_dimensions(v["values"])
            params.append(
                (namespace, v["id"], json.dumps(v["values"]), json.dumps(v.get("metadata") or {}))
            )
        self._execute_many(
            f"""
            INSERT INTO {NAMESPACED_TABLE} (namespace, id, embedding, metadata)
            VALUES (?, ?, vec_f32(?), ?)
            ON CONFLICT(namespace, id) DO UPDATE SET
                embedding = excluded.embedding,
                metadata = excluded.metadata
            """,
            params,
        )

    def query(self, namespace: str, vector: list[float], top_k: int) -> list[dict[str, Any]]:
        """Return the *top_k* nearest vectors inside *namespace*, best first."""
        self._check_dimensions(vector)
        rows = self._execute(
            f"""
            SELECT id, metadata, vec_distance_cosine(embedding, vec_f32(?)) AS distance
            FROM {NAMESPACED_TABLE}
            WHERE namespace = ?
            ORDER BY distance
            LIMIT ?
            """,
            (json.dumps(vector), namespace, top_k),
        )
        return _rows_to_matches(rows)

    def delete(self, namespace: str, ids: list[str]) -> None:
        """Delete *ids* from *namespace*; ids living elsewhere are untouched."""
        if not ids:
            return
        placeholders = ",".join("?" * len(ids))
        self._execute(
            f"DELETE FROM {NAMESPACED_TABLE} WHERE namespace = ? AND id IN ({placeholders})",  # noqa: S608
            (namespace, *ids),
        )


class SqliteFilteredIndex(_SqliteIndexBase):
    """Generation B index: one global space, isolation by metadata filter."""

    def upsert(self, vectors: list[dict[str, Any]]) -> None:
        """Insert or replace ``{"id", "values", "metadata"}`` items."""
        params = []
        for v in vectors:
            self._check_dimensions(v["values"])
            params.append((v["id"], json.dumps(v["values"]), json.dumps(v.get("metadata") or {})))
        self._execute_many(
            f"""
            INSERT INTO {GLOBAL_TABLE} (id, embedding, metadata)
            VALUES (?, vec_f32(?), ?)
            ON CONFLICT(id) DO UPDATE SET
                embedding = excluded.embedding,
                metadata = excluded.metadata
            """,
            params,
        )

    def query(
        self,
        vector: list[float],
        top_k: int,
        filter: dict[str, Any] | None = None,  # noqa: A002
    ) -> list[dict[str, Any]]:
        """Return the *top_k* nearest vectors whose metadata equals every *filter* pair."""
        self._check_dimensions(vector)
        clauses: list[str] = []
        params: list[Any] = [json.dumps(vector)]
        for key, value in (filter or {}).items():
            if not _FILTER_KEY_RE.fullmatch(key):
                raise VectorIndexError(f"Invalid metadata filter key: {key!r}")
            clauses.append(f"json_extract(metadata, '$.{key}') = ?")
            params.append(value)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        params.append(top_k)

        rows = self._execute(
            f"""
            SELECT id, metadata, vec_distance_cosine(embedding, vec_f32(?)) AS distance
            FROM {GLOBAL_TABLE}
            {where}
            ORDER BY distance
            LIMIT ?
            """,  # noqa: S608
            params,
        )
        return _rows_to_matches(rows)

    def remove(self, ids: list[str]) -> None:
        """Delete *ids* regardless of their metadata."""
        if not ids:
            return
        placeholders = ",".join("?" * len(ids))
        self._execute(
            f"DELETE FROM {GLOBAL_TABLE} WHERE id IN ({placeholders})",  # noqa: S608
            ids,
        )

    def describe(self) -> dict[str, int]:
        """Return ``{"dimensions", "vector_count"}`` for the index."""
        rows = self._execute(f"SELECT COUNT(*) AS n FROM {GLOBAL_TABLE}")
        return {"dimensions": self.dimensions, "vector_count": rows[0]["n"]}
