"""Database schema initialization."""

from __future__ import annotations

import sqlite3

CURRENT_VERSION = 2


def initialize(conn: sqlite3.Connection) -> None:
    """Initialize the relational schema via the migration runner (idempotent).

    Vector tables are created separately by ensure_vector_tables().
    """
    from marble.db.migrations import run_migrations

    run_migrations(conn)
