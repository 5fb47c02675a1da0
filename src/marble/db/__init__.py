"""Marble database layer."""

from marble.db.connection import Database
from marble.db.migrations import MIGRATIONS, run_migrations
from marble.db.schema import initialize
from marble.db.vectors import SqliteFilteredIndex, SqliteNamespacedIndex, ensure_vector_tables

__all__ = [
    "Database",
    "initialize",
    "run_migrations",
    "MIGRATIONS",
    "ensure_vector_tables",
    "SqliteNamespacedIndex",
    "SqliteFilteredIndex",
]
