"""Shared pytest fixtures."""

from __future__ import annotations

import pytest

from marble.config import MarbleConfig
from marble.db.connection import Database
from marble.db.repository import Repository
from marble.db.schema import initialize
from marble.db.vectors import ensure_vector_tables


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with schema + vector tables, closed after test."""
    db = Database(tmp_path / ".marble.db")
    conn = db.connect()
    initialize(conn)
    ensure_vector_tables(conn)
    yield conn
    conn.close()


@pytest.fixture
def repo(tmp_db):
    return Repository(tmp_db)


@pytest.fixture
def small_config():
    """Config with 3-dim embeddings so tests can hand-write vectors."""
    cfg = MarbleConfig()
    cfg.embedding.dimensions = 3
    cfg.chunking.chunk_size = 9
    cfg.chunking.overlap = 2
    return cfg


@pytest.fixture(autouse=True)
def _isolated_global_config(tmp_path, monkeypatch):
    """Never read or write the real ~/.marble/config.yaml."""
    monkeypatch.setattr("marble.config._GLOBAL_CONFIG_PATH", tmp_path / "global" / "config.yaml")
