"""Shared CLI plumbing: database, config, vector store, and blob store wiring."""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import typer
from rich.console import Console

from marble.cli.errors import err_config, err_marble, err_no_api_key, err_no_db
from marble.config import ConfigError, MarbleConfig, load_config
from marble.db.connection import Database
from marble.db.models import Folder, User
from marble.db.repository import Repository
from marble.db.schema import initialize
from marble.db.vectors import SqliteFilteredIndex, SqliteNamespacedIndex, ensure_vector_tables
from marble.errors import MarbleError
from marble.rag.llm_client import validate_api_key
from marble.rag.vector_store import IndexGeneration, VectorStore, resolve_generation
from marble.storage import LocalBlobStore

console = Console()

DEFAULT_DB = Path(".marble.db")
DEFAULT_USER = "local"

PUBLIC_ROOT_FOLDER = Folder(id="public-root", name="Org Shared", visibility="public")


def private_root_folder(user_id: str) -> Folder:
    return Folder(id=f"private-{user_id}", name="My Space", visibility="private", owner_id=user_id)


def open_db(db_path: Path) -> sqlite3.Connection:
    conn = Database(db_path).connect()
    initialize(conn)
    ensure_vector_tables(conn)
    return conn


def require_db(db_path: Path) -> None:
    if not db_path.exists():
        console.print(err_no_db(str(db_path)))
        raise typer.Exit(1)


def load_cfg(db_path: Path) -> MarbleConfig:
    """Load config for the project the database lives in."""
    try:
        return load_config(db_path.resolve().parent)
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1) from exc


def require_api_key(model: str) -> None:
    try:
        validate_api_key(model)
    except EnvironmentError as exc:
        console.print(err_no_api_key(str(exc)))
        raise typer.Exit(1) from exc


def build_vector_store(conn: sqlite3.Connection, cfg: MarbleConfig) -> VectorStore:
    """Bind the local index matching ``vectors.generation``.

    'auto' binds the filtered index and lets probing confirm it.
    """
    dims = cfg.embedding.dimensions
    if cfg.vectors.generation == IndexGeneration.NAMESPACED.value:
        index: SqliteNamespacedIndex | SqliteFilteredIndex = SqliteNamespacedIndex(conn, dims)
    else:
        index = SqliteFilteredIndex(conn, dims)
    return VectorStore(index, resolve_generation(index, cfg.vectors.generation))


def build_blob_store(db_path: Path, cfg: MarbleConfig) -> LocalBlobStore:
    """Blob root from config; relative roots sit next to the database."""
    root = Path(cfg.storage.blob_root).expanduser()
    if not root.is_absolute():
        root = db_path.resolve().parent / root
    return LocalBlobStore(root)


def ensure_local_user(repo: Repository, user_id: str) -> None:
    if repo.get_user(user_id) is None:
        repo.ensure_user(User(id=user_id, email=f"{user_id}@localhost"))


@contextmanager
def pipeline_errors() -> Iterator[None]:
    """Render MarbleError as a rich message and exit 1."""
    try:
        yield
    except MarbleError as exc:
        console.print(err_marble(exc))
        raise typer.Exit(1) from exc
