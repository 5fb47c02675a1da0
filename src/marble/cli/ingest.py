"""marble ingest: chunk, embed, and index an uploaded file.

Re-running on the same file replaces its chunks and vectors.

Usage:
  marble ingest <file-id>
  marble ingest <file-id> --user alice
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.progress import Progress, SpinnerColumn, TextColumn

from marble.cli.common import (
    DEFAULT_DB,
    DEFAULT_USER,
    build_blob_store,
    build_vector_store,
    console,
    load_cfg,
    open_db,
    pipeline_errors,
    require_api_key,
    require_db,
)
from marble.db.repository import Repository
from marble.ingest.pipeline import IngestionPipeline


def ingest_cmd(
    file_id: Annotated[str, typer.Argument(help="Id printed by 'marble upload'.")],
    db: Annotated[Path, typer.Option("--db", help="Path to .marble.db.")] = DEFAULT_DB,
    user: Annotated[
        str,
        typer.Option("--user", "-u", envvar="MARBLE_USER", help="Acting user id."),
    ] = DEFAULT_USER,
) -> None:
    """Index an uploaded file for grounded chat."""
    require_db(db)
    cfg = load_cfg(db)
    require_api_key(cfg.embedding.model)

    conn = open_db(db)
    try:
        repo = Repository(conn)
        pipeline = IngestionPipeline(
            repo, build_blob_store(db, cfg), build_vector_store(conn, cfg), cfg
        )
        with pipeline_errors():
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                console=console,
                transient=True,
            ) as progress:
                progress.add_task(f"Ingesting {file_id}", total=None)
                result = pipeline.ingest(file_id, user)
    finally:
        conn.close()

    console.print(f"[green]✓[/] {result.file_id}: {result.chunks} chunks indexed")
