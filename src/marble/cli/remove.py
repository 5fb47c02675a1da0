"""marble remove: delete a file and everything derived from it.

Removes, in order:
  - the stored blob
  - chunk rows
  - the file row
  - its vectors

Usage:
  marble remove <file-id>
  marble remove <file-id> --yes
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from marble.cli.common import (
    DEFAULT_DB,
    DEFAULT_USER,
    build_blob_store,
    build_vector_store,
    console,
    load_cfg,
    open_db,
    pipeline_errors,
    require_db,
)
from marble.cli.errors import err_file_not_found
from marble.db.repository import Repository
from marble.ingest.pipeline import IngestionPipeline


def remove_cmd(
    file_id: Annotated[str, typer.Argument(help="Id of the file to remove.")],
    db: Annotated[Path, typer.Option("--db", help="Path to .marble.db.")] = DEFAULT_DB,
    user: Annotated[
        str,
        typer.Option("--user", "-u", envvar="MARBLE_USER", help="Acting user id."),
    ] = DEFAULT_USER,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompt."),
    ] = False,
) -> None:
    """Remove a file, its chunks, and its vectors."""
    require_db(db)
    cfg = load_cfg(db)

    conn = open_db(db)
    try:
        repo = Repository(conn)
        if repo.get_file(file_id) is None:
            console.print(err_file_not_found(file_id))
            raise typer.Exit(0)

        pipeline = IngestionPipeline(
            repo, build_blob_store(db, cfg), build_vector_store(conn, cfg), cfg
        )
        with pipeline_errors():
            existing = pipeline.authorize(file_id, user)

        chunk_count = repo.count_chunks_for_file(file_id)
        console.print(f"\nRemove file: [bold]{existing.folder_name} / {existing.file_name}[/]")
        console.print(f"  Chunks: {chunk_count}  |  Visibility: {existing.visibility}")

        if not yes:
            if not typer.confirm("Confirm removal?", default=False):
                console.print("[dim]Cancelled.[/]")
                raise typer.Exit(0)

        with pipeline_errors():
            removed = pipeline.delete_file(file_id, user)
    finally:
        conn.close()

    console.print(f"\n[green]✓[/] Removed: {existing.file_name}")
    console.print(f"  {removed} chunks and vectors deleted")
