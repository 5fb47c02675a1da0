"""marble status: library overview.

Shows database path and size, vector index generation, and a table of the
files the user can see (shared files plus their own).
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.panel import Panel
from rich.table import Table

from marble.cli.common import (
    DEFAULT_DB,
    DEFAULT_USER,
    build_vector_store,
    console,
    load_cfg,
    open_db,
)
from marble.db.models import FileRecord
from marble.db.repository import Repository


def status_cmd(
    db: Annotated[Path, typer.Option("--db", help="Path to .marble.db.")] = DEFAULT_DB,
    user: Annotated[
        str,
        typer.Option("--user", "-u", envvar="MARBLE_USER", help="Acting user id."),
    ] = DEFAULT_USER,
) -> None:
    """Show library status: database, index, and files."""
    if not db.exists():
        console.print(
            Panel(
                "[yellow]No database found.[/]\n"
                "  Run:  marble init",
                title="[bold]Library[/]",
                expand=False,
            )
        )
        return

    cfg = load_cfg(db)
    conn = open_db(db)
    try:
        repo = Repository(conn)
        store = build_vector_store(conn, cfg)
        files = _visible_files(repo, user)
        counts = {f.id: repo.count_chunks_for_file(f.id) for f in files}
    finally:
        conn.close()

    size_mb = db.stat().st_size / (1024 * 1024)
    lines = [
        f"Database:  {db} ({size_mb:.1f} MB)",
        f"Index:     {store.generation.value}",
        f"Embedding: {cfg.embedding.model} ({cfg.embedding.dimensions} dims)",
        f"Chat:      {cfg.generation.model}",
    ]
    console.print(Panel("\n".join(lines), title="[bold]Library[/]", expand=False))

    if not files:
        console.print("[dim]No files uploaded yet.[/]")
        return

    table = Table(box=None, padding=(0, 1))
    table.add_column("Status", width=3)
    table.add_column("Id", style="dim", overflow="fold")
    table.add_column("Folder", no_wrap=True)
    table.add_column("File", style="bold", no_wrap=True)
    table.add_column("Chunks", justify="right")
    for f in files:
        mark = "[green]✓[/]" if f.status == "ready" else "[yellow]…[/]"
        table.add_row(mark, f.id, f.folder_name, f.file_name, str(counts[f.id]))

    ready = sum(1 for f in files if f.status == "ready")
    console.print(
        Panel(table, title=f"[bold]Files[/] [dim]({ready}/{len(files)} ready)[/]", expand=False)
    )


def _visible_files(repo: Repository, user: str) -> list[FileRecord]:
    public = repo.list_files(visibility="public")
    own = repo.list_files(visibility="private", owner_id=user)
    return public + own
