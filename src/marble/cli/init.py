"""marble init: create the database, vector tables, and shared folder.

Creates:
  .marble.db               empty library with schema + vector tables
  Org Shared folder        the public root every user can read
  ~/.marble/config.yaml    global model config (created once, mode 0o600)
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from marble.cli.common import DEFAULT_DB, PUBLIC_ROOT_FOLDER, console, open_db
from marble.config import ensure_global_config
from marble.db.repository import Repository


def init_cmd(
    db: Annotated[
        Path,
        typer.Option("--db", help="Path to .marble.db (created if missing)."),
    ] = DEFAULT_DB,
    global_config: Annotated[
        bool,
        typer.Option("--global-config/--no-global-config", help="Create ~/.marble/config.yaml."),
    ] = True,
) -> None:
    """Initialize a Marble library in the current directory."""
    existed = db.exists()
    db.parent.mkdir(parents=True, exist_ok=True)

    conn = open_db(db)
    try:
        Repository(conn).ensure_folder(PUBLIC_ROOT_FOLDER)
    finally:
        conn.close()

    if existed:
        console.print("[yellow]⚠[/]  Database already exists; schema checked.")
    else:
        console.print(f"  [green]✓[/] {db}")
    console.print(f"  [green]✓[/] folder '{PUBLIC_ROOT_FOLDER.name}'")

    if global_config:
        cfg_path = ensure_global_config()
        console.print(f"  [green]✓[/] {cfg_path} (global config)")

    console.print("\nNext steps:")
    console.print("  1. marble upload notes.txt            (add a file)")
    console.print("  2. marble ingest <file-id>            (index it)")
    console.print('  3. marble chat "/lookup <question>"   (ask about it)')
