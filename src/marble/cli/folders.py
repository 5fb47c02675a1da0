"""marble folders CLI commands.

Commands:
  marble folders list                   show folders the user can upload into
  marble folders create <name>          create a private folder
  marble folders create <name> --public create a shared folder
"""

from __future__ import annotations

import uuid
from pathlib import Path
from typing import Annotated

import typer
from rich.table import Table

from marble.cli.common import (
    DEFAULT_DB,
    DEFAULT_USER,
    PUBLIC_ROOT_FOLDER,
    console,
    ensure_local_user,
    open_db,
    private_root_folder,
    require_db,
)
from marble.db.models import Folder
from marble.db.repository import Repository

folders_app = typer.Typer(
    name="folders",
    help="Manage folders (list, create).",
    add_completion=False,
)


@folders_app.command("list")
def folders_list_cmd(
    db: Annotated[Path, typer.Option("--db", help="Path to .marble.db.")] = DEFAULT_DB,
    user: Annotated[
        str,
        typer.Option("--user", "-u", envvar="MARBLE_USER", help="Acting user id."),
    ] = DEFAULT_USER,
) -> None:
    """List shared folders and the user's private folders."""
    require_db(db)
    conn = open_db(db)
    try:
        repo = Repository(conn)
        ensure_local_user(repo, user)
        # default folders exist before the first upload
        repo.ensure_folder(PUBLIC_ROOT_FOLDER)
        repo.ensure_folder(private_root_folder(user))
        folders = repo.list_folders(user)
        counts = {f.id: len(repo.list_files(folder_id=f.id)) for f in folders}
    finally:
        conn.close()

    table = Table(title="Folders", show_header=True, header_style="bold")
    table.add_column("Name", style="bold", no_wrap=True)
    table.add_column("Visibility", no_wrap=True)
    table.add_column("Files", justify="right")
    table.add_column("Id", style="dim", overflow="fold")
    for f in folders:
        visibility = "[green]public[/]" if f.visibility == "public" else "private"
        table.add_row(f.name, visibility, str(counts[f.id]), f.id)

    console.print(table)


@folders_app.command("create")
def folders_create_cmd(
    name: Annotated[str, typer.Argument(help="Folder name.")],
    db: Annotated[Path, typer.Option("--db", help="Path to .marble.db.")] = DEFAULT_DB,
    user: Annotated[
        str,
        typer.Option("--user", "-u", envvar="MARBLE_USER", help="Acting user id."),
    ] = DEFAULT_USER,
    public: Annotated[
        bool,
        typer.Option("--public/--private", help="Share with everyone, or keep private."),
    ] = False,
) -> None:
    """Create a folder owned by the acting user."""
    require_db(db)
    name = name.strip()
    if not name:
        console.print("[red]Error:[/] Folder name cannot be empty.")
        raise typer.Exit(1)

    folder = Folder(
        id=str(uuid.uuid4()),
        name=name,
        visibility="public" if public else "private",
        owner_id=user,
    )
    conn = open_db(db)
    try:
        repo = Repository(conn)
        ensure_local_user(repo, user)
        repo.ensure_folder(folder)
    finally:
        conn.close()

    console.print(f"[green]✓[/] Created {folder.visibility} folder: {folder.name}")
    console.print(f"  Folder id: [bold]{folder.id}[/]")
    console.print(f"  Upload with: marble upload <file> --folder {folder.id}")
