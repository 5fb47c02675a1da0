"""marble history: recorded chats for a user, newest first."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from marble.cli.common import DEFAULT_DB, DEFAULT_USER, console, open_db, require_db
from marble.db.repository import Repository


def history_cmd(
    db: Annotated[Path, typer.Option("--db", help="Path to .marble.db.")] = DEFAULT_DB,
    user: Annotated[
        str,
        typer.Option("--user", "-u", envvar="MARBLE_USER", help="Acting user id."),
    ] = DEFAULT_USER,
    limit: Annotated[
        int,
        typer.Option("--limit", "-n", min=1, help="Show at most this many chats."),
    ] = 20,
) -> None:
    """Show past questions, answers, and citations."""
    require_db(db)
    conn = open_db(db)
    try:
        messages = Repository(conn).list_chats(user, limit=limit)
    finally:
        conn.close()

    if not messages:
        console.print(f"[dim]No chat history for {user}.[/]")
        return

    for m in messages:
        console.print(f"\n[dim]{m.created_at}[/]")
        console.print(f"[bold]Q:[/] {m.question}")
        console.print(f"[bold]A:[/] {m.answer}")
        for c in m.citations_list:
            start, end = c["lines"]
            console.print(f"  • {c['folder']} / {c['file']} : lines {start}-{end}")
