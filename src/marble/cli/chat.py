"""marble chat: ask a question, freeform or grounded in your files.

Grounded mode is selected with a leading '/lookup' or --lookup:
  marble chat "/lookup what is the refund window?"
  marble chat --lookup "what is the refund window?"
  marble chat "hello there"
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.markdown import Markdown
from rich.table import Table

from marble.cli.common import (
    DEFAULT_DB,
    DEFAULT_USER,
    build_vector_store,
    console,
    ensure_local_user,
    load_cfg,
    open_db,
    pipeline_errors,
    require_api_key,
    require_db,
)
from marble.db.repository import Repository
from marble.rag.answer import ChatResponse, ChatService


def chat_cmd(
    question: Annotated[str, typer.Argument(help="Your question. Prefix '/lookup' to search files.")],
    db: Annotated[Path, typer.Option("--db", help="Path to .marble.db.")] = DEFAULT_DB,
    user: Annotated[
        str,
        typer.Option("--user", "-u", envvar="MARBLE_USER", help="Acting user id."),
    ] = DEFAULT_USER,
    lookup: Annotated[
        bool | None,
        typer.Option("--lookup/--freeform", help="Force grounded or freeform mode."),
    ] = None,
    show_sources: Annotated[
        bool,
        typer.Option("--sources/--no-sources", help="Show the retrieved sources."),
    ] = True,
) -> None:
    """Ask Marble a question."""
    require_db(db)
    cfg = load_cfg(db)
    require_api_key(cfg.generation.model)

    conn = open_db(db)
    try:
        repo = Repository(conn)
        ensure_local_user(repo, user)
        service = ChatService(repo, build_vector_store(conn, cfg), cfg)
        with pipeline_errors():
            response = service.ask(question, user, lookup=lookup)
    finally:
        conn.close()

    _render(response, show_sources)


def _render(response: ChatResponse, show_sources: bool) -> None:
    console.print(Markdown(response.answer))

    if response.citations:
        console.print("\n[bold]Citations[/]")
        for c in response.citations:
            console.print(f"  • {c.folder} / {c.file} : lines {c.lines[0]}-{c.lines[1]}")

    if show_sources and response.sources:
        table = Table(title="Sources", show_lines=False)
        table.add_column("#", style="dim", justify="right")
        table.add_column("Folder")
        table.add_column("File", style="bold")
        table.add_column("Lines")
        table.add_column("Score", justify="right")
        for i, s in enumerate(response.sources, start=1):
            table.add_row(
                str(i), s.folder_name, s.file_name, f"{s.start_line}-{s.end_line}", f"{s.score:.3f}"
            )
        console.print(table)
