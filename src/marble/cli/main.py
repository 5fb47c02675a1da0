"""Marble CLI entry point."""

from __future__ import annotations

import importlib.metadata
import logging
from typing import Annotated

import typer
from rich.logging import RichHandler

from marble.cli.chat import chat_cmd
from marble.cli.common import console
from marble.cli.folders import folders_app
from marble.cli.history import history_cmd
from marble.cli.ingest import ingest_cmd
from marble.cli.init import init_cmd
from marble.cli.remove import remove_cmd
from marble.cli.status import status_cmd
from marble.cli.upload import upload_cmd


def _version() -> str:
    try:
        return importlib.metadata.version("marble")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"marble {_version()}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
        force=True,
    )
    # litellm logs every retry at INFO
    logging.getLogger("LiteLLM").setLevel(logging.WARNING)


app = typer.Typer(
    name="marble",
    help=(
        "Marble: chat with your plain-text files.\n\n"
        "  marble upload  Add a .txt file (shared or private).\n"
        "  marble ingest  Index it for retrieval.\n"
        "  marble chat    Ask; prefix '/lookup' for answers cited from your files.\n"
        "  marble folders List or create folders to upload into."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Log pipeline steps (DEBUG)."),
    ] = False,
) -> None:
    """Marble: chat with your plain-text files."""
    _configure_logging(verbose)


app.command("init")(init_cmd)
app.command("upload")(upload_cmd)
app.command("ingest")(ingest_cmd)
app.command("chat")(chat_cmd)
app.command("remove")(remove_cmd)
app.command("status")(status_cmd)
app.command("history")(history_cmd)
app.add_typer(folders_app, name="folders")


@app.command("version")
def version_cmd() -> None:
    """Show the installed Marble version."""
    typer.echo(f"marble {_version()}")


if __name__ == "__main__":
    app()
