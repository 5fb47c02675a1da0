"""Marble rich error messages: actionable feedback.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from marble.cli.errors import err_no_db
    console.print(err_no_db(".marble.db"))
    raise typer.Exit(1)
"""

from __future__ import annotations

from marble.errors import (
    CountMismatch,
    EmptyDocument,
    Forbidden,
    InvalidInput,
    MarbleError,
    NotFound,
    ProviderError,
    VectorIndexError,
)


def err_no_api_key(detail: str) -> str:
    """No API key for the configured provider.

    Example:
        No API key found. Set:  export OPENAI_API_KEY=sk-...
    """
    return f"[red]Error:[/] {detail}"


def err_no_db(db_path: str = ".marble.db") -> str:
    """No .marble.db found."""
    return (
        f"[red]Error:[/] No database found at '{db_path}'.\n"
        "  Run:  marble init"
    )


def err_config(detail: str) -> str:
    """marble.yaml or the global config is invalid."""
    return (
        f"[red]Error:[/] Invalid configuration: {detail}\n"
        "  Fix marble.yaml or ~/.marble/config.yaml and retry."
    )


def err_upload_missing(path: str) -> str:
    return (
        f"[red]Error:[/] File not found: '{path}'\n"
        "  Pass the path of an existing .txt file."
    )


def err_file_not_found(file_id: str) -> str:
    return (
        f"[yellow]File not found:[/] '{file_id}' is not in the library.\n"
        "  Run:  marble status  to see all uploaded files."
    )


def err_folder(exc: MarbleError) -> str:
    return (
        f"[red]Error:[/] {exc}\n"
        "  Run:  marble folders list  to see folders you can upload into."
    )


def err_marble(exc: MarbleError) -> str:
    """Render a pipeline error with the action that usually fixes it."""
    if isinstance(exc, Forbidden):
        return (
            f"[red]Error:[/] {exc}\n"
            "  Only the uploader can ingest or remove a file. Pass the owner with --user."
        )
    if isinstance(exc, NotFound):
        return f"[red]Error:[/] {exc}\n  Run:  marble status  to see all uploaded files."
    if isinstance(exc, EmptyDocument):
        return f"[red]Error:[/] {exc}\n  The file has no text. Upload a non-empty .txt file."
    if isinstance(exc, InvalidInput):
        return f"[red]Error:[/] {exc}\n  Example:  marble chat \"/lookup refund policy\""
    if isinstance(exc, ProviderError):
        return (
            f"[red]Error:[/] {exc}\n"
            "  Check the provider API key and model names in marble.yaml, then retry."
        )
    if isinstance(exc, CountMismatch):
        return f"[red]Error:[/] {exc}\n  Nothing was replaced. Retry the ingest."
    if isinstance(exc, VectorIndexError):
        return (
            f"[red]Error:[/] Vector index failure: {exc}\n"
            "  Check embedding.dimensions matches the embedding model, then re-ingest."
        )
    return f"[red]Error:[/] {exc}"
