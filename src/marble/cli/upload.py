"""marble upload: store a .txt file in the library.

Public files go to the shared 'Org Shared' folder; private files to the
user's 'My Space' folder. Pass --folder to upload into a folder made with
``marble folders create``; the file then takes that folder's visibility.
The file is recorded with status 'uploading' until ``marble ingest``
indexes it (or pass --ingest to do both).
"""

from __future__ import annotations

import uuid
from pathlib import Path
from typing import Annotated

import typer

from marble.cli.common import (
    DEFAULT_DB,
    DEFAULT_USER,
    PUBLIC_ROOT_FOLDER,
    build_blob_store,
    build_vector_store,
    console,
    ensure_local_user,
    load_cfg,
    open_db,
    pipeline_errors,
    private_root_folder,
    require_api_key,
    require_db,
)
from marble.cli.errors import err_folder, err_upload_missing
from marble.db.models import FileRecord
from marble.db.repository import Repository
from marble.errors import MarbleError
from marble.ingest.pipeline import IngestionPipeline, resolve_folder
from marble.storage import build_object_key


def upload_cmd(
    path: Annotated[Path, typer.Argument(help="Plain text file to upload.")],
    db: Annotated[Path, typer.Option("--db", help="Path to .marble.db.")] = DEFAULT_DB,
    user: Annotated[
        str,
        typer.Option("--user", "-u", envvar="MARBLE_USER", help="Acting user id."),
    ] = DEFAULT_USER,
    public: Annotated[
        bool,
        typer.Option("--public/--private", help="Share with everyone, or keep private."),
    ] = False,
    folder_id: Annotated[
        str | None,
        typer.Option("--folder", "-f", help="Target folder id (see: marble folders list)."),
    ] = None,
    ingest: Annotated[
        bool,
        typer.Option("--ingest", help="Index the file right after uploading."),
    ] = False,
) -> None:
    """Upload a text file to the library."""
    require_db(db)
    if not path.is_file():
        console.print(err_upload_missing(str(path)))
        raise typer.Exit(1)

    cfg = load_cfg(db)
    if ingest:
        require_api_key(cfg.embedding.model)

    data = path.read_bytes()
    file_id = str(uuid.uuid4())

    conn = open_db(db)
    try:
        repo = Repository(conn)
        ensure_local_user(repo, user)
        if folder_id:
            try:
                folder = resolve_folder(repo, folder_id, user)
            except MarbleError as exc:
                console.print(err_folder(exc))
                raise typer.Exit(1) from exc
        else:
            folder = PUBLIC_ROOT_FOLDER if public else private_root_folder(user)
            repo.ensure_folder(folder)
        visibility = folder.visibility
        key = build_object_key(visibility, user, folder.id, file_id, path.name)

        blobs = build_blob_store(db, cfg)
        blobs.put(key, data, content_type="text/plain")
        repo.add_file(
            FileRecord(
                id=file_id,
                folder_id=folder.id,
                owner_id=user,
                visibility=visibility,
                file_name=path.name,
                blob_key=key,
                size=len(data),
            )
        )
        console.print(f"[green]✓[/] Uploaded {path.name} → {folder.name}")
        console.print(f"  File id: [bold]{file_id}[/]")

        if ingest:
            pipeline = IngestionPipeline(
                repo, blobs, build_vector_store(conn, cfg), cfg
            )
            with pipeline_errors():
                result = pipeline.ingest(file_id, user)
            console.print(f"[green]✓[/] Indexed {result.chunks} chunks")
    finally:
        conn.close()
