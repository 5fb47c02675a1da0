"""Blob storage for raw uploaded file bytes.

The ingestion pipeline only ever reads by a key the caller recorded on the
file row; keys are built once, at upload time, by ``build_object_key``.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Protocol

from marble.db.models import Visibility


class BlobStore(Protocol):
    """Minimal key/value byte store consumed by the pipeline."""

    def get(self, key: str) -> bytes | None: ...

    def put(self, key: str, data: bytes, content_type: str = "text/plain") -> None: ...

    def delete(self, key: str) -> None: ...


class LocalBlobStore:
    """Filesystem-backed BlobStore rooted at a single directory.

    Keys map to relative paths under *root*; keys that would resolve outside
    it are rejected. Content type is accepted for interface parity and not
    persisted (plain text only).
    """

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root)

    def _path_for(self, key: str) -> Path:
        if not key or key.startswith(("/", "\\")):
            raise ValueError(f"Invalid blob key: {key!r}")
        root = self.root.resolve()
        path = (root / key).resolve()
        if not path.is_relative_to(root):
            raise ValueError(f"Blob key escapes storage root: {key!r}")
        return path

    def get(self, key: str) -> bytes | None:
        path = self._path_for(key)
        if not path.is_file():
            return None
        return path.read_bytes()

    def put(self, key: str, data: bytes, content_type: str = "text/plain") -> None:
        path = self._path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

    def delete(self, key: str) -> None:
        self._path_for(key).unlink(missing_ok=True)


def sanitize_file_name(file_name: str) -> str:
    """Lower-case, dash-separated, ``[a-z0-9_.-]`` only; never empty.

    Examples:
        "My Notes (v2).txt" -> "my-notes-v2.txt"
        "   "               -> "untitled.txt"
    """
    trimmed = file_name.strip()
    if not trimmed:
        return "untitled.txt"
    normalized = re.sub(r"\s+", "-", trimmed)
    normalized = re.sub(r"[^a-zA-Z0-9_.-]", "", normalized)
    normalized = re.sub(r"-+", "-", normalized)
    return normalized.lower() or "untitled.txt"


def build_object_key(
    visibility: Visibility,
    owner_id: str,
    folder_id: str,
    file_id: str,
    file_name: str,
) -> str:
    """Return the blob key for a new upload.

    Public files live under ``public-root/``; private ones under
    ``users/{owner_id}/``.
    """
    prefix = "public-root" if visibility == "public" else f"users/{owner_id}"
    return f"{prefix}/{folder_id}/{file_id}-{sanitize_file_name(file_name)}"
