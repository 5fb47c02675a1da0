"""Domain models for the Marble relational store."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Literal

Visibility = Literal["public", "private"]
FileStatus = Literal["uploading", "ready"]


@dataclass
class User:
    id: str
    email: str
    display_name: str | None = None
    created_at: str | None = None


@dataclass
class Folder:
    id: str
    name: str
    visibility: Visibility
    owner_id: str | None = None  # None for shared public folders
    created_at: str | None = None


@dataclass
class FileRecord:
    id: str
    folder_id: str
    owner_id: str
    visibility: Visibility
    file_name: str
    blob_key: str
    size: int
    status: FileStatus = "uploading"
    mime_type: str = "text/plain"
    created_at: str | None = None
    folder_name: str = ""  # joined from folders on read


@dataclass
class ChunkRecord:
    id: str
    file_id: str
    folder_id: str
    owner_id: str
    visibility: Visibility
    chunk_index: int
    start_line: int
    end_line: int
    content: str
    created_at: str | None = None


@dataclass
class ChunkWithContext(ChunkRecord):
    """A chunk joined with the names needed to render a citation."""

    file_name: str = ""
    folder_name: str = ""


@dataclass
class ChatMessage:
    id: str
    user_id: str
    question: str
    answer: str
    citations: str = "[]"  # JSON-encoded list of citation dicts
    created_at: str | None = None

    @property
    def citations_list(self) -> list[dict]:
        return json.loads(self.citations)
