"""Upload → ingest → grounded chat, on both index generations."""

from __future__ import annotations

import json
from types import SimpleNamespace
from unittest.mock import patch

import pytest

from marble.config import MarbleConfig
from marble.db.models import FileRecord, Folder, User
from marble.db.vectors import SqliteFilteredIndex, SqliteNamespacedIndex
from marble.ingest.pipeline import IngestionPipeline
from marble.rag.answer import NOTHING_FOUND_ANSWER, ChatService
from marble.rag.vector_store import VectorStore
from marble.storage import LocalBlobStore, build_object_key

EMBED = "marble.rag.llm_client.litellm.embedding"
COMPLETE = "marble.rag.llm_client.litellm.completion"


def _embedding(model, input, **kwargs):  # noqa: A002
    return {"data": [{"embedding": [1.0, 0.2, 0.1]} for _ in input]}


def _answer(folder, file, lines):
    content = json.dumps(
        {"answer": "The second line says 'Line two'.",
         "citations": [{"folder": folder, "file": file, "lines": lines}]}
    )
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


@pytest.fixture(params=[SqliteNamespacedIndex, SqliteFilteredIndex], ids=["namespaced", "filtered"])
def world(request, repo, tmp_db, tmp_path):
    cfg = MarbleConfig()
    cfg.embedding.dimensions = 3
    store = VectorStore(request.param(tmp_db, 3))
    blobs = LocalBlobStore(tmp_path / "blobs")

    for user in ("alice", "bob"):
        repo.ensure_user(User(id=user, email=f"{user}@example.com"))
    folder = Folder(id="private-alice", name="My Space", visibility="private", owner_id="alice")
    repo.ensure_folder(folder)

    text = b"Line one\nLine two\nLine three"
    key = build_object_key("private", "alice", folder.id, "f1", "lines.txt")
    blobs.put(key, text)
    repo.add_file(
        FileRecord(
            id="f1", folder_id=folder.id, owner_id="alice", visibility="private",
            file_name="lines.txt", blob_key=key, size=len(text),
        )
    )
    return SimpleNamespace(
        repo=repo,
        pipeline=IngestionPipeline(repo, blobs, store, cfg),
        chat=ChatService(repo, store, cfg),
    )


def test_ingest_then_grounded_chat(world):
    with patch(EMBED, side_effect=_embedding):
        assert world.pipeline.ingest("f1", "alice").chunks == 1

    with patch(EMBED, side_effect=_embedding), \
            patch(COMPLETE, return_value=_answer("My Space", "lines.txt", [1, 3])):
        response = world.chat.ask("/lookup What does the second line say?", "alice")

    assert response.answer == "The second line says 'Line two'."
    [citation] = response.citations
    assert (citation.folder, citation.file) == ("My Space", "lines.txt")
    assert 1 <= citation.lines[0] <= citation.lines[1] <= 3
    [source] = response.sources
    assert "Line two" in source.content


def test_private_file_invisible_to_other_user(world):
    with patch(EMBED, side_effect=_embedding):
        world.pipeline.ingest("f1", "alice")

    with patch(EMBED, side_effect=_embedding), patch(COMPLETE) as mock_complete:
        response = world.chat.ask("/lookup What does the second line say?", "bob")

    assert response.answer == NOTHING_FOUND_ANSWER
    mock_complete.assert_not_called()


def test_deleted_file_no_longer_answers(world):
    with patch(EMBED, side_effect=_embedding):
        world.pipeline.ingest("f1", "alice")
    world.pipeline.delete_file("f1", "alice")

    with patch(EMBED, side_effect=_embedding), patch(COMPLETE) as mock_complete:
        response = world.chat.ask("/lookup line two", "alice")

    assert response.answer == NOTHING_FOUND_ANSWER
    mock_complete.assert_not_called()
