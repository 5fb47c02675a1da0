"""Tests for marble chat."""

from __future__ import annotations

import json
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import patch

import pytest

from marble.cli.main import app
from marble.db.connection import Database
from marble.db.repository import Repository
from marble.rag.answer import NOTHING_FOUND_ANSWER

EMBED = "marble.rag.llm_client.litellm.embedding"
COMPLETE = "marble.rag.llm_client.litellm.completion"


def _completion(payload) -> SimpleNamespace:
    content = payload if isinstance(payload, str) else json.dumps(payload)
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def _chat(cli, db: Path, question: str, *extra: str):
    return cli.invoke(app, ["chat", question, "--db", str(db), *extra])


@pytest.fixture
def ingested(library, notes, upload, cli, fake_embedding) -> str:
    file_id = upload(notes)
    with patch(EMBED, side_effect=fake_embedding):
        result = cli.invoke(app, ["ingest", file_id, "--db", str(library)])
    assert result.exit_code == 0, result.output
    return file_id


def test_chat_no_db_exits_1(tmp_path: Path, cli) -> None:
    result = _chat(cli, tmp_path / "missing.db", "hi")
    assert result.exit_code == 1


def test_freeform_chat(library, cli) -> None:
    with patch(COMPLETE, return_value=_completion({"answer": "Hello!", "citations": []})), \
            patch(EMBED) as mock_embed:
        result = _chat(cli, library, "hi there")

    assert result.exit_code == 0, result.output
    assert "Hello!" in result.output
    assert "Sources" not in result.output
    mock_embed.assert_not_called()


def test_lookup_chat_shows_citations_and_sources(ingested, library, cli) -> None:
    payload = {
        "answer": "Line two is the second line.",
        "citations": [{"folder": "My Space", "file": "notes.txt", "lines": [1, 3]}],
    }
    with patch(EMBED, return_value=[[1.0, 0.0, 0.5]]), \
            patch(COMPLETE, return_value=_completion(payload)):
        result = _chat(cli, library, "/lookup what is line two?")

    assert result.exit_code == 0, result.output
    assert "Line two is the second line." in result.output
    assert "My Space / notes.txt : lines 1-3" in result.output
    assert "Sources" in result.output

    with Database(library) as conn:
        [message] = Repository(conn).list_chats("local")
    assert message.question == "/lookup what is line two?"
    assert message.citations_list == payload["citations"]


def test_lookup_flag_without_prefix(ingested, library, cli) -> None:
    with patch(EMBED, return_value=[[1.0, 0.0, 0.5]]) as mock_embed, \
            patch(COMPLETE, return_value=_completion("Plain prose.")):
        result = _chat(cli, library, "line two", "--lookup", "--no-sources")

    assert result.exit_code == 0, result.output
    assert "Plain prose." in result.output
    assert "Sources" not in result.output
    assert mock_embed.call_args.kwargs["input"] == ["line two"]


def test_lookup_other_users_private_file_not_found(ingested, library, cli) -> None:
    with patch(EMBED, return_value=[[1.0, 0.0, 0.5]]), patch(COMPLETE) as mock_complete:
        result = _chat(cli, library, "/lookup line two", "--user", "mallory")

    assert result.exit_code == 0, result.output
    assert NOTHING_FOUND_ANSWER in result.output
    mock_complete.assert_not_called()


def test_empty_lookup_is_rejected(library, cli) -> None:
    result = _chat(cli, library, "/lookup")
    assert result.exit_code == 1
    assert "Lookup query cannot be empty" in result.output


def test_chat_requires_api_key(library, cli, monkeypatch) -> None:
    monkeypatch.delenv("OPENAI_API_KEY")
    result = _chat(cli, library, "hi")
    assert result.exit_code == 1
    assert "OPENAI_API_KEY" in result.output
