"""CLI fixtures: an initialized library in tmp_path with 3-dim embeddings."""

from __future__ import annotations

import re
from pathlib import Path

import pytest
import yaml
from typer.testing import CliRunner

from marble.cli.main import app

_FILE_ID_RE = re.compile(r"File id:\s*([0-9a-f-]{36})")


def _fake_embedding(model, input, **kwargs):  # noqa: A002
    return {"data": [{"embedding": [1.0, float(i), 0.5]} for i in range(len(input))]}


@pytest.fixture
def cli():
    return CliRunner()


@pytest.fixture
def fake_embedding():
    """side_effect for litellm.embedding: one 3-dim vector per input."""
    return _fake_embedding


@pytest.fixture
def library(tmp_path: Path, monkeypatch, cli) -> Path:
    """Initialized .marble.db next to a marble.yaml; returns the db path."""
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.delenv("MARBLE_USER", raising=False)
    (tmp_path / "marble.yaml").write_text(
        yaml.dump({"embedding": {"dimensions": 3}}), encoding="utf-8"
    )
    db = tmp_path / ".marble.db"
    result = cli.invoke(app, ["init", "--db", str(db), "--no-global-config"])
    assert result.exit_code == 0, result.output
    return db


@pytest.fixture
def notes(tmp_path: Path) -> Path:
    path = tmp_path / "notes.txt"
    path.write_text("Line one\nLine two\nLine three", encoding="utf-8")
    return path


@pytest.fixture
def upload(cli, library):
    """Upload a file via the CLI and return its new file id."""

    def _upload(path: Path, *extra: str) -> str:
        result = cli.invoke(app, ["upload", str(path), "--db", str(library), *extra])
        assert result.exit_code == 0, result.output
        return _FILE_ID_RE.search(result.output).group(1)

    return _upload
