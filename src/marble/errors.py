"""Marble pipeline exceptions.

Every error carries an ``http_status`` so a transport layer can map it
without inspecting messages. The CLI renders them via marble.cli.errors.
"""

from __future__ import annotations


class MarbleError(Exception):
    """Base class for all pipeline errors."""

    http_status: int = 500


class NotFound(MarbleError):
    """A referenced file, chunk set, or blob does not exist."""

    http_status = 404


class Forbidden(MarbleError):
    """The acting user does not own the file being changed."""

    http_status = 403


class InvalidInput(MarbleError):
    """The request itself is unusable (empty question, empty lookup query)."""

    http_status = 400


class EmptyDocument(InvalidInput):
    """Chunking produced nothing to ingest."""


class ProviderError(MarbleError):
    """Embedding or language-model call failed or returned nothing usable."""

    http_status = 502


class CountMismatch(MarbleError):
    """Embedding count differs from chunk count (never truncated or padded)."""

    http_status = 500

    def __init__(self, expected: int, got: int) -> None:
        super().__init__(f"Embedding count mismatch: got {got}, expected {expected}")
        self.expected = expected
        self.got = got


class VectorIndexError(MarbleError):
    """Vector upsert, query, or delete failed inside the index."""

    http_status = 500
