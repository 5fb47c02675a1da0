"""Marble ingest pipeline: plain text chunking and indexing."""

from marble.ingest.pipeline import IngestionPipeline, IngestResult, IngestState, resolve_folder
from marble.ingest.plaintext import PlainTextChunker, TextChunk, chunk_text

__all__ = [
    "IngestionPipeline",
    "IngestResult",
    "IngestState",
    "PlainTextChunker",
    "TextChunk",
    "chunk_text",
    "resolve_folder",
]
