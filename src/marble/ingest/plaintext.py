"""Plain text chunker: fixed character windows with overlap and line ranges.

Each chunk remembers the 1-based, inclusive range of source lines it spans so
answers can cite ``file: lines a-b`` exactly. A window whose last character
is a newline ends on that newline's line; the next line starts the next
window.
"""

from __future__ import annotations

from bisect import bisect_right
from dataclasses import dataclass


@dataclass(frozen=True)
class TextChunk:
    """One window of the source text.

    Attributes:
        content: The exact source slice (not stripped).
        start_line: 1-based line of the first character.
        end_line: 1-based line of the last character (inclusive).
        index: 0-based position in chunking order.
    """

    content: str
    start_line: int
    end_line: int
    index: int


def line_offsets(source: str) -> list[int]:
    """Return the sorted character offsets at which each line begins.

    Offset 0 always starts line 1; every ``\\n`` starts a new line at the
    following offset, so empty lines still count.
    """
    offsets = [0]
    pos = source.find("\n")
    while pos != -1:
        offsets.append(pos + 1)
        pos = source.find("\n", pos + 1)
    return offsets


def line_for_offset(offsets: list[int], char_index: int) -> int:
    """Map a character index to its 1-based line number via binary search."""
    return bisect_right(offsets, char_index)


def chunk_text(source: str, chunk_size: int, overlap: int) -> list[TextChunk]:
    """Split *source* into overlapping windows of *chunk_size* characters.

    The next window starts ``overlap`` characters before the previous end,
    but always at least one character after the previous start. The last
    chunk ends exactly at ``len(source)``.

    Args:
        source: Full decoded document text.
        chunk_size: Window size in characters (> 0).
        overlap: Characters shared between neighbouring windows (>= 0).

    Returns:
        Ordered chunks; empty for an empty source.

    Raises:
        ValueError: If chunk_size <= 0 or overlap < 0.
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be > 0")
    if overlap < 0:
        raise ValueError("overlap must be >= 0")

    offsets = line_offsets(source)
    length = len(source)
    chunks: list[TextChunk] = []
    start = 0

    while start < length:
        end = min(length, start + chunk_size)
        chunks.append(
            TextChunk(
                content=source[start:end],
                start_line=line_for_offset(offsets, start),
                end_line=line_for_offset(offsets, end - 1),
                index=len(chunks),
            )
        )
        if end == length:
            break
        start = max(end - overlap, start + 1)

    return chunks


class PlainTextChunker:
    """Split plain text into fixed-size character windows with overlap.

    Default: 1500 characters / 200 overlap.
    """

    def __init__(self, chunk_size: int = 1500, overlap: int = 200) -> None:
        if chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")
        if overlap < 0:
            raise ValueError("overlap must be >= 0")
        self.chunk_size = chunk_size
        self.overlap = overlap

    def chunk(self, content: str) -> list[TextChunk]:
        return chunk_text(content, self.chunk_size, self.overlap)
