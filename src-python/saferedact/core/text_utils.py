"""Shared text helpers.

Context snippets, overlapping chunk windows, and occurrence counting
used by detection and span location.
"""

from __future__ import annotations

from typing import NamedTuple


# ---------------------------------------------------------------------------
# Context snippets
# ---------------------------------------------------------------------------

def get_context_snippet(text: str, start: int, end: int, context_chars: int = 50) -> str:
    """Extract a snippet of text around a span for review display.

    Args:
        text: The full text
        start: Start offset of the span
        end: End offset of the span
        context_chars: Number of characters of context on each side

    Returns:
        Snippet with "..." markers where truncated
    """
    snippet_start = max(0, start - context_chars)
    snippet_end = min(len(text), end + context_chars)

    prefix = "..." if snippet_start > 0 else ""
    suffix = "..." if snippet_end < len(text) else ""

    return f"{prefix}{text[snippet_start:snippet_end]}{suffix}"


# ---------------------------------------------------------------------------
# Chunking
# ---------------------------------------------------------------------------

class TextChunk(NamedTuple):
    """A window of a longer text; ``offset`` is its start in the original."""
    text: str
    offset: int


def split_text_with_overlap(text: str, chunk_size: int, overlap: int) -> list[TextChunk]:
    """Split *text* into fixed-size windows that overlap by *overlap* chars.

    The last window ends at the end of the text. Text no longer than
    *chunk_size* is returned as a single chunk.
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    if overlap < 0 or overlap >= chunk_size:
        raise ValueError("overlap must be in [0, chunk_size)")

    if len(text) <= chunk_size:
        return [TextChunk(text, 0)]

    chunks: list[TextChunk] = []
    step = chunk_size - overlap
    start = 0
    while start < len(text):
        end = min(start + chunk_size, len(text))
        chunks.append(TextChunk(text[start:end], start))
        if end >= len(text):
            break
        start += step
    return chunks


# ---------------------------------------------------------------------------
# Occurrence counting
# ---------------------------------------------------------------------------

def count_prior_occurrences(text: str, needle: str, offset: int) -> int:
    """Count case-exact, non-overlapping occurrences of *needle* starting before *offset*."""
    if not needle:
        return 0
    count = 0
    pos = text.find(needle)
    while pos != -1 and pos < offset:
        count += 1
        pos = text.find(needle, pos + len(needle))
    return count
