# chunk_text() with a lazy, restartable sequence wrapper

from __future__ import annotations

"""Boundary-aware text chunking for ingestion.

Core responsibilities:
- Normalise extracted text (line endings, runs of blank lines, outer whitespace).
- Cut the text into overlapping windows of roughly ``target_size`` characters.
- Prefer to cut just after a paragraph break, then after a sentence end,
  searching +-100 characters around the raw cut point.
- Drop fragments whose trimmed length is 50 characters or fewer.

The result is a ``ChunkSequence``: iterating it re-runs the split from the
cleaned text, so it can be consumed any number of times and always yields
the same boundaries for the same input and parameters.
"""

import re
from collections.abc import Iterator
from dataclasses import dataclass

DEFAULT_TARGET_SIZE = 1000
DEFAULT_OVERLAP = 200
MIN_CHUNK_LENGTH = 50
BOUNDARY_WINDOW = 100

_EXCESS_NEWLINES = re.compile(r"\n{3,}")


@dataclass(frozen=True)
class ChunkSpan:
    start: int
    end: int
    text: str


def clean_text(text: str) -> str:
    normalized = text.replace("\r\n", "\n")
    normalized = _EXCESS_NEWLINES.sub("\n\n", normalized)
    return normalized.strip()

# searches [max(end - 100, start), end + 100) for the last paragraph break,
# then the last sentence terminator; index 0 of the window never counts

def _snap_end(text: str, start: int, end: int) -> int:
    search_start = max(end - BOUNDARY_WINDOW, start)
    window = text[search_start : end + BOUNDARY_WINDOW]

    paragraph_break = window.rfind("\n\n")
    if paragraph_break > 0:
        return search_start + paragraph_break + 2

    sentence_end = window.rfind(". ")
    if sentence_end > 0:
        return search_start + sentence_end + 2

    return end


class ChunkSequence:
    """Finite, deterministic sequence of chunk strings over one text."""

    def __init__(self, text: str, target_size: int, overlap: int) -> None:
        self._text = clean_text(text)
        self._target_size = target_size
        self._overlap = overlap

    @property
    def cleaned_text(self) -> str:
        return self._text

    def spans(self) -> Iterator[ChunkSpan]:
        text = self._text
        length = len(text)
        start = 0
        while start < length:
            end = start + self._target_size
            if end < length:
                end = _snap_end(text, start, end)

            piece = text[start:end].strip()
            if len(piece) > MIN_CHUNK_LENGTH:
                yield ChunkSpan(start=start, end=min(end, length), text=piece)

            next_start = end - self._overlap
            # Snapping can pull `end` close to `start`; never step backwards.
            if next_start <= start:
                next_start = end
            start = next_start

    def __iter__(self) -> Iterator[str]:
        for span in self.spans():
            yield span.text

    def __repr__(self) -> str:
        return (
            f"ChunkSequence(chars={len(self._text)}, "
            f"target_size={self._target_size}, overlap={self._overlap})"
        )


def chunk_text(
    text: str,
    target_size: int = DEFAULT_TARGET_SIZE,
    overlap: int = DEFAULT_OVERLAP,
) -> ChunkSequence:
    if target_size <= 0:
        raise ValueError(f"target_size must be positive, got {target_size}")
    if overlap < 0 or overlap >= target_size:
        raise ValueError(
            f"overlap must satisfy 0 <= overlap < target_size, got {overlap} "
            f"(target_size={target_size})"
        )
    return ChunkSequence(text, target_size=target_size, overlap=overlap)
