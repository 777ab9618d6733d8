"""Chunking utilities for breaking page text into embedding-friendly units."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple

from docground.models import Chunk, Coordinates

_WORD_RE = re.compile(r"\S+")
LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_CHARS = 512


@dataclass(slots=True)
class ChunkingConfig:
    max_chars: int = DEFAULT_MAX_CHARS


def iter_word_spans(text: str, max_chars: int = DEFAULT_MAX_CHARS) -> Iterator[Tuple[int, int]]:
    """Yield ``(start, end)`` offsets of greedy word-bounded spans of *text*.

    A span's budgeted length is its words joined by single spaces. Words are
    never split, so a word longer than ``max_chars`` forms its own span.
    """

    if max_chars <= 0:
        raise ValueError("max_chars must be a positive integer")

    span_start: Optional[int] = None
    span_end = 0
    span_length = 0
    for match in _WORD_RE.finditer(text):
        word_length = match.end() - match.start()
        if span_start is not None and span_length + 1 + word_length > max_chars:
            yield span_start, span_end
            span_start = None
        if span_start is None:
            span_start = match.start()
            span_length = word_length
        else:
            span_length += 1 + word_length
        span_end = match.end()

    if span_start is not None:
        yield span_start, span_end


class WordChunker:
    """Split page text into bounded, word-safe chunks."""

    def __init__(self, config: Optional[ChunkingConfig] = None) -> None:
        self.config = config or ChunkingConfig()
        if self.config.max_chars <= 0:
            raise ValueError("max_chars must be a positive integer")

    def chunk(
        self,
        text: str,
        *,
        document_id: str,
        page_number: int,
        coordinates: Optional[Coordinates] = None,
    ) -> List[Chunk]:
        chunks: List[Chunk] = []
        for index, (start, end) in enumerate(iter_word_spans(text, self.config.max_chars)):
            chunks.append(
                Chunk(
                    document_id=document_id,
                    page_number=page_number,
                    chunk_index=index,
                    char_start=start,
                    char_end=end,
                    text=text[start:end],
                    coordinates=coordinates,
                )
            )
        LOGGER.debug("Page %s of %s split into %s chunks", page_number, document_id, len(chunks))
        return chunks


def chunk_page_text(text: str, max_chars: int = DEFAULT_MAX_CHARS) -> List[str]:
    """Return the chunk texts of *text* without metadata."""

    return [text[start:end] for start, end in iter_word_spans(text, max_chars)]


__all__ = ["ChunkingConfig", "WordChunker", "chunk_page_text", "iter_word_spans"]
