"""Assemble the grounding text handed to the generative model."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence

from docground.models import (
    AreaSelection,
    ConversationTurn,
    Page,
    ScoredRecord,
    Selection,
    TextSelection,
)

LOGGER = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"\w+", re.UNICODE)
_SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")

CONTEXT_HEADER = "Relevant document context:"
HISTORY_HEADER = "Recent conversation:"

# Area selections map the x coordinate onto a word window of the page text.
AREA_WORDS_PER_100PX = 10
AREA_EXCERPT_WORDS = 50


def tokenize(text: str) -> set[str]:
    return {token.lower() for token in _TOKEN_RE.findall(text)}


def _relevant_sentences(text: str, tokens: set[str], limit: int) -> List[str]:
    sentences: List[str] = []
    for raw in _SENTENCE_SPLIT_RE.split(text):
        sentence = " ".join(raw.split())
        if sentence and tokenize(sentence) & tokens:
            sentences.append(sentence)
            if len(sentences) >= limit:
                break
    return sentences


def keyword_fallback(
    query: str,
    pages: Iterable[Page],
    *,
    max_pages: int = 5,
    max_sentences: int = 3,
) -> List[str]:
    """Return ``Page n: ...`` snippets for pages sharing a token with *query*.

    Used when a document has no embedding records. Pages are visited in
    document order and at most ``max_pages`` snippets are returned.
    """

    query_tokens = tokenize(query)
    if not query_tokens or max_pages <= 0:
        return []

    snippets: List[str] = []
    for page in pages:
        shared = tokenize(page.text) & query_tokens
        if not shared:
            continue
        sentences = _relevant_sentences(page.text, shared, max_sentences)
        if not sentences:
            continue
        snippets.append(f"Page {page.page_number}: {'. '.join(sentences)}")
        if len(snippets) >= max_pages:
            break
    return snippets


def area_excerpt(selection: AreaSelection, pages: Sequence[Page]) -> str:
    """Approximate the text under an area selection from the page's words."""

    page = next((item for item in pages if item.page_number == selection.page_number), None)
    if page is None or not page.text:
        return ""
    words = page.text.split()
    start = int(selection.coordinates.x // 100) * AREA_WORDS_PER_100PX
    return " ".join(words[start : start + AREA_EXCERPT_WORDS])


def describe_selection(selection: Selection, pages: Sequence[Page] = ()) -> str:
    if isinstance(selection, TextSelection):
        return selection.text
    description = f"Selected {selection.type.value} area on page {selection.page_number}"
    excerpt = area_excerpt(selection, pages)
    if excerpt:
        return f"{description}\n{excerpt}"
    return description


@dataclass(slots=True)
class GroundingContext:
    """Assembled grounding text plus what went into it."""

    text: str
    sources: List[ScoredRecord] = field(default_factory=list)
    fallback_used: bool = False
    truncated: bool = False
    sections: List[str] = field(default_factory=list)

    def __str__(self) -> str:
        return self.text


class ContextAssembler:
    """Merge selection, document context and recent turns into one text block.

    Sections appear in priority order: the selection (verbatim, always first),
    then ranked chunks or the keyword fallback, then the recent conversation
    oldest first. With ``max_chars`` set, the lowest ranked chunks are dropped
    first, then the oldest turns; the selection is never trimmed.
    """

    def __init__(
        self,
        *,
        history_turns: int = 6,
        fallback_pages: int = 5,
        max_chars: Optional[int] = None,
    ) -> None:
        self.history_turns = history_turns
        self.fallback_pages = fallback_pages
        self.max_chars = max_chars

    def assemble(
        self,
        query: str,
        *,
        ranked: Optional[Sequence[ScoredRecord]] = None,
        pages: Sequence[Page] = (),
        selection: Optional[Selection] = None,
        history: Optional[Iterable[ConversationTurn]] = None,
    ) -> GroundingContext:
        selection_text = describe_selection(selection, pages) if selection is not None else ""

        fallback_used = False
        sources = list(ranked or [])
        if sources:
            entries = [self._format_record(item) for item in sources]
        elif ranked is None:
            entries = keyword_fallback(query, pages, max_pages=self.fallback_pages)
            fallback_used = True
        else:
            entries = []

        turns = list(history or [])
        turns = turns[-self.history_turns :] if self.history_turns > 0 else []
        lines = [f"{turn.role.value}: {turn.content}" for turn in turns]

        truncated = False
        if self.max_chars is not None:
            while (entries or lines) and (
                len(self._render(selection_text, entries, lines)[0]) > self.max_chars
            ):
                if entries:
                    entries.pop()
                    if not fallback_used:
                        sources.pop()
                else:
                    lines.pop(0)
                truncated = True

        text, sections = self._render(selection_text, entries, lines)
        if truncated:
            LOGGER.info("Grounding context trimmed to %s characters", len(text))
        return GroundingContext(
            text=text,
            sources=sources,
            fallback_used=fallback_used,
            truncated=truncated,
            sections=sections,
        )

    @staticmethod
    def _format_record(item: ScoredRecord) -> str:
        chunk = item.record.chunk
        return f"Page {chunk.page_number}: {chunk.text}"

    @staticmethod
    def _render(selection_text: str, entries: List[str], lines: List[str]) -> tuple[str, List[str]]:
        blocks: List[str] = []
        sections: List[str] = []
        if selection_text:
            blocks.append(selection_text)
            sections.append("selection")
        if entries:
            blocks.append(CONTEXT_HEADER + "\n" + "\n\n".join(entries))
            sections.append("document")
        if lines:
            blocks.append(HISTORY_HEADER + "\n" + "\n".join(lines))
            sections.append("history")
        return "\n\n".join(blocks), sections


__all__ = [
    "ContextAssembler",
    "GroundingContext",
    "area_excerpt",
    "describe_selection",
    "keyword_fallback",
    "tokenize",
]
