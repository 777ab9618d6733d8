"""Data models shared by ingestion, indexing and context assembly."""
from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Deque, Dict, Iterator, List, Optional, Tuple, Union


class ImageType(str, Enum):
    """Visual element categories detected on a page."""

    IMAGE = "image"
    DIAGRAM = "diagram"
    CHART = "chart"
    EQUATION = "equation"


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True, slots=True)
class Coordinates:
    """Rectangle in page space."""

    x: float
    y: float
    width: float
    height: float


@dataclass(slots=True)
class Image:
    """Visual element extracted from a page."""

    page_number: int
    coordinates: Coordinates
    type: ImageType
    confidence: float
    bitmap: Any = field(default=None, repr=False)


@dataclass(slots=True)
class Page:
    """Represents the processed content of a page in the source document."""

    page_number: int
    text: str
    coordinates: Coordinates
    images: List[Image] = field(default_factory=list)
    confidence: float = 0.5
    ocr_applied: bool = False


@dataclass(slots=True)
class DocumentMetadata:
    author: Optional[str] = None
    subject: Optional[str] = None
    keywords: List[str] = field(default_factory=list)
    creation_date: Optional[str] = None
    modification_date: Optional[str] = None
    language: Optional[str] = None
    page_count: int = 0


@dataclass(slots=True)
class Document:
    """An ingested document together with the gaps left by failed pages."""

    id: str
    title: str
    locator: str
    pages: List[Page] = field(default_factory=list)
    metadata: DocumentMetadata = field(default_factory=DocumentMetadata)
    gaps: List[int] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def page(self, page_number: int) -> Optional[Page]:
        for page in self.pages:
            if page.page_number == page_number:
                return page
        return None


@dataclass(frozen=True, slots=True)
class Chunk:
    """Contiguous span of a page's text; the unit of embedding."""

    document_id: str
    page_number: int
    chunk_index: int
    char_start: int
    char_end: int
    text: str
    coordinates: Optional[Coordinates] = None


@dataclass(frozen=True, slots=True)
class EmbeddingRecord:
    """Pairs a chunk with its embedding vector."""

    chunk: Chunk
    vector: Tuple[float, ...]
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def dimension(self) -> int:
        return len(self.vector)


@dataclass(frozen=True, slots=True)
class ScoredRecord:
    record: EmbeddingRecord
    score: float


@dataclass(frozen=True, slots=True)
class TextSelection:
    text: str
    page_number: int
    coordinates: Coordinates


@dataclass(frozen=True, slots=True)
class AreaSelection:
    page_number: int
    coordinates: Coordinates
    type: ImageType = ImageType.IMAGE


Selection = Union[TextSelection, AreaSelection]


@dataclass(frozen=True, slots=True)
class ConversationTurn:
    role: Role
    content: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class ConversationHistory:
    """Bounded conversation buffer that keeps only the most recent turns."""

    def __init__(self, max_turns: int = 20, turns: Optional[List[ConversationTurn]] = None) -> None:
        if max_turns <= 0:
            raise ValueError("max_turns must be a positive integer")
        self.max_turns = max_turns
        self._turns: Deque[ConversationTurn] = deque(turns or [], maxlen=max_turns)

    def add(self, turn: ConversationTurn) -> None:
        self._turns.append(turn)

    def add_message(self, role: Role | str, content: str) -> ConversationTurn:
        turn = ConversationTurn(role=Role(role), content=content)
        self.add(turn)
        return turn

    def recent(self, count: int) -> List[ConversationTurn]:
        """Return up to *count* most recent turns, oldest first."""

        if count <= 0:
            return []
        return list(self._turns)[-count:]

    def clear(self) -> None:
        self._turns.clear()

    def __iter__(self) -> Iterator[ConversationTurn]:
        return iter(list(self._turns))

    def __len__(self) -> int:
        return len(self._turns)


@dataclass(frozen=True, slots=True)
class IndexStats:
    entry_count: int
    document_ids: Tuple[str, ...]


__all__ = [
    "AreaSelection",
    "Chunk",
    "ConversationHistory",
    "ConversationTurn",
    "Coordinates",
    "Document",
    "DocumentMetadata",
    "EmbeddingRecord",
    "Image",
    "ImageType",
    "IndexStats",
    "Page",
    "Role",
    "ScoredRecord",
    "Selection",
    "TextSelection",
]
