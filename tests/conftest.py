"""Lightweight collaborators standing in for the renderer, OCR engine and models."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import pytest

from docground.config import Settings
from docground.errors import EmbeddingUnavailable, OcrUnavailable
from docground.ingest.ocr import OcrResult
from docground.ingest.rendering import EmbeddedImage
from docground.llm import MockLLMAdapter
from docground.services import RetrievalService


@dataclass
class FakePage:
    text: str
    bitmap: Any = "bitmap"
    width: float = 612.0
    height: float = 792.0
    images: List[EmbeddedImage] = field(default_factory=list)
    fail: bool = False
    render_calls: int = 0

    def render_to_bitmap(self) -> Any:
        self.render_calls += 1
        return self.bitmap

    def embedded_images(self) -> List[EmbeddedImage]:
        return list(self.images)


class FakeDocument:
    def __init__(self, pages: Sequence[FakePage], info: Optional[Dict[str, Any]] = None) -> None:
        self.pages = list(pages)
        self.page_count = len(self.pages)
        self.info = dict(info or {})
        self.closed = False
        self.requested: List[int] = []

    def get_page(self, page_number: int) -> FakePage:
        self.requested.append(page_number)
        page = self.pages[page_number - 1]
        if page.fail:
            raise RuntimeError(f"cannot render page {page_number}")
        return page

    def close(self) -> None:
        self.closed = True


class FakeRenderer:
    """Serves documents registered under a locator."""

    def __init__(self, documents: Optional[Dict[str, FakeDocument]] = None) -> None:
        self.documents = dict(documents or {})

    def add(self, locator: str, texts: Sequence[str], info: Optional[Dict[str, Any]] = None) -> FakeDocument:
        document = FakeDocument([FakePage(text) for text in texts], info)
        self.documents[locator] = document
        return document

    def open(self, locator: str) -> FakeDocument:
        if locator not in self.documents:
            raise FileNotFoundError(locator)
        return self.documents[locator]


class GatedPage(FakePage):
    """Page whose embedded image lookup waits on an event, to interleave runs."""

    def __init__(self, text: str, gate: asyncio.Event) -> None:
        super().__init__(text)
        self.gate = gate

    async def embedded_images(self) -> List[EmbeddedImage]:  # type: ignore[override]
        await self.gate.wait()
        return []


class FakeOcrEngine:
    def __init__(self, text: str = "Recognised scanned text", *, unavailable: bool = False) -> None:
        self.text = text
        self.unavailable = unavailable
        self.calls: List[Any] = []

    def recognize(self, bitmap: Any) -> OcrResult:
        self.calls.append(bitmap)
        if self.unavailable:
            raise OcrUnavailable("tesseract missing")
        return OcrResult(text=self.text, confidence=0.9)


class KeywordEmbedder:
    """Bag-of-words embedder over a fixed vocabulary, so similarity is meaningful."""

    model_name = "keyword-test"

    def __init__(self, vocabulary: Sequence[str], fail_on: Sequence[str] = ()) -> None:
        self.vocabulary = [word.lower() for word in vocabulary]
        self.fail_on = [word.lower() for word in fail_on]

    @property
    def dimension(self) -> int:
        return len(self.vocabulary)

    def embed(self, text: str) -> List[float]:
        words = text.lower().split()
        if any(marker in words for marker in self.fail_on):
            raise EmbeddingUnavailable("embedding backend offline")
        return [float(words.count(word)) for word in self.vocabulary]


VOCABULARY = ["photosynthesis", "light", "cell", "energy", "water", "mitochondria", "plant"]


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(data_dir=tmp_path / "data", log_dir=tmp_path / "logs")


@pytest.fixture
def renderer() -> FakeRenderer:
    return FakeRenderer()


@pytest.fixture
def ocr_engine() -> FakeOcrEngine:
    return FakeOcrEngine()


@pytest.fixture
def embedder() -> KeywordEmbedder:
    return KeywordEmbedder(VOCABULARY)


@pytest.fixture
def service(settings, renderer, ocr_engine, embedder) -> RetrievalService:
    return RetrievalService(
        settings=settings,
        renderer=renderer,
        embedder=embedder,
        ocr_engine=ocr_engine,
        llm=MockLLMAdapter(),
    )
