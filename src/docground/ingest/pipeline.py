"""Page-by-page ingestion pipeline populating document embedding records."""
from __future__ import annotations

import hashlib
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from docground.concurrency import CancellationToken, run_blocking
from docground.config import ClassifierConfig
from docground.embeddings import Embedder
from docground.errors import DocumentLoadError, EmbeddingUnavailable, OcrUnavailable, RenderFailure
from docground.logging_config import AUDIT_LOGGER_NAME
from docground.models import (
    Coordinates,
    Document,
    DocumentMetadata,
    EmbeddingRecord,
    Image,
    Page,
)
from docground.telemetry import emit_embeddings_event, emit_ingest_event

from .chunking import ChunkingConfig, WordChunker
from .classification import (
    DEFAULT_IMAGE_CONFIDENCE,
    classify_image,
    merge_ocr_text,
    needs_ocr,
    page_confidence,
)
from .language import LanguageDetector
from .ocr import OcrEngine
from .rendering import DocumentRenderer, RenderedDocument, RenderedPage

LOGGER = logging.getLogger(__name__)
AUDIT_LOGGER = logging.getLogger(AUDIT_LOGGER_NAME)

UNTITLED_DOCUMENT = "Untitled Document"


def document_id_for(locator: str) -> str:
    """Stable id so that re-ingesting a locator replaces its index entry."""

    return f"doc_{hashlib.sha256(locator.encode('utf-8')).hexdigest()[:16]}"


def _split_keywords(raw: Any) -> List[str]:
    if not raw:
        return []
    return [keyword.strip() for keyword in str(raw).split(",") if keyword.strip()]


@dataclass(slots=True)
class IngestionConfig:
    chunk_max_chars: int = 512
    classifier: ClassifierConfig = field(default_factory=ClassifierConfig)
    detect_language: bool = True


@dataclass(slots=True)
class IngestionResult:
    """Document plus the records to be committed to the index."""

    document: Document
    records: List[EmbeddingRecord]
    ocr_pages: List[int]
    duration_seconds: float


@dataclass(slots=True)
class _EmbeddingState:
    dimension: Optional[int] = None
    errors: List[str] = field(default_factory=list)


class IngestionPipeline:
    """Render, extract, OCR, chunk and embed pages strictly in order.

    Only one page is in flight at a time, so at most one rasterised bitmap is
    alive. Per-page and per-chunk failures are recorded on the document and the
    run continues; only failing to open the document is fatal.

    Synchronous renderer, OCR and embedder calls run on a single worker
    thread, so the event loop stays responsive and the native libraries are
    never entered from two threads at once.
    """

    def __init__(
        self,
        renderer: DocumentRenderer,
        embedder: Embedder,
        ocr_engine: Optional[OcrEngine] = None,
        config: Optional[IngestionConfig] = None,
        language_detector: Optional[LanguageDetector] = None,
    ) -> None:
        self.renderer = renderer
        self.embedder = embedder
        self.ocr_engine = ocr_engine
        self.config = config or IngestionConfig()
        self.chunker = WordChunker(ChunkingConfig(max_chars=self.config.chunk_max_chars))
        self.language_detector = language_detector or LanguageDetector()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="docground-ingest")

    async def _call(self, func: Any, *args: Any) -> Any:
        return await run_blocking(func, *args, executor=self._executor)

    async def run(
        self,
        locator: str,
        *,
        document_id: Optional[str] = None,
        token: Optional[CancellationToken] = None,
    ) -> IngestionResult:
        token = token or CancellationToken()
        document_id = document_id or document_id_for(locator)
        started = time.perf_counter()

        try:
            rendered = await self._call(self.renderer.open, locator)
            page_count = int(rendered.page_count)
        except Exception as error:
            raise DocumentLoadError(f"Failed to open document {locator}: {error}", cause=error) from error

        emit_ingest_event(
            "ingest.document.start", document_id=document_id, locator=locator, pages=page_count
        )
        document = self._new_document(document_id, locator, rendered, page_count)
        records: List[EmbeddingRecord] = []
        ocr_pages: List[int] = []
        state = _EmbeddingState()

        try:
            for page_number in range(1, page_count + 1):
                token.raise_if_cancelled()
                try:
                    page = await self._process_page(rendered, page_number, document)
                except RenderFailure as failure:
                    LOGGER.warning("Skipping page %s of %s: %s", page_number, document_id, failure)
                    document.gaps.append(page_number)
                    document.warnings.append(f"page {page_number}: {failure}")
                    continue

                document.pages.append(page)
                if page.ocr_applied:
                    ocr_pages.append(page_number)
                records.extend(await self._embed_page(document, page, state))
            token.raise_if_cancelled()
        finally:
            close = getattr(rendered, "close", None)
            if callable(close):
                await self._call(close)

        if self.config.detect_language:
            document.metadata.language = self.language_detector.detect(
                "\n".join(page.text for page in document.pages)
            )

        duration = time.perf_counter() - started
        emit_ingest_event(
            "ingest.document.complete",
            document_id=document_id,
            locator=locator,
            duration_ms=duration * 1000.0,
            pages=len(document.pages),
            gaps=list(document.gaps),
            ocr_pages=list(ocr_pages),
            records=len(records),
            language=document.metadata.language,
        )
        AUDIT_LOGGER.info(
            {
                "event": "ingest",
                "document_id": document_id,
                "locator": locator,
                "pages": len(document.pages),
                "gaps": list(document.gaps),
                "ocr_pages": list(ocr_pages),
                "records": len(records),
                "warnings": list(document.warnings),
            }
        )
        return IngestionResult(
            document=document, records=records, ocr_pages=ocr_pages, duration_seconds=duration
        )

    def _new_document(
        self, document_id: str, locator: str, rendered: RenderedDocument, page_count: int
    ) -> Document:
        info: Dict[str, Any] = dict(getattr(rendered, "info", None) or {})
        metadata = DocumentMetadata(
            author=info.get("author") or None,
            subject=info.get("subject") or None,
            keywords=_split_keywords(info.get("keywords")),
            creation_date=info.get("creationDate") or None,
            modification_date=info.get("modDate") or None,
            page_count=page_count,
        )
        return Document(
            id=document_id,
            title=info.get("title") or UNTITLED_DOCUMENT,
            locator=locator,
            metadata=metadata,
        )

    async def _process_page(
        self, rendered: RenderedDocument, page_number: int, document: Document
    ) -> Page:
        try:
            rendered_page: RenderedPage = await self._call(rendered.get_page, page_number)
            text = (rendered_page.text or "").strip()
            coordinates = Coordinates(
                x=0.0, y=0.0, width=float(rendered_page.width), height=float(rendered_page.height)
            )
        except Exception as error:
            raise RenderFailure(
                page_number, f"Failed to render page {page_number}: {error}", cause=error
            ) from error

        images = await self._extract_images(rendered_page, page_number)

        ocr_applied = False
        if self.ocr_engine is not None and needs_ocr(text, self.config.classifier):
            ocr_text = await self._perform_ocr(rendered_page, page_number, document)
            if ocr_text.strip():
                text = merge_ocr_text(text, ocr_text)
                ocr_applied = True

        return Page(
            page_number=page_number,
            text=text,
            coordinates=coordinates,
            images=images,
            confidence=page_confidence(text, len(images), self.config.classifier),
            ocr_applied=ocr_applied,
        )

    async def _extract_images(self, rendered_page: RenderedPage, page_number: int) -> List[Image]:
        try:
            embedded = await self._call(rendered_page.embedded_images)
        except Exception as error:
            LOGGER.warning("Error extracting images from page %s: %s", page_number, error)
            return []
        return [
            Image(
                page_number=page_number,
                coordinates=item.coordinates,
                type=classify_image(item.width, item.height, self.config.classifier),
                confidence=DEFAULT_IMAGE_CONFIDENCE,
                bitmap=item.bitmap,
            )
            for item in embedded
        ]

    async def _perform_ocr(
        self, rendered_page: RenderedPage, page_number: int, document: Document
    ) -> str:
        LOGGER.info("Page %s has little extractable text, attempting OCR fallback", page_number)
        bitmap = None
        try:
            bitmap = await self._call(rendered_page.render_to_bitmap)
            result = await self._call(self.ocr_engine.recognize, bitmap)  # type: ignore[union-attr]
        except OcrUnavailable as error:
            LOGGER.info("OCR unavailable for page %s (%s); keeping extracted text", page_number, error)
            return ""
        except Exception as error:
            LOGGER.warning("OCR failed for page %s (%s); keeping extracted text", page_number, error)
            document.warnings.append(f"page {page_number}: OCR failed: {error}")
            return ""
        finally:
            del bitmap
        return result.text

    async def _embed_page(
        self, document: Document, page: Page, state: _EmbeddingState
    ) -> List[EmbeddingRecord]:
        chunks = self.chunker.chunk(
            page.text,
            document_id=document.id,
            page_number=page.page_number,
            coordinates=page.coordinates,
        )
        if not chunks:
            return []

        started = time.perf_counter()
        page_errors: List[str] = []
        records: List[EmbeddingRecord] = []
        for chunk in chunks:
            try:
                raw_vector = await self._call(self.embedder.embed, chunk.text)
            except EmbeddingUnavailable as error:
                message = f"page {page.page_number} chunk {chunk.chunk_index}: {error}"
                LOGGER.warning("Skipping chunk, embedding unavailable: %s", message)
                page_errors.append(message)
                continue

            vector = tuple(float(value) for value in raw_vector)
            if state.dimension is None:
                state.dimension = len(vector)
            elif len(vector) != state.dimension:
                message = (
                    f"page {page.page_number} chunk {chunk.chunk_index}: "
                    f"dimension {len(vector)} != {state.dimension}"
                )
                LOGGER.warning("Skipping chunk with mismatched embedding: %s", message)
                page_errors.append(message)
                continue

            records.append(
                EmbeddingRecord(
                    chunk=chunk,
                    vector=vector,
                    metadata={
                        "document_id": document.id,
                        "page": page.page_number,
                        "chunk_index": chunk.chunk_index,
                        "char_start": chunk.char_start,
                        "char_end": chunk.char_end,
                        "content_length": len(chunk.text),
                        "ocr": page.ocr_applied,
                        "embedding_model": getattr(self.embedder, "model_name", "unknown"),
                    },
                )
            )

        document.warnings.extend(page_errors)
        state.errors.extend(page_errors)
        emit_embeddings_event(
            model=getattr(self.embedder, "model_name", "unknown"),
            count=len(chunks),
            duration_ms=(time.perf_counter() - started) * 1000.0,
            errors=page_errors,
        )
        return records


__all__ = ["IngestionConfig", "IngestionPipeline", "IngestionResult", "document_id_for"]
