"""Document ingestion: rendering, OCR fallback, chunking and embedding."""
from __future__ import annotations

from .chunking import ChunkingConfig, WordChunker, chunk_page_text, iter_word_spans
from .classification import classify_image, merge_ocr_text, needs_ocr, page_confidence
from .pipeline import IngestionConfig, IngestionPipeline, IngestionResult, document_id_for

__all__ = [
    "ChunkingConfig",
    "IngestionConfig",
    "IngestionPipeline",
    "IngestionResult",
    "WordChunker",
    "chunk_page_text",
    "classify_image",
    "document_id_for",
    "iter_word_spans",
    "merge_ocr_text",
    "needs_ocr",
    "page_confidence",
]
