"""High level ingestion and query orchestration for the study assistant."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Dict, Iterable, List, Optional

from docground.concurrency import CancellationToken, run_blocking
from docground.config import Settings
from docground.context import ContextAssembler, GroundingContext
from docground.embeddings import Embedder, get_embedder
from docground.errors import (
    EmbeddingUnavailable,
    IndexNotFound,
    IngestionSuperseded,
    ModelCallFailure,
)
from docground.index import DocumentIndex, LRUDocumentIndex, SimilarityRanker
from docground.ingest.ocr import OcrEngine, TesseractOcrEngine
from docground.ingest.pipeline import IngestionConfig, IngestionPipeline, document_id_for
from docground.ingest.rendering import DocumentRenderer, PyMuPDFRenderer
from docground.llm import LLMAdapter, MockLLMAdapter
from docground.logging_config import AUDIT_LOGGER_NAME
from docground.models import (
    ConversationHistory,
    ConversationTurn,
    Document,
    EmbeddingRecord,
    IndexStats,
    Page,
    Role,
    ScoredRecord,
    Selection,
)
from docground.prompt_builder import build_prompt
from docground.telemetry import (
    emit_context_event,
    emit_exception,
    emit_retriever_event,
    log_event,
)

LOGGER = logging.getLogger(__name__)
AUDIT_LOGGER = logging.getLogger(AUDIT_LOGGER_NAME)


@dataclass(slots=True)
class AnswerResult:
    """Structured result returned from :meth:`RetrievalService.answer`."""

    document_id: str
    message: str
    answer: str
    grounding: str
    max_tokens: int
    model_used: str
    fallback_used: bool
    sources: List[ScoredRecord] = field(default_factory=list)


class RetrievalService:
    """Owns the document index and routes ingestion and queries through it.

    The index is created once per service and injected into every query, so
    there is no module-level cache. Starting an ingestion cancels any run
    still in progress; only the newest run may commit to the index.
    """

    def __init__(
        self,
        *,
        settings: Optional[Settings] = None,
        renderer: Optional[DocumentRenderer] = None,
        embedder: Optional[Embedder] = None,
        ocr_engine: Optional[OcrEngine] = None,
        index: Optional[DocumentIndex] = None,
        llm: Optional[LLMAdapter] = None,
    ) -> None:
        self.settings = settings or Settings.from_env()
        self.renderer = renderer or PyMuPDFRenderer(self.settings.ocr_render_scale)
        self.embedder = embedder or get_embedder(self.settings)
        self.ocr_engine = ocr_engine if ocr_engine is not None else TesseractOcrEngine(
            self.settings.ocr_language
        )
        if index is None:
            max_documents = self.settings.index_max_documents
            index = LRUDocumentIndex(max_documents) if max_documents else DocumentIndex()
        self.index = index
        self.llm = llm or MockLLMAdapter()
        self.pipeline = IngestionPipeline(
            self.renderer,
            self.embedder,
            self.ocr_engine,
            IngestionConfig(
                chunk_max_chars=self.settings.chunk_max_chars,
                classifier=self.settings.classifier,
            ),
        )
        self.ranker = SimilarityRanker(self.settings.top_k)
        self.assembler = ContextAssembler(
            history_turns=self.settings.context_history_turns,
            fallback_pages=self.settings.keyword_fallback_pages,
            max_chars=self.settings.context_max_chars,
        )
        self._documents: Dict[str, Document] = {}
        self._histories: Dict[str, ConversationHistory] = {}
        self._active_document_id: Optional[str] = None
        self._current_token: Optional[CancellationToken] = None

    @property
    def active_document(self) -> Optional[Document]:
        if self._active_document_id is None:
            return None
        return self._documents.get(self._active_document_id)

    def get_document(self, document_id: str) -> Optional[Document]:
        return self._documents.get(document_id)

    def history_for(self, document_id: str) -> ConversationHistory:
        """Conversation buffer for *document_id*.

        Only ingested documents keep their buffer; for any other id a fresh,
        unstored buffer is returned.
        """

        history = self._histories.get(document_id)
        if history is None:
            history = ConversationHistory(self.settings.history_max_turns)
            if document_id in self._documents:
                self._histories[document_id] = history
        return history

    async def ingest(self, locator: str, *, document_id: Optional[str] = None) -> Document:
        """Ingest *locator* and make it the active document.

        Raises :class:`IngestionSuperseded` when a newer ingestion started
        before this one finished; nothing from the superseded run is stored.
        """

        document_id = document_id or document_id_for(locator)
        token = CancellationToken()
        if self._current_token is not None and not self._current_token.cancelled:
            LOGGER.info("Superseding in-progress ingestion with %s", document_id)
            self._current_token.cancel()
        self._current_token = token

        try:
            result = await self.pipeline.run(locator, document_id=document_id, token=token)
        except IngestionSuperseded:
            LOGGER.info("Ingestion of %s was superseded; discarding partial results", document_id)
            raise
        except Exception as error:
            emit_exception(module=f"{__name__}.ingest", error=error, document_id=document_id)
            raise
        finally:
            if self._current_token is token:
                self._current_token = None

        if token.cancelled:
            raise IngestionSuperseded(f"Ingestion of {document_id} was superseded")

        self._commit(result.document, result.records)
        for warning in result.document.warnings:
            LOGGER.warning("Partial ingestion of %s: %s", document_id, warning)
        return result.document

    def _commit(self, document: Document, records: List[EmbeddingRecord]) -> None:
        self.index.put(document.id, records)
        self._documents[document.id] = document
        self._active_document_id = document.id
        indexed = set(self.index.stats().document_ids)
        for stale in [key for key in self._documents if key not in indexed]:
            del self._documents[stale]
        for stale in [key for key in self._histories if key not in self._documents]:
            del self._histories[stale]

    async def retrieve(
        self,
        document_id: str,
        query_text: str,
        selection: Optional[Selection] = None,
        history: Optional[Iterable[ConversationTurn]] = None,
    ) -> GroundingContext:
        """Build the grounding context for *query_text*. Never raises on a missing index."""

        records = self.index.get(document_id)
        document = self._documents.get(document_id)
        pages: List[Page] = list(document.pages) if document is not None else []

        ranked: Optional[List[ScoredRecord]] = None
        try:
            ranked = await self._rank(document_id, query_text, records)
        except IndexNotFound:
            LOGGER.info("No index for %s; using keyword overlap fallback", document_id)
        except EmbeddingUnavailable as error:
            LOGGER.warning("Query embedding unavailable (%s); using keyword overlap fallback", error)

        context = self.assembler.assemble(
            query_text,
            ranked=ranked,
            pages=pages,
            selection=selection,
            history=history,
        )
        emit_context_event(
            document_id=document_id,
            sections=list(context.sections),
            context_chars=len(context.text),
            fallback_used=context.fallback_used,
            truncated=context.truncated,
        )
        return context

    async def query(
        self,
        document_id: str,
        query_text: str,
        selection: Optional[Selection] = None,
        history: Optional[Iterable[ConversationTurn]] = None,
    ) -> str:
        context = await self.retrieve(document_id, query_text, selection, history)
        return context.text

    async def _rank(
        self, document_id: str, query_text: str, records: tuple[EmbeddingRecord, ...]
    ) -> List[ScoredRecord]:
        if not records:
            raise IndexNotFound(document_id)

        started = time.perf_counter()
        query_vector = await run_blocking(self.embedder.embed, query_text)
        results = self.ranker.search_with_scores(query_vector, records, self.settings.top_k)
        emit_retriever_event(
            document_id=document_id,
            query=query_text,
            top_k=self.settings.top_k,
            results=[
                {
                    "page": item.record.chunk.page_number,
                    "chunk_index": item.record.chunk.chunk_index,
                    "score": round(item.score, 6),
                }
                for item in results
            ],
            duration_ms=(time.perf_counter() - started) * 1000.0,
        )
        return results

    async def answer(
        self,
        document_id: str,
        message: str,
        selection: Optional[Selection] = None,
        history: Optional[Iterable[ConversationTurn]] = None,
        max_tokens: Optional[int] = None,
    ) -> AnswerResult:
        """Ground *message*, call the model and record the exchange.

        Without an explicit *history* the service's own conversation buffer
        for the document is used and extended with both turns.
        """

        stored_history = self.history_for(document_id) if history is None else None
        if stored_history is not None:
            turns = stored_history.recent(self.settings.context_history_turns)
        else:
            turns = list(history or [])

        context = await self.retrieve(document_id, message, selection, turns)
        prompt = build_prompt(message, context.text)
        effective_max_tokens = max_tokens if max_tokens and max_tokens > 0 else self.settings.llm_max_tokens
        model_name = getattr(self.llm, "model_name", "unknown")

        started = time.perf_counter()
        try:
            answer_text = await run_blocking(self.llm.generate, prompt, max_tokens=effective_max_tokens)
        except ModelCallFailure as error:
            emit_exception(module=f"{__name__}.llm", error=error, document_id=document_id)
            raise
        except Exception as error:
            emit_exception(module=f"{__name__}.llm", error=error, document_id=document_id)
            raise ModelCallFailure(f"Model call failed: {error}", cause=error) from error

        log_event(
            LOGGER,
            "llm.generate",
            document_id=document_id,
            duration_ms=(time.perf_counter() - started) * 1000.0,
            details={"model": model_name, "prompt_len": len(prompt), "max_tokens": effective_max_tokens},
        )

        if stored_history is not None:
            stored_history.add_message(Role.USER, message)
            stored_history.add_message(Role.ASSISTANT, answer_text)

        AUDIT_LOGGER.info(
            {
                "event": "query",
                "document_id": document_id,
                "message": message,
                "fallback_used": context.fallback_used,
                "sources": [
                    f"{item.record.chunk.page_number}:{item.record.chunk.chunk_index}"
                    for item in context.sources
                ],
            }
        )
        return AnswerResult(
            document_id=document_id,
            message=message,
            answer=answer_text,
            grounding=context.text,
            max_tokens=effective_max_tokens,
            model_used=model_name,
            fallback_used=context.fallback_used,
            sources=list(context.sources),
        )

    def get_index_stats(self) -> IndexStats:
        return self.index.stats()

    def clear(self, document_id: str) -> None:
        self.index.clear(document_id)
        self._documents.pop(document_id, None)
        self._histories.pop(document_id, None)
        if self._active_document_id == document_id:
            self._active_document_id = None


@lru_cache(maxsize=1)
def get_retrieval_service() -> RetrievalService:
    """FastAPI dependency returning the shared :class:`RetrievalService` instance."""

    return RetrievalService()


__all__ = ["AnswerResult", "RetrievalService", "get_retrieval_service"]
