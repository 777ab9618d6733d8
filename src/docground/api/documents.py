"""API router exposing ingestion and query endpoints for documents."""
from __future__ import annotations

from typing import Any, Literal

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from pydantic import BaseModel, Field

from docground.errors import DocumentLoadError, IngestionSuperseded, ModelCallFailure
from docground.models import (
    AreaSelection,
    ConversationTurn,
    Coordinates,
    Document,
    ImageType,
    Role,
    ScoredRecord,
    Selection,
    TextSelection,
)
from docground.services import RetrievalService, get_retrieval_service
from docground.storage import save_upload

router = APIRouter(tags=["documents"])


class IngestRequest(BaseModel):
    """Request body accepted by the ingest endpoint."""

    locator: str = Field(..., min_length=1, description="Path of the document to ingest.")
    document_id: str | None = Field(None, description="Optional explicit document id.")


class PageSummary(BaseModel):
    page_number: int
    characters: int
    images: int
    confidence: float
    ocr_applied: bool


class IngestResponse(BaseModel):
    """Response body returned from the ingest endpoints."""

    status: str
    document_id: str
    title: str
    pages: list[PageSummary]
    gaps: list[int]
    warnings: list[str]
    metadata: dict[str, Any]


class CoordinatesModel(BaseModel):
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0


class SelectionModel(BaseModel):
    """Text selection when ``text`` is set, otherwise an area selection."""

    page_number: int = Field(..., ge=1)
    text: str | None = None
    coordinates: CoordinatesModel = Field(default_factory=CoordinatesModel)
    type: ImageType = ImageType.IMAGE

    def to_selection(self) -> Selection:
        coordinates = Coordinates(**self.coordinates.model_dump())
        if self.text:
            return TextSelection(text=self.text, page_number=self.page_number, coordinates=coordinates)
        return AreaSelection(page_number=self.page_number, coordinates=coordinates, type=self.type)


class TurnModel(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class QueryRequest(BaseModel):
    """Request body accepted by the query and answer endpoints."""

    message: str = Field(..., min_length=1, description="User message to ground.")
    selection: SelectionModel | None = None
    history: list[TurnModel] | None = None
    max_tokens: int | None = Field(None, ge=1, le=2048)

    def turns(self) -> list[ConversationTurn] | None:
        if self.history is None:
            return None
        return [ConversationTurn(role=Role(turn.role), content=turn.content) for turn in self.history]


class SourceModel(BaseModel):
    page_number: int
    chunk_index: int
    score: float
    content: str


class QueryResponse(BaseModel):
    document_id: str
    grounding: str
    fallback_used: bool
    truncated: bool
    sources: list[SourceModel]


class AnswerResponse(BaseModel):
    document_id: str
    message: str
    answer: str
    model_used: str
    max_tokens: int
    fallback_used: bool
    sources: list[SourceModel]


class IndexStatsResponse(BaseModel):
    entry_count: int
    document_ids: list[str]


def _serialise_document(document: Document) -> IngestResponse:
    metadata = document.metadata
    return IngestResponse(
        status="ok",
        document_id=document.id,
        title=document.title,
        pages=[
            PageSummary(
                page_number=page.page_number,
                characters=len(page.text),
                images=len(page.images),
                confidence=page.confidence,
                ocr_applied=page.ocr_applied,
            )
            for page in document.pages
        ],
        gaps=list(document.gaps),
        warnings=list(document.warnings),
        metadata={
            "author": metadata.author,
            "subject": metadata.subject,
            "keywords": list(metadata.keywords),
            "creation_date": metadata.creation_date,
            "modification_date": metadata.modification_date,
            "language": metadata.language,
            "page_count": metadata.page_count,
        },
    )


def _serialise_sources(sources: list[ScoredRecord]) -> list[SourceModel]:
    return [
        SourceModel(
            page_number=item.record.chunk.page_number,
            chunk_index=item.record.chunk.chunk_index,
            score=item.score,
            content=item.record.chunk.text,
        )
        for item in sources
    ]


async def _run_ingest(
    service: RetrievalService, locator: str, document_id: str | None
) -> IngestResponse:
    try:
        document = await service.ingest(locator, document_id=document_id)
    except DocumentLoadError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except IngestionSuperseded as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return _serialise_document(document)


@router.post("/documents/ingest", response_model=IngestResponse)
async def ingest_document(
    request: IngestRequest,
    service: RetrievalService = Depends(get_retrieval_service),
) -> IngestResponse:
    """Ingest a document reachable by the server."""

    return await _run_ingest(service, request.locator, request.document_id)


@router.post("/documents/upload", response_model=IngestResponse)
async def upload_document(
    file: UploadFile = File(...),
    service: RetrievalService = Depends(get_retrieval_service),
) -> IngestResponse:
    """Persist an uploaded document, then ingest it."""

    destination = await save_upload(file, service.settings.data_dir)
    return await _run_ingest(service, str(destination), None)


@router.post("/documents/{document_id}/query", response_model=QueryResponse)
async def query_document(
    document_id: str,
    request: QueryRequest,
    service: RetrievalService = Depends(get_retrieval_service),
) -> QueryResponse:
    """Return the grounding context for a message."""

    if not request.message.strip():
        raise HTTPException(status_code=422, detail="Message must not be empty")

    context = await service.retrieve(
        document_id,
        request.message,
        request.selection.to_selection() if request.selection else None,
        request.turns(),
    )
    return QueryResponse(
        document_id=document_id,
        grounding=context.text,
        fallback_used=context.fallback_used,
        truncated=context.truncated,
        sources=_serialise_sources(context.sources),
    )


@router.post("/documents/{document_id}/answer", response_model=AnswerResponse)
async def answer_document(
    document_id: str,
    request: QueryRequest,
    service: RetrievalService = Depends(get_retrieval_service),
) -> AnswerResponse:
    """Ground a message and hand it to the generative model."""

    if not request.message.strip():
        raise HTTPException(status_code=422, detail="Message must not be empty")

    try:
        result = await service.answer(
            document_id,
            request.message,
            request.selection.to_selection() if request.selection else None,
            request.turns(),
            request.max_tokens,
        )
    except ModelCallFailure as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return AnswerResponse(
        document_id=result.document_id,
        message=result.message,
        answer=result.answer,
        model_used=result.model_used,
        max_tokens=result.max_tokens,
        fallback_used=result.fallback_used,
        sources=_serialise_sources(result.sources),
    )


@router.delete("/documents/{document_id}")
def delete_document(
    document_id: str,
    service: RetrievalService = Depends(get_retrieval_service),
) -> dict[str, str]:
    service.clear(document_id)
    return {"status": "ok", "document_id": document_id}


@router.get("/index/stats", response_model=IndexStatsResponse)
def index_stats(service: RetrievalService = Depends(get_retrieval_service)) -> IndexStatsResponse:
    stats = service.get_index_stats()
    return IndexStatsResponse(entry_count=stats.entry_count, document_ids=list(stats.document_ids))
