"""Error taxonomy for ingestion and retrieval."""
from __future__ import annotations


class DocGroundError(RuntimeError):
    """Base class for errors raised by the retrieval core."""

    def __init__(self, message: str, *, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.__cause__ = cause


class DocumentLoadError(DocGroundError):
    """Raised when the page list of a document cannot be obtained at all."""


class RenderFailure(DocGroundError):
    """Raised when a single page cannot be rendered or extracted."""

    def __init__(self, page_number: int, message: str, *, cause: Exception | None = None) -> None:
        super().__init__(message, cause=cause)
        self.page_number = page_number


class OcrUnavailable(DocGroundError):
    """Raised when OCR cannot run for a page; the extracted text is kept."""


class EmbeddingUnavailable(DocGroundError):
    """Raised when a text cannot be embedded; only that chunk is skipped."""


class IndexNotFound(DocGroundError):
    """Raised when a document has no indexed records."""

    def __init__(self, document_id: str) -> None:
        super().__init__(f"No index entries for document '{document_id}'")
        self.document_id = document_id


class ModelCallFailure(DocGroundError):
    """Raised when the generative model client fails. Never retried here."""


class IngestionSuperseded(DocGroundError):
    """Raised when an ingestion run is cancelled by a newer one."""


__all__ = [
    "DocGroundError",
    "DocumentLoadError",
    "EmbeddingUnavailable",
    "IndexNotFound",
    "IngestionSuperseded",
    "ModelCallFailure",
    "OcrUnavailable",
    "RenderFailure",
]
