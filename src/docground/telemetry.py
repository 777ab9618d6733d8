"""Centralised observability helpers for structured lifecycle logging."""

from __future__ import annotations

import logging
import os
import platform
import sys
import traceback
from typing import Any, Optional

LOGGER = logging.getLogger("docground.telemetry")

_ENV_KEYS_TO_LOG: tuple[str, ...] = (
    "CHUNK_MAX_CHARS",
    "RETRIEVAL_TOP_K",
    "OCR_MIN_CHARS",
    "OCR_LANG",
    "EMBEDDING_BACKEND",
    "EMBEDDING_MODEL_PATH",
    "EMBEDDING_DEVICE",
    "CONTEXT_MAX_CHARS",
    "INDEX_MAX_DOCUMENTS",
    "DATA_DIR",
)


def _format_exception(error: BaseException) -> str:
    return "".join(traceback.format_exception(error.__class__, error, error.__traceback__))


def log_event(
    logger: Optional[logging.Logger],
    step: str,
    *,
    level: str = "info",
    document_id: str | None = None,
    duration_ms: float | None = None,
    exc: BaseException | str | None = None,
    details: dict[str, Any] | None = None,
    **payload: Any,
) -> None:
    """Emit a structured log event with the agreed-upon schema."""

    logger = logger or LOGGER
    event: dict[str, Any] = {"step": step, "module": logger.name}
    if document_id:
        event["document_id"] = document_id
    if duration_ms is not None:
        event["duration_ms"] = round(duration_ms, 3)
    if details is not None:
        event["details"] = details
    event.update(payload)

    exc_info = None
    if exc is not None:
        if isinstance(exc, BaseException):
            event["exc"] = _format_exception(exc)
            exc_info = (exc.__class__, exc, exc.__traceback__)
        else:
            event["exc"] = str(exc)

    log_method = getattr(logger, level.lower(), logger.info)
    log_method(event, exc_info=exc_info)


def emit_app_startup_event() -> None:
    env_values = {key: os.getenv(key) for key in _ENV_KEYS_TO_LOG if os.getenv(key) is not None}
    details = {
        "env": env_values,
        "python": sys.version.split()[0],
        "platform": platform.platform(),
    }
    log_event(LOGGER, "app.startup", details=details, pid=os.getpid())


def emit_embeddings_event(
    *, model: str, count: int, duration_ms: float, errors: list[str] | None = None
) -> None:
    details = {
        "model": model,
        "count": count,
        "errors": errors or [],
        "per_item_ms": round(duration_ms / count, 3) if count else None,
    }
    log_event(LOGGER, "embeddings.compute", duration_ms=duration_ms, details=details)


def emit_ingest_event(
    step: str,
    *,
    document_id: str,
    locator: str,
    duration_ms: float | None = None,
    pages: int | None = None,
    gaps: list[int] | None = None,
    ocr_pages: list[int] | None = None,
    records: int | None = None,
    language: str | None = None,
) -> None:
    details = {
        "locator": locator,
        "pages": pages,
        "gaps": gaps,
        "ocr_pages": ocr_pages,
        "records": records,
        "language": language,
    }
    log_event(LOGGER, step, document_id=document_id, duration_ms=duration_ms, details=details)


def emit_retriever_event(
    *,
    document_id: str,
    query: str,
    top_k: int,
    results: list[dict[str, Any]],
    duration_ms: float,
) -> None:
    details = {
        "query_preview": query[:120],
        "top_k": top_k,
        "results": results,
    }
    log_event(
        LOGGER, "retriever.search", document_id=document_id, duration_ms=duration_ms, details=details
    )


def emit_context_event(
    *,
    document_id: str,
    sections: list[str],
    context_chars: int,
    fallback_used: bool,
    truncated: bool,
) -> None:
    details = {
        "sections": sections,
        "context_chars": context_chars,
        "fallback_used": fallback_used,
        "truncated": truncated,
    }
    log_event(LOGGER, "context.assemble", document_id=document_id, details=details)


def emit_exception(
    *,
    module: str,
    error: BaseException,
    document_id: str | None = None,
    suggestion: str | None = None,
) -> None:
    details = {"module": module}
    if suggestion:
        details["suggestion"] = suggestion
    log_event(
        LOGGER,
        "exception",
        level="error",
        document_id=document_id,
        details=details,
        exc=error,
    )


__all__ = [
    "emit_app_startup_event",
    "emit_context_event",
    "emit_embeddings_event",
    "emit_exception",
    "emit_ingest_event",
    "emit_retriever_event",
    "log_event",
]
