"""Runtime configuration read from environment variables."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

LOGGER = logging.getLogger(__name__)


def _int_from_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        LOGGER.warning("Invalid integer for %s: %s; using default %s", name, value, default)
        return default


def _optional_int_from_env(name: str) -> int | None:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    try:
        parsed = int(value)
    except ValueError:
        LOGGER.warning("Invalid integer for %s: %s; leaving it unset", name, value)
        return None
    return parsed if parsed > 0 else None


def _float_from_env(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        LOGGER.warning("Invalid float for %s: %s; using default %s", name, value, default)
        return default


@dataclass(slots=True)
class ClassifierConfig:
    """Thresholds used by the page and image heuristics."""

    ocr_min_chars: int = 50
    wide_aspect_ratio: float = 2.0
    tall_aspect_ratio: float = 0.5
    equation_max_px: int = 100
    base_confidence: float = 0.5
    medium_text_chars: int = 50
    long_text_chars: int = 100
    long_text_bonus: float = 0.3
    medium_text_bonus: float = 0.2
    image_bonus: float = 0.1


@dataclass(slots=True)
class Settings:
    """Top level settings shared by the pipeline, service and API."""

    chunk_max_chars: int = 512
    top_k: int = 5
    ocr_language: str = "eng"
    ocr_render_scale: float = 2.0
    embedding_backend: str = "hash"
    embedding_model_path: str = "sentence-transformers/all-MiniLM-L6-v2"
    embedding_device: str | None = None
    embedding_dimension: int = 768
    history_max_turns: int = 20
    context_history_turns: int = 6
    keyword_fallback_pages: int = 5
    context_max_chars: int | None = None
    index_max_documents: int | None = None
    data_dir: Path = Path("data")
    log_dir: Path = Path("logs")
    log_level: str = "INFO"
    llm_max_tokens: int = 256
    classifier: ClassifierConfig = field(default_factory=ClassifierConfig)

    @classmethod
    def from_env(cls) -> "Settings":
        classifier = ClassifierConfig(ocr_min_chars=_int_from_env("OCR_MIN_CHARS", 50))
        return cls(
            chunk_max_chars=_int_from_env("CHUNK_MAX_CHARS", 512),
            top_k=_int_from_env("RETRIEVAL_TOP_K", 5),
            ocr_language=os.getenv("OCR_LANG", "eng"),
            ocr_render_scale=_float_from_env("OCR_RENDER_SCALE", 2.0),
            embedding_backend=os.getenv("EMBEDDING_BACKEND", "hash").strip().lower(),
            embedding_model_path=os.getenv(
                "EMBEDDING_MODEL_PATH", "sentence-transformers/all-MiniLM-L6-v2"
            ),
            embedding_device=os.getenv("EMBEDDING_DEVICE") or None,
            embedding_dimension=_int_from_env("EMBEDDING_DIMENSION", 768),
            history_max_turns=_int_from_env("HISTORY_MAX_TURNS", 20),
            context_history_turns=_int_from_env("CONTEXT_HISTORY_TURNS", 6),
            keyword_fallback_pages=_int_from_env("KEYWORD_FALLBACK_PAGES", 5),
            context_max_chars=_optional_int_from_env("CONTEXT_MAX_CHARS"),
            index_max_documents=_optional_int_from_env("INDEX_MAX_DOCUMENTS"),
            data_dir=Path(os.getenv("DATA_DIR", "data")),
            log_dir=Path(os.getenv("LOG_DIR", "logs")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            llm_max_tokens=_int_from_env("LLM_MAX_TOKENS", 256),
            classifier=classifier,
        )


__all__ = ["ClassifierConfig", "Settings"]
