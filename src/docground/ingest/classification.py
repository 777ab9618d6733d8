"""Heuristics deciding OCR fallback and classifying page images."""
from __future__ import annotations

from typing import Optional

from docground.config import ClassifierConfig
from docground.models import ImageType

DEFAULT_CONFIG = ClassifierConfig()
DEFAULT_IMAGE_CONFIDENCE = 0.8


def needs_ocr(text: str, config: Optional[ClassifierConfig] = None) -> bool:
    """Return True when extracted text is too short to trust, e.g. a scan."""

    config = config or DEFAULT_CONFIG
    return len(text.strip()) < config.ocr_min_chars


def merge_ocr_text(text: str, ocr_text: str) -> str:
    """Append OCR output after a newline; existing text is never replaced."""

    recognized = ocr_text.strip()
    if not recognized:
        return text
    if not text.strip():
        return recognized
    return f"{text}\n{recognized}"


def classify_image(width: float, height: float, config: Optional[ClassifierConfig] = None) -> ImageType:
    config = config or DEFAULT_CONFIG
    if width <= 0 or height <= 0:
        return ImageType.IMAGE

    aspect_ratio = width / height
    if aspect_ratio > config.wide_aspect_ratio or aspect_ratio < config.tall_aspect_ratio:
        return ImageType.CHART
    if width < config.equation_max_px and height < config.equation_max_px:
        return ImageType.EQUATION
    return ImageType.DIAGRAM


def page_confidence(text: str, image_count: int, config: Optional[ClassifierConfig] = None) -> float:
    """Score how much the extracted content of a page can be trusted."""

    config = config or DEFAULT_CONFIG
    confidence = config.base_confidence
    length = len(text)
    if length > config.long_text_chars:
        confidence += config.long_text_bonus
    elif length > config.medium_text_chars:
        confidence += config.medium_text_bonus
    if image_count > 0:
        confidence += config.image_bonus
    return min(confidence, 1.0)


__all__ = [
    "DEFAULT_IMAGE_CONFIDENCE",
    "classify_image",
    "merge_ocr_text",
    "needs_ocr",
    "page_confidence",
]
