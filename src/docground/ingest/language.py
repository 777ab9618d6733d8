"""Language detection helpers."""
from __future__ import annotations

import logging
from typing import Optional

from langdetect import DetectorFactory, LangDetectException, detect

LOGGER = logging.getLogger(__name__)
DetectorFactory.seed = 0


class LanguageDetector:
    """Wraps langdetect, returning ``None`` for short or undetectable text."""

    def __init__(self, min_chars: int = 20, sample_chars: int = 5000) -> None:
        self.min_chars = min_chars
        self.sample_chars = sample_chars

    def detect(self, text: str) -> Optional[str]:
        cleaned = text.strip()
        if len(cleaned) < self.min_chars:
            return None
        try:
            language = detect(cleaned[: self.sample_chars])
        except LangDetectException:
            LOGGER.info("Unable to determine language for text of length %s", len(cleaned))
            return None
        LOGGER.debug("Detected language: %s", language)
        return language
