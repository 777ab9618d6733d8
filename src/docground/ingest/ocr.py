"""Optical character recognition adapters."""
from __future__ import annotations

import io
import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Dict, List, Protocol, Tuple

import pytesseract
from PIL import Image as PILImage

from docground.errors import OcrUnavailable

LOGGER = logging.getLogger(__name__)

# uniform block of text, keep the spacing between words
DEFAULT_TESSERACT_CONFIG = "--psm 6 -c preserve_interword_spaces=1"


@dataclass(frozen=True, slots=True)
class OcrResult:
    text: str
    confidence: float


class OcrEngine(Protocol):
    def recognize(self, bitmap: Any) -> OcrResult:
        ...


def preprocess_image(image: PILImage.Image, threshold: int = 128) -> PILImage.Image:
    """Convert to grayscale and binarise to improve recognition of scans."""

    grayscale = image.convert("L")
    return grayscale.point(lambda value: 255 if value > threshold else 0)


def _as_image(bitmap: Any) -> PILImage.Image:
    if isinstance(bitmap, PILImage.Image):
        return bitmap
    if isinstance(bitmap, (bytes, bytearray)):
        return PILImage.open(io.BytesIO(bitmap))
    raise TypeError(f"Unsupported bitmap type: {type(bitmap).__name__}")


def _assemble_text(data: Dict[str, List[Any]]) -> Tuple[str, float]:
    lines: "OrderedDict[Tuple[int, int, int], List[str]]" = OrderedDict()
    confidences: List[float] = []
    for index, word in enumerate(data.get("text", [])):
        if not word or not str(word).strip():
            continue
        key = (data["block_num"][index], data["par_num"][index], data["line_num"][index])
        lines.setdefault(key, []).append(str(word))
        try:
            confidence = float(data["conf"][index])
        except (TypeError, ValueError):
            continue
        if confidence >= 0:
            confidences.append(confidence)

    text = "\n".join(" ".join(words) for words in lines.values())
    mean_confidence = sum(confidences) / len(confidences) / 100.0 if confidences else 0.0
    return text, mean_confidence


class TesseractOcrEngine:
    """OCR engine backed by the Tesseract binary through pytesseract."""

    def __init__(
        self,
        language: str = "eng",
        *,
        config: str = DEFAULT_TESSERACT_CONFIG,
        preprocess: bool = True,
    ) -> None:
        self.language = language
        self.config = config
        self.preprocess = preprocess

    def recognize(self, bitmap: Any) -> OcrResult:
        image = _as_image(bitmap)
        if self.preprocess:
            image = preprocess_image(image)
        try:
            data = pytesseract.image_to_data(
                image,
                lang=self.language,
                config=self.config,
                output_type=pytesseract.Output.DICT,
            )
        except pytesseract.TesseractNotFoundError as error:
            raise OcrUnavailable("Tesseract is not installed or not on PATH", cause=error) from error
        except (pytesseract.TesseractError, RuntimeError) as error:
            raise OcrUnavailable(f"Tesseract failed: {error}", cause=error) from error

        text, confidence = _assemble_text(data)
        LOGGER.debug("OCR recognised %s characters (confidence %.2f)", len(text), confidence)
        return OcrResult(text=text, confidence=confidence)


__all__ = ["OcrEngine", "OcrResult", "TesseractOcrEngine", "preprocess_image"]
