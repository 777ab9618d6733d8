"""Document rendering adapters consumed by the ingestion pipeline."""
from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Protocol

import fitz  # PyMuPDF
from PIL import Image as PILImage

from docground.models import Coordinates

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class EmbeddedImage:
    """Raster image object found inside a page."""

    width: int
    height: int
    coordinates: Coordinates
    bitmap: Any = field(default=None, repr=False)


class RenderedPage(Protocol):
    text: str
    width: float
    height: float

    def render_to_bitmap(self) -> Any:
        ...

    def embedded_images(self) -> List[EmbeddedImage]:
        ...


class RenderedDocument(Protocol):
    page_count: int
    info: Dict[str, Any]

    def get_page(self, page_number: int) -> RenderedPage:
        ...

    def close(self) -> None:
        ...


class DocumentRenderer(Protocol):
    def open(self, locator: str) -> RenderedDocument:
        ...


class PyMuPDFPage:
    """Page view exposing text, size, rasterisation and embedded images."""

    def __init__(self, page: "fitz.Page", render_scale: float) -> None:
        self._page = page
        self._render_scale = render_scale
        self.text = page.get_text("text").strip()
        self.width = float(page.rect.width)
        self.height = float(page.rect.height)

    def render_to_bitmap(self) -> PILImage.Image:
        matrix = fitz.Matrix(self._render_scale, self._render_scale)
        pixmap = self._page.get_pixmap(matrix=matrix)
        return PILImage.open(io.BytesIO(pixmap.tobytes("png")))

    def embedded_images(self) -> List[EmbeddedImage]:
        images: List[EmbeddedImage] = []
        for entry in self._page.get_images(full=True):
            xref, width, height = entry[0], int(entry[2]), int(entry[3])
            rects = self._page.get_image_rects(xref)
            if rects:
                rect = rects[0]
                coordinates = Coordinates(x=rect.x0, y=rect.y0, width=rect.width, height=rect.height)
            else:
                coordinates = Coordinates(x=0.0, y=0.0, width=float(width), height=float(height))
            try:
                bitmap = self._page.parent.extract_image(xref).get("image")
            except Exception as error:  # pragma: no cover - depends on PDF content
                LOGGER.warning("Failed to extract image xref %s: %s", xref, error)
                bitmap = None
            images.append(EmbeddedImage(width=width, height=height, coordinates=coordinates, bitmap=bitmap))
        return images


class PyMuPDFDocument:
    def __init__(self, document: "fitz.Document", render_scale: float) -> None:
        self._document = document
        self._render_scale = render_scale
        self.page_count = int(document.page_count)
        self.info: Dict[str, Any] = dict(document.metadata or {})

    def get_page(self, page_number: int) -> PyMuPDFPage:
        if not 1 <= page_number <= self.page_count:
            raise IndexError(f"Page {page_number} is out of range 1..{self.page_count}")
        return PyMuPDFPage(self._document.load_page(page_number - 1), self._render_scale)

    def close(self) -> None:
        self._document.close()


class PyMuPDFRenderer:
    """Open PDF files (or other PyMuPDF supported formats) by path."""

    def __init__(self, render_scale: float = 2.0) -> None:
        self.render_scale = render_scale

    def open(self, locator: str) -> PyMuPDFDocument:
        LOGGER.info("Opening document %s", locator)
        return PyMuPDFDocument(fitz.open(locator), self.render_scale)


__all__ = [
    "DocumentRenderer",
    "EmbeddedImage",
    "PyMuPDFDocument",
    "PyMuPDFPage",
    "PyMuPDFRenderer",
    "RenderedDocument",
    "RenderedPage",
]
