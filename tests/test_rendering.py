from __future__ import annotations

import asyncio

import fitz
import pytest
from PIL import Image as PILImage

from conftest import FakeOcrEngine, KeywordEmbedder, VOCABULARY
from docground.ingest.pipeline import IngestionConfig, IngestionPipeline
from docground.ingest.rendering import PyMuPDFRenderer


@pytest.fixture
def sample_pdf(tmp_path):
    path = tmp_path / "sample.pdf"
    document = fitz.open()
    first = document.new_page()
    first.insert_text(
        (72, 72),
        "Photosynthesis converts light energy into chemical energy in the plant cell.",
        fontsize=9,
    )
    document.new_page()
    document.set_metadata({"title": "Plant Biology", "author": "Lab", "keywords": "plants, light"})
    document.save(path)
    document.close()
    return path


def test_pymupdf_renderer_extracts_text_and_bitmap(sample_pdf) -> None:
    rendered = PyMuPDFRenderer(render_scale=1.0).open(str(sample_pdf))
    try:
        assert rendered.page_count == 2
        assert rendered.info["title"] == "Plant Biology"
        page = rendered.get_page(1)
        assert "Photosynthesis" in page.text
        assert page.width > 0 and page.height > 0
        bitmap = page.render_to_bitmap()
        assert isinstance(bitmap, PILImage.Image)
        assert page.embedded_images() == []
        with pytest.raises(IndexError):
            rendered.get_page(3)
    finally:
        rendered.close()


def test_pipeline_runs_ocr_on_blank_pdf_page(sample_pdf) -> None:
    ocr = FakeOcrEngine("scanned diagram caption")
    pipeline = IngestionPipeline(
        PyMuPDFRenderer(render_scale=1.0),
        KeywordEmbedder(VOCABULARY),
        ocr,
        IngestionConfig(detect_language=False),
    )

    result = asyncio.run(pipeline.run(str(sample_pdf)))

    assert len(ocr.calls) == 1
    assert isinstance(ocr.calls[0], PILImage.Image)
    assert result.document.title == "Plant Biology"
    assert result.document.metadata.keywords == ["plants", "light"]
    assert result.document.pages[1].text == "scanned diagram caption"
