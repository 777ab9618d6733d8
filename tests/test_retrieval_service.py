"""End-to-end tests of ingestion and querying through the service facade."""
from __future__ import annotations

import asyncio
import time
from typing import List

import pytest

from conftest import VOCABULARY, FakeDocument, FakePage, GatedPage, KeywordEmbedder
from docground.config import Settings
from docground.errors import DocumentLoadError, IngestionSuperseded, ModelCallFailure
from docground.ingest.rendering import EmbeddedImage
from docground.llm import MOCK_PREFIX, MockLLMAdapter
from docground.models import ConversationTurn, Coordinates, Role, TextSelection
from docground.services import RetrievalService

PAGES = [
    "Photosynthesis converts light energy into chemical energy in the plant cell.",
    "Mitochondria release energy from food molecules inside every cell of the body.",
    "Water moves through the plant from the roots to the leaves by transpiration.",
]


def test_ingest_builds_index_and_active_document(service, renderer) -> None:
    renderer.add("bio.pdf", PAGES)

    document = asyncio.run(service.ingest("bio.pdf", document_id="bio"))

    assert document.id == "bio"
    assert service.active_document is document
    stats = service.get_index_stats()
    assert stats.entry_count == 1
    assert stats.document_ids == ("bio",)
    assert len(service.index.get("bio")) == 3


def test_reingest_replaces_previous_records(service, renderer) -> None:
    renderer.add("bio.pdf", PAGES)
    asyncio.run(service.ingest("bio.pdf", document_id="bio"))

    renderer.add("bio.pdf", PAGES[:1])
    asyncio.run(service.ingest("bio.pdf", document_id="bio"))

    records = service.index.get("bio")
    assert len(records) == 1
    assert records[0].chunk.page_number == 1
    assert service.get_index_stats().entry_count == 1


def test_query_ranks_most_similar_chunk_first(service, renderer) -> None:
    renderer.add("bio.pdf", PAGES)
    asyncio.run(service.ingest("bio.pdf", document_id="bio"))

    context = asyncio.run(service.retrieve("bio", "mitochondria"))

    assert context.fallback_used is False
    assert context.sources[0].record.chunk.page_number == 2
    assert context.text.startswith("Relevant document context:\nPage 2:")


def test_query_for_unknown_document_is_empty(service) -> None:
    text = asyncio.run(service.query("unknown", "light"))

    assert text == ""


def test_selection_leads_grounding_with_empty_index(service) -> None:
    selection = TextSelection("photosynthesis requires light", 1, Coordinates(0, 0, 10, 10))

    text = asyncio.run(service.query("unknown", "explain this", selection=selection))

    assert text.startswith("photosynthesis requires light")


def test_keyword_fallback_uses_pages_when_nothing_was_embedded(settings, renderer, ocr_engine) -> None:
    embedder = KeywordEmbedder(VOCABULARY, fail_on=["photosynthesis", "mitochondria", "water"])
    service = RetrievalService(
        settings=settings, renderer=renderer, embedder=embedder, ocr_engine=ocr_engine
    )
    renderer.add("bio.pdf", PAGES)
    document = asyncio.run(service.ingest("bio.pdf", document_id="bio"))
    assert len(document.warnings) == 3

    context = asyncio.run(service.retrieve("bio", "transpiration in roots"))

    assert context.fallback_used is True
    assert "Page 3: Water moves through the plant" in context.text


def test_history_is_appended_oldest_first(service, renderer) -> None:
    renderer.add("bio.pdf", PAGES)
    asyncio.run(service.ingest("bio.pdf", document_id="bio"))
    history = [
        ConversationTurn(role=Role.USER, content="What is a cell?"),
        ConversationTurn(role=Role.ASSISTANT, content="The basic unit of life."),
    ]

    text = asyncio.run(service.query("bio", "energy", history=history))

    assert text.endswith("Recent conversation:\nuser: What is a cell?\nassistant: The basic unit of life.")


def test_unopenable_document_surfaces_error(service) -> None:
    with pytest.raises(DocumentLoadError):
        asyncio.run(service.ingest("missing.pdf"))
    assert service.get_index_stats().entry_count == 0


def test_newer_ingestion_supersedes_in_progress_one(service, renderer) -> None:
    async def scenario():
        gate = asyncio.Event()
        renderer.documents["slow.pdf"] = FakeDocument([GatedPage(PAGES[0], gate), FakePage(PAGES[1])])
        renderer.add("fast.pdf", PAGES[2:])

        slow = asyncio.create_task(service.ingest("slow.pdf", document_id="slow"))
        await asyncio.sleep(0)
        fast = await service.ingest("fast.pdf", document_id="fast")
        gate.set()
        with pytest.raises(IngestionSuperseded):
            await slow
        return fast

    fast = asyncio.run(scenario())

    assert service.active_document is fast
    assert service.get_index_stats().document_ids == ("fast",)
    assert service.index.get("slow") == ()


def test_answer_records_history_and_calls_model(service, renderer) -> None:
    renderer.add("bio.pdf", PAGES)
    asyncio.run(service.ingest("bio.pdf", document_id="bio"))

    result = asyncio.run(service.answer("bio", "How does the plant use light?"))

    assert result.answer.startswith(MOCK_PREFIX.strip())
    assert result.max_tokens == service.settings.llm_max_tokens
    assert "Page 1:" in result.grounding
    prompt = service.llm.prompts[-1]
    assert result.grounding in prompt
    assert prompt.rstrip().endswith("User: How does the plant use light?\nAssistant:")
    history = service.history_for("bio")
    assert [turn.role for turn in history] == [Role.USER, Role.ASSISTANT]

    asyncio.run(service.answer("bio", "And water?"))
    assert "user: How does the plant use light?" in service.llm.prompts[-1]


def test_answer_wraps_model_failure(service, renderer) -> None:
    service.llm = MockLLMAdapter(fail=True)

    with pytest.raises(ModelCallFailure):
        asyncio.run(service.answer("bio", "anything"))
    assert len(service.history_for("bio")) == 0


def test_clear_removes_document(service, renderer) -> None:
    renderer.add("bio.pdf", PAGES)
    asyncio.run(service.ingest("bio.pdf", document_id="bio"))

    service.clear("bio")

    assert service.get_index_stats().entry_count == 0
    assert service.active_document is None
    assert service.get_document("bio") is None


class SlowPage(FakePage):
    """Page whose synchronous image lookup blocks like a real native call."""

    def embedded_images(self) -> List[EmbeddedImage]:
        time.sleep(0.2)
        return []


def test_synchronous_page_work_does_not_block_event_loop(service, renderer) -> None:
    renderer.documents["slow.pdf"] = FakeDocument([SlowPage(text) for text in PAGES])

    async def scenario() -> int:
        ticks = 0

        async def ticker() -> None:
            nonlocal ticks
            while True:
                await asyncio.sleep(0.01)
                ticks += 1

        task = asyncio.create_task(ticker())
        try:
            await service.ingest("slow.pdf", document_id="slow")
        finally:
            task.cancel()
        return ticks

    assert asyncio.run(scenario()) > 10
    assert len(service.index.get("slow")) == 3


def test_newer_ingestion_supersedes_slow_synchronous_run(service, renderer) -> None:
    renderer.documents["slow.pdf"] = FakeDocument([SlowPage(PAGES[0]), FakePage(PAGES[1])])
    renderer.add("fast.pdf", PAGES[2:])

    async def scenario():
        slow = asyncio.create_task(service.ingest("slow.pdf", document_id="slow"))
        await asyncio.sleep(0.05)
        fast = await service.ingest("fast.pdf", document_id="fast")
        with pytest.raises(IngestionSuperseded):
            await slow
        return fast

    fast = asyncio.run(scenario())

    assert service.active_document is fast
    assert service.get_index_stats().document_ids == ("fast",)


def test_answers_for_unknown_documents_keep_no_history(service) -> None:
    async def scenario() -> None:
        for number in range(50):
            await service.answer(f"missing-{number}", "hi")

    asyncio.run(scenario())

    assert service._histories == {}
    assert service.get_index_stats().entry_count == 0


def test_evicted_document_drops_its_history(tmp_path, renderer, ocr_engine, embedder) -> None:
    settings = Settings(data_dir=tmp_path / "data", log_dir=tmp_path / "logs", index_max_documents=1)
    service = RetrievalService(
        settings=settings, renderer=renderer, embedder=embedder, ocr_engine=ocr_engine, llm=MockLLMAdapter()
    )
    renderer.add("a.pdf", PAGES[:1])
    renderer.add("b.pdf", PAGES[1:2])
    asyncio.run(service.ingest("a.pdf", document_id="a"))
    asyncio.run(service.answer("a", "What about light?"))
    assert len(service.history_for("a")) == 2

    asyncio.run(service.ingest("b.pdf", document_id="b"))

    assert service.get_index_stats().document_ids == ("b",)
    assert "a" not in service._histories
    assert len(service.history_for("a")) == 0
