import random
import string

import pytest

from docground.ingest.chunking import ChunkingConfig, WordChunker, chunk_page_text, iter_word_spans


def generate_text(words: int = 200, seed: int = 42) -> str:
    rng = random.Random(seed)
    alphabet = string.ascii_letters + "абвгдежзийклмнопрстуфхцчшщъьюя"
    separators = [" ", "  ", "\n", "\t", " \n "]
    tokens = []
    for _ in range(words):
        length = rng.randint(1, 14)
        tokens.append("".join(rng.choice(alphabet) for _ in range(length)))
    text = ""
    for token in tokens:
        text += token + rng.choice(separators)
    return text


@pytest.mark.parametrize("seed", range(5))
@pytest.mark.parametrize("max_chars", [1, 10, 64, 512])
def test_chunks_reproduce_word_sequence(seed: int, max_chars: int) -> None:
    text = generate_text(150, seed)

    chunks = chunk_page_text(text, max_chars)

    words = [word for chunk in chunks for word in chunk.split()]
    assert words == text.split()


def test_chunks_respect_budget_unless_single_word() -> None:
    text = generate_text(300)

    for chunk in chunk_page_text(text, 50):
        assert len(" ".join(chunk.split())) <= 50 or len(chunk.split()) == 1


def test_oversized_word_becomes_its_own_chunk() -> None:
    long_word = "a" * 30
    chunks = chunk_page_text(f"one {long_word} two", 10)

    assert chunks == ["one", long_word, "two"]


def test_greedy_accumulation_closes_chunk_at_budget() -> None:
    assert chunk_page_text("aa bb cc dd", 5) == ["aa bb", "cc dd"]
    assert chunk_page_text("aa bb cc dd", 4) == ["aa", "bb", "cc", "dd"]


@pytest.mark.parametrize("text", ["", "   ", "\n\t "])
def test_empty_text_yields_no_chunks(text: str) -> None:
    assert chunk_page_text(text) == []


def test_invalid_budget_is_rejected() -> None:
    with pytest.raises(ValueError):
        list(iter_word_spans("text", 0))
    with pytest.raises(ValueError):
        WordChunker(ChunkingConfig(max_chars=-1))


def test_chunk_offsets_are_true_character_offsets() -> None:
    text = "  Cells   divide\nby mitosis and meiosis.  "
    chunker = WordChunker(ChunkingConfig(max_chars=16))

    chunks = chunker.chunk(text, document_id="doc", page_number=3)

    assert [chunk.chunk_index for chunk in chunks] == list(range(len(chunks)))
    previous_end = 0
    for chunk in chunks:
        assert 0 <= chunk.char_start < chunk.char_end <= len(text)
        assert chunk.char_start >= previous_end
        assert text[chunk.char_start : chunk.char_end] == chunk.text
        assert chunk.page_number == 3
        previous_end = chunk.char_end
    assert chunks[0].char_start == 2
