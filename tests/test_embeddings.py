from __future__ import annotations

import builtins
import sys
from types import ModuleType

import pytest

from docground import embeddings
from docground.config import Settings
from docground.errors import EmbeddingUnavailable


def test_hash_embedder_is_deterministic_with_fixed_dimension() -> None:
    embedder = embeddings.HashEmbedder(dimension=16)

    first = embedder.embed("same text")
    second = embeddings.HashEmbedder(dimension=16).embed("same text")

    assert first == second
    assert len(first) == embedder.dimension == 16
    assert embedder.embed("other text") != first
    assert isinstance(embedder, embeddings.Embedder)


def test_hash_embedder_rejects_invalid_dimension() -> None:
    with pytest.raises(ValueError):
        embeddings.HashEmbedder(dimension=0)


def test_get_embedder_defaults_to_hash_without_importing_models(monkeypatch: pytest.MonkeyPatch) -> None:
    real_import = builtins.__import__

    def _guarded_import(name: str, *args, **kwargs):
        if name == "sentence_transformers":
            raise AssertionError("sentence-transformers should not be imported for the hash backend")
        return real_import(name, *args, **kwargs)

    monkeypatch.setattr(builtins, "__import__", _guarded_import)

    embedder = embeddings.get_embedder(Settings(embedding_dimension=32))

    assert isinstance(embedder, embeddings.HashEmbedder)
    assert embedder.dimension == 32


def test_get_embedder_rejects_unknown_backend() -> None:
    with pytest.raises(ValueError):
        embeddings.get_embedder(Settings(embedding_backend="bogus"))


class _StubModel:
    def __init__(self, model_name: str, device=None) -> None:
        self.model_name = model_name
        self.fail = False

    def get_sentence_embedding_dimension(self) -> int:
        return 3

    def encode(self, texts, **_):
        if self.fail:
            raise RuntimeError("CUDA out of memory")
        return [_Array([float(len(text)), 1.0, 0.0]) for text in texts]


class _Array(list):
    def tolist(self):
        return list(self)


def test_sentence_transformer_embedder_wraps_model(monkeypatch: pytest.MonkeyPatch) -> None:
    module = ModuleType("sentence_transformers")
    module.SentenceTransformer = _StubModel
    monkeypatch.setitem(sys.modules, "sentence_transformers", module)

    embedder = embeddings.get_embedder(Settings(embedding_backend="sentence-transformers"))

    assert embedder.dimension == 3
    assert embedder.embed("abcd") == [4.0, 1.0, 0.0]

    embedder._model.fail = True
    with pytest.raises(EmbeddingUnavailable):
        embedder.embed("abcd")


def test_sentence_transformer_missing_dependency_is_unavailable(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setitem(sys.modules, "sentence_transformers", None)

    with pytest.raises(EmbeddingUnavailable):
        embeddings.SentenceTransformerEmbedder("any-model")
