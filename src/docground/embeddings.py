"""Embedding backends converting text into fixed-dimension vectors."""
from __future__ import annotations

import hashlib
import logging
import random
from typing import Awaitable, List, Protocol, Union, runtime_checkable

from docground.config import Settings
from docground.errors import EmbeddingUnavailable

LOGGER = logging.getLogger(__name__)

DEFAULT_MODEL_NAME = "sentence-transformers/all-MiniLM-L6-v2"
HASH_DIMENSION = 768


@runtime_checkable
class Embedder(Protocol):
    """Contract shared by every embedding backend.

    ``embed`` may be a plain or a coroutine function; callers await the result
    when needed. Implementations raise :class:`EmbeddingUnavailable` on failure.
    """

    model_name: str

    @property
    def dimension(self) -> int:
        ...

    def embed(self, text: str) -> Union[List[float], Awaitable[List[float]]]:
        ...


class HashEmbedder:
    """Deterministic, non-semantic embeddings for structural testing only.

    Vectors are derived from a SHA-256 seed of the text, so identical texts map
    to identical vectors while similarity between different texts is noise.
    """

    model_name = "deterministic-hash"

    def __init__(self, dimension: int = HASH_DIMENSION) -> None:
        if dimension <= 0:
            raise ValueError("dimension must be a positive integer")
        self._dimension = dimension

    @property
    def dimension(self) -> int:
        return self._dimension

    def embed(self, text: str) -> List[float]:
        seed = int.from_bytes(hashlib.sha256(text.encode("utf-8")).digest(), "big")
        rng = random.Random(seed)
        return [rng.uniform(-0.5, 0.5) for _ in range(self._dimension)]


class SentenceTransformerEmbedder:
    """Wrapper around a sentence-transformers model."""

    def __init__(self, model_name_or_path: str = DEFAULT_MODEL_NAME, *, device: str | None = None) -> None:
        try:
            from sentence_transformers import SentenceTransformer  # type: ignore import-not-found
        except ImportError as error:
            raise EmbeddingUnavailable(
                "sentence-transformers is not installed; install the 'heavy' extra",
                cause=error,
            ) from error

        try:
            self._model = SentenceTransformer(model_name_or_path, device=device)
        except Exception as error:
            raise EmbeddingUnavailable(
                f"Failed to initialise sentence-transformers model '{model_name_or_path}'",
                cause=error,
            ) from error

        self.model_name = model_name_or_path
        self._dimension = int(self._model.get_sentence_embedding_dimension())
        LOGGER.info("Loaded embedding model %s (dimension %s)", model_name_or_path, self._dimension)

    @property
    def dimension(self) -> int:
        return self._dimension

    def embed(self, text: str) -> List[float]:
        try:
            vector = self._model.encode(
                [text],
                convert_to_numpy=True,
                show_progress_bar=False,
                normalize_embeddings=False,
            )
        except Exception as error:
            raise EmbeddingUnavailable("Embedding model failed to encode text", cause=error) from error
        return [float(value) for value in vector[0].tolist()]


def get_embedder(settings: Settings) -> Embedder:
    """Build the embedding backend selected by ``EMBEDDING_BACKEND``."""

    backend = settings.embedding_backend
    if backend == "hash":
        return HashEmbedder(settings.embedding_dimension)
    if backend in {"sentence-transformers", "sentence_transformers"}:
        return SentenceTransformerEmbedder(
            settings.embedding_model_path, device=settings.embedding_device
        )
    raise ValueError(f"Unsupported EMBEDDING_BACKEND: {backend!r}")


__all__ = [
    "Embedder",
    "HashEmbedder",
    "SentenceTransformerEmbedder",
    "get_embedder",
]
