"""Document index and similarity search."""
from __future__ import annotations

from .ranking import SimilarityRanker
from .store import DocumentIndex, LRUDocumentIndex

__all__ = ["DocumentIndex", "LRUDocumentIndex", "SimilarityRanker"]
