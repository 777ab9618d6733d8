"""Cosine similarity search over a document's embedding records."""
from __future__ import annotations

import logging
from typing import List, Sequence

import numpy as np

from docground.models import EmbeddingRecord, ScoredRecord

LOGGER = logging.getLogger(__name__)


class SimilarityRanker:
    """Nearest-neighbour search by cosine similarity."""

    def __init__(self, default_top_k: int = 5) -> None:
        self.default_top_k = default_top_k

    def search_with_scores(
        self,
        query_vector: Sequence[float],
        records: Sequence[EmbeddingRecord],
        top_k: int | None = None,
    ) -> List[ScoredRecord]:
        k = self.default_top_k if top_k is None else top_k
        if k <= 0 or not records:
            return []

        query = np.asarray(query_vector, dtype=np.float64)
        query_norm = np.linalg.norm(query)
        if query_norm == 0.0:
            LOGGER.debug("Query vector is all zeros; similarity undefined for every record")
            return []

        matrix = np.asarray([record.vector for record in records], dtype=np.float64)
        if matrix.ndim != 2 or matrix.shape[1] != query.shape[0]:
            raise ValueError(
                f"Query dimension {query.shape[0]} does not match indexed dimension "
                f"{matrix.shape[1] if matrix.ndim == 2 else 'mixed'}"
            )

        norms = np.linalg.norm(matrix, axis=1)
        valid = norms > 0.0
        if not valid.any():
            return []

        scores = np.full(len(records), -np.inf)
        scores[valid] = (matrix[valid] @ query) / (norms[valid] * query_norm)
        # stable sort keeps original chunk order for equal scores
        order = np.argsort(-scores, kind="stable")

        results: List[ScoredRecord] = []
        for position in order:
            if not valid[position]:
                continue
            results.append(ScoredRecord(record=records[position], score=float(scores[position])))
            if len(results) >= k:
                break
        return results

    def search(
        self,
        query_vector: Sequence[float],
        records: Sequence[EmbeddingRecord],
        top_k: int | None = None,
    ) -> List[EmbeddingRecord]:
        return [item.record for item in self.search_with_scores(query_vector, records, top_k)]


__all__ = ["SimilarityRanker"]
