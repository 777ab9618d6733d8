"""In-memory store of embedding records keyed by document id."""
from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from typing import Dict, Iterable, Tuple

from docground.models import EmbeddingRecord, IndexStats

LOGGER = logging.getLogger(__name__)

Records = Tuple[EmbeddingRecord, ...]


def _validate_dimensions(document_id: str, records: Records) -> None:
    if not records:
        return
    expected = records[0].dimension
    for record in records:
        if record.dimension != expected:
            raise ValueError(
                f"Mixed embedding dimensions for document '{document_id}': "
                f"{expected} and {record.dimension}"
            )


class DocumentIndex:
    """Map of document id to its ordered embedding records.

    ``put`` swaps the whole entry in one assignment, so readers holding the
    tuple returned by ``get`` keep a consistent snapshot.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, Records] = {}
        self._lock = threading.RLock()

    def put(self, document_id: str, records: Iterable[EmbeddingRecord]) -> None:
        snapshot = tuple(records)
        _validate_dimensions(document_id, snapshot)
        with self._lock:
            replaced = document_id in self._entries
            self._entries[document_id] = snapshot
        LOGGER.info(
            "Indexed %s records for document %s%s",
            len(snapshot),
            document_id,
            " (replaced previous entry)" if replaced else "",
        )

    def get(self, document_id: str) -> Records:
        with self._lock:
            return self._entries.get(document_id, ())

    def clear(self, document_id: str) -> None:
        with self._lock:
            removed = self._entries.pop(document_id, None)
        if removed is not None:
            LOGGER.info("Cleared index entry for document %s", document_id)

    def stats(self) -> IndexStats:
        with self._lock:
            return IndexStats(entry_count=len(self._entries), document_ids=tuple(self._entries))

    def __contains__(self, document_id: object) -> bool:
        with self._lock:
            return document_id in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class LRUDocumentIndex(DocumentIndex):
    """Document index that evicts the least recently used document when full."""

    def __init__(self, max_documents: int) -> None:
        if max_documents <= 0:
            raise ValueError("max_documents must be a positive integer")
        super().__init__()
        self.max_documents = max_documents
        self._entries: "OrderedDict[str, Records]" = OrderedDict()

    def put(self, document_id: str, records: Iterable[EmbeddingRecord]) -> None:
        super().put(document_id, records)
        with self._lock:
            self._entries.move_to_end(document_id)
            while len(self._entries) > self.max_documents:
                evicted, _ = self._entries.popitem(last=False)
                LOGGER.info("Evicted least recently used document %s from index", evicted)

    def get(self, document_id: str) -> Records:
        with self._lock:
            records = self._entries.get(document_id)
            if records is None:
                return ()
            self._entries.move_to_end(document_id)
            return records


__all__ = ["DocumentIndex", "LRUDocumentIndex", "Records"]
