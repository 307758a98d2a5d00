"""
Index Gateway contract.

The pipeline only ever talks to a vector store through these two calls, so
any backend (local FAISS, a hosted vector database) can be swapped in
without touching chunking, retrieval or generation.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Optional, Sequence

from docvault.schemas import EmbeddingVector, IndexedRecord, Match

MetadataFilter = dict[str, Any]


class IndexGateway(ABC):
    """Upsert vectors with metadata; query by similarity with an equality filter."""

    dimensions: int

    @abstractmethod
    def upsert(self, records: Sequence[IndexedRecord]) -> None:
        """
        Insert or overwrite records by id.  Raises a DocVaultError on failure.
        """

    @abstractmethod
    def query(
        self,
        vector: EmbeddingVector,
        top_k: int,
        metadata_filter: Optional[MetadataFilter] = None,
    ) -> list[Match]:
        """
        Return at most top_k matches sorted by descending score.

        metadata_filter restricts results to records whose metadata fields
        equal the given values exactly; None searches the whole vault.
        """


def metadata_matches(metadata: dict[str, Any], metadata_filter: Optional[MetadataFilter]) -> bool:
    if not metadata_filter:
        return True
    return all(metadata.get(key) == value for key, value in metadata_filter.items())
