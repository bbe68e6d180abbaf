"""
Port interface for vector index operations.

Implementations: InMemoryVectorStoreAdapter, S3VectorsVectorStoreAdapter (adapters/)
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from domain.models import VectorMatch, VectorRecord


@runtime_checkable
class VectorStorePort(Protocol):
    """Abstract interface for embedding storage and similarity search.

    Filters are flat metadata dicts. A plain value means equality;
    ``{"$eq": v}`` and ``{"$in": [...]}`` are also accepted.
    """

    async def upsert(self, vectors: List[VectorRecord]) -> None:
        """Insert or overwrite vectors by key.

        Args:
            vectors: Records to store.

        Raises:
            ExternalServiceError: If the index is unreachable.
        """
        ...

    async def query(
        self,
        embedding: List[float],
        top_k: int = 10,
        filter: Optional[Dict[str, Any]] = None,
        threshold: float = 0.0,
    ) -> List[VectorMatch]:
        """Similarity search.

        Args:
            embedding: Query vector.
            top_k: Maximum matches to return.
            filter: Metadata filter.
            threshold: Minimum similarity score (cosine, 0..1) to keep.

        Returns:
            Matches with ``score >= threshold``, best first.
        """
        ...

    async def delete_by_filter(self, filter: Dict[str, Any]) -> int:
        """Delete every vector matching *filter*.

        Returns:
            Number of vectors removed.
        """
        ...
