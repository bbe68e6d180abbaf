"""
In-memory vector store adapter for local development.

Implements VectorStorePort using a plain dict + brute-force cosine
similarity. Used when S3 Vectors is unavailable (local dev, CI).

NOT for production: no persistence across restarts.
"""

from __future__ import annotations

import asyncio
import math
from typing import Any, Dict, List, Optional, Tuple

from domain.models import VectorMatch, VectorRecord
from shared_utils.logging_utils import get_scoped_logger
from shared_utils.constants import LogScope


logger = get_scoped_logger(LogScope.ADAPTER)


def matches_filter(metadata: Dict[str, Any], filter: Optional[Dict[str, Any]]) -> bool:
    """Evaluate a flat metadata filter (equality, ``$eq``, ``$in``)."""
    if not filter:
        return True
    for field, condition in filter.items():
        value = metadata.get(field)
        if isinstance(condition, dict):
            if "$eq" in condition and value != condition["$eq"]:
                return False
            if "$in" in condition and value not in condition["$in"]:
                return False
        elif value != condition:
            return False
    return True


class InMemoryVectorStoreAdapter:
    """Brute-force in-memory implementation of VectorStorePort.

    Stores vectors in a dict keyed by vector key. Upserting an existing key
    overwrites it, so re-indexing never grows the store.
    """

    def __init__(self) -> None:
        self._store: Dict[str, VectorRecord] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._store)

    # ------------------------------------------------------------------
    # VectorStorePort implementation
    # ------------------------------------------------------------------

    async def upsert(self, vectors: List[VectorRecord]) -> None:
        """Store vectors in memory."""
        async with self._lock:
            for v in vectors:
                self._store[v.key] = v
        logger.info("inmemory_vectors_upserted", count=len(vectors), total=len(self._store))

    async def query(
        self,
        embedding: List[float],
        top_k: int = 10,
        filter: Optional[Dict[str, Any]] = None,
        threshold: float = 0.0,
    ) -> List[VectorMatch]:
        """Brute-force cosine similarity search."""
        scored: List[Tuple[float, VectorRecord]] = []
        for v in list(self._store.values()):
            if not matches_filter(v.metadata, filter):
                continue
            sim = self._cosine_similarity(embedding, v.embedding)
            if sim >= threshold:
                scored.append((sim, v))

        scored.sort(key=lambda x: x[0], reverse=True)

        results = [
            VectorMatch(key=v.key, score=sim, metadata=dict(v.metadata))
            for sim, v in scored[:top_k]
        ]
        logger.info(
            "inmemory_vector_query",
            top_k=top_k,
            threshold=threshold,
            results=len(results),
            filter=filter,
        )
        return results

    async def delete_by_filter(self, filter: Dict[str, Any]) -> int:
        """Remove all vectors matching *filter*."""
        async with self._lock:
            keys = [k for k, v in self._store.items() if matches_filter(v.metadata, filter)]
            for k in keys:
                del self._store[k]
        logger.info(
            "inmemory_vectors_deleted",
            filter=filter,
            deleted_count=len(keys),
        )
        return len(keys)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _cosine_similarity(a: List[float], b: List[float]) -> float:
        """Compute cosine similarity between two vectors."""
        if len(a) != len(b) or not a:
            return 0.0
        dot = sum(x * y for x, y in zip(a, b))
        norm_a = math.sqrt(sum(x * x for x in a))
        norm_b = math.sqrt(sum(x * x for x in b))
        if norm_a == 0.0 or norm_b == 0.0:
            return 0.0
        return dot / (norm_a * norm_b)
