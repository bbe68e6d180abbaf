"""
S3 Vectors-backed vector store adapter.

Implements VectorStorePort using the Amazon S3 Vectors boto3 client
for embedding storage and ANN retrieval. The index is created with the
cosine distance metric; scores are reported as ``1 - distance``.
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional

import boto3
from botocore.exceptions import ClientError

from adapters.in_memory_vector_store import matches_filter
from domain.models import VectorMatch, VectorRecord
from shared_utils.logging_utils import get_scoped_logger
from shared_utils.constants import Defaults, LogScope
from shared_utils.error_handler import ExternalServiceError


logger = get_scoped_logger(LogScope.ADAPTER)

# query_vectors rejects larger topK values
MAX_QUERY_TOP_K = 100


class S3VectorsVectorStoreAdapter:
    """Amazon S3 Vectors implementation of VectorStorePort.

    Uses the ``s3vectors`` boto3 client for:
    - ``put_vectors``  – store embeddings with metadata (overwrites by key)
    - ``query_vectors`` – ANN search with metadata filters
    - ``list_vectors`` + ``delete_vectors`` – delete by metadata filter
    """

    def __init__(
        self,
        vector_bucket_name: str,
        index_name: str,
        region: str = Defaults.AWS_REGION,
        endpoint_url: str = "",
        s3vectors_client: Optional[object] = None,
    ) -> None:
        self._bucket = vector_bucket_name
        self._index = index_name
        client_kwargs: dict = {"region_name": region}
        if endpoint_url:
            client_kwargs["endpoint_url"] = endpoint_url
        self._client = s3vectors_client or boto3.client(
            "s3vectors", **client_kwargs
        )

    # ------------------------------------------------------------------
    # VectorStorePort implementation
    # ------------------------------------------------------------------

    async def upsert(self, vectors: List[VectorRecord]) -> None:
        """Store embedding vectors in the S3 Vectors index."""
        if vectors:
            await asyncio.to_thread(self._put, vectors)

    async def query(
        self,
        embedding: List[float],
        top_k: int = 10,
        filter: Optional[Dict[str, Any]] = None,
        threshold: float = 0.0,
    ) -> List[VectorMatch]:
        """ANN search; the similarity threshold is applied client-side."""
        return await asyncio.to_thread(self._query, embedding, top_k, filter, threshold)

    async def delete_by_filter(self, filter: Dict[str, Any]) -> int:
        """Delete all vectors whose metadata matches *filter*."""
        return await asyncio.to_thread(self._delete_by_filter, filter)

    # ------------------------------------------------------------------
    # Blocking boto3 calls (run in a worker thread)
    # ------------------------------------------------------------------

    def _put(self, vectors: List[VectorRecord]) -> None:
        records = [
            {
                "key": v.key,
                "data": {"float32": [float(x) for x in v.embedding]},
                "metadata": self._clean_metadata(v.metadata),
            }
            for v in vectors
        ]
        try:
            for i in range(0, len(records), Defaults.VECTOR_WRITE_BATCH_SIZE):
                batch = records[i : i + Defaults.VECTOR_WRITE_BATCH_SIZE]
                self._client.put_vectors(
                    vectorBucketName=self._bucket,
                    indexName=self._index,
                    vectors=batch,
                )
            logger.info(
                "s3vectors_upserted",
                count=len(vectors),
                index=self._index,
            )
        except ClientError as exc:
            logger.error("s3vectors_upsert_failed", error=str(exc))
            raise ExternalServiceError(
                "S3Vectors", f"Failed to store vectors: {exc}"
            ) from exc

    def _query(
        self,
        embedding: List[float],
        top_k: int,
        filter: Optional[Dict[str, Any]],
        threshold: float,
    ) -> List[VectorMatch]:
        query_params: Dict[str, Any] = {
            "vectorBucketName": self._bucket,
            "indexName": self._index,
            "queryVector": {"float32": [float(x) for x in embedding]},
            "topK": min(top_k, MAX_QUERY_TOP_K),
            "returnMetadata": True,
            "returnDistance": True,
        }
        if filter:
            query_params["filter"] = self._to_filter_expression(filter)

        try:
            response = self._client.query_vectors(**query_params)
        except ClientError as exc:
            logger.error("s3vectors_query_failed", error=str(exc))
            raise ExternalServiceError(
                "S3Vectors", f"Vector query failed: {exc}"
            ) from exc

        results: List[VectorMatch] = []
        for hit in response.get("vectors", []):
            score = 1.0 - float(hit.get("distance", 1.0))
            if score < threshold:
                continue
            results.append(
                VectorMatch(
                    key=hit.get("key", ""),
                    score=score,
                    metadata=hit.get("metadata", {}) or {},
                )
            )
        logger.info(
            "s3vectors_query",
            top_k=top_k,
            threshold=threshold,
            results=len(results),
            filter=filter,
        )
        return results

    def _delete_by_filter(self, filter: Dict[str, Any]) -> int:
        keys: List[str] = []
        try:
            paginator_kwargs: Dict[str, Any] = {
                "vectorBucketName": self._bucket,
                "indexName": self._index,
                "returnMetadata": True,
            }
            while True:
                response = self._client.list_vectors(**paginator_kwargs)
                for item in response.get("vectors", []):
                    if matches_filter(item.get("metadata", {}) or {}, filter):
                        keys.append(item["key"])
                next_token = response.get("nextToken")
                if not next_token:
                    break
                paginator_kwargs["nextToken"] = next_token

            for i in range(0, len(keys), Defaults.VECTOR_WRITE_BATCH_SIZE):
                self._client.delete_vectors(
                    vectorBucketName=self._bucket,
                    indexName=self._index,
                    keys=keys[i : i + Defaults.VECTOR_WRITE_BATCH_SIZE],
                )
        except ClientError as exc:
            logger.error("s3vectors_delete_failed", filter=filter, error=str(exc))
            raise ExternalServiceError(
                "S3Vectors", f"Failed to delete vectors: {exc}"
            ) from exc

        logger.info("s3vectors_deleted", filter=filter, deleted_count=len(keys))
        return len(keys)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _to_filter_expression(filter: Dict[str, Any]) -> Dict[str, Any]:
        """Plain values become ``$eq``; several fields are ``$and``-ed."""
        clauses = [
            {field: cond if isinstance(cond, dict) else {"$eq": cond}}
            for field, cond in filter.items()
        ]
        return clauses[0] if len(clauses) == 1 else {"$and": clauses}

    @staticmethod
    def _clean_metadata(metadata: Dict[str, Any]) -> Dict[str, Any]:
        """Drop None values and cap the text field."""
        cleaned = {k: v for k, v in metadata.items() if v is not None}
        if isinstance(cleaned.get("text"), str):
            cleaned["text"] = cleaned["text"][: Defaults.VECTOR_TEXT_MAX_CHARS]
        return cleaned
