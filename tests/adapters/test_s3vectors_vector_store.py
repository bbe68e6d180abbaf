"""
Unit tests for S3VectorsVectorStoreAdapter.

Uses a mocked s3vectors client, no live AWS calls.
"""

from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from adapters.s3vectors_vector_store import MAX_QUERY_TOP_K, S3VectorsVectorStoreAdapter
from domain.models import VectorRecord
from shared_utils.error_handler import ExternalServiceError


class TestS3VectorsVectorStoreAdapter:
    @pytest.fixture()
    def mock_client(self) -> MagicMock:
        return MagicMock()

    @pytest.fixture()
    def adapter(self, mock_client: MagicMock) -> S3VectorsVectorStoreAdapter:
        return S3VectorsVectorStoreAdapter(
            vector_bucket_name="test-bucket",
            index_name="transcripts",
            s3vectors_client=mock_client,
        )

    @pytest.mark.asyncio
    async def test_upsert_batches_and_cleans_metadata(self, adapter, mock_client) -> None:
        vectors = [
            VectorRecord(
                key=f"k{i}",
                embedding=[0.1, 0.2],
                metadata={"text": "x" * 5000, "speaker": None, "room_name": "r"},
            )
            for i in range(150)
        ]
        await adapter.upsert(vectors)

        assert mock_client.put_vectors.call_count == 2
        first = mock_client.put_vectors.call_args_list[0][1]
        assert first["vectorBucketName"] == "test-bucket"
        assert len(first["vectors"]) == 100
        record = first["vectors"][0]
        assert record["data"] == {"float32": [0.1, 0.2]}
        assert len(record["metadata"]["text"]) == 1000
        assert "speaker" not in record["metadata"]

    @pytest.mark.asyncio
    async def test_upsert_empty_is_noop(self, adapter, mock_client) -> None:
        await adapter.upsert([])
        mock_client.put_vectors.assert_not_called()

    @pytest.mark.asyncio
    async def test_upsert_client_error(self, adapter, mock_client) -> None:
        mock_client.put_vectors.side_effect = ClientError(
            {"Error": {"Code": "500", "Message": "fail"}}, "PutVectors"
        )
        with pytest.raises(ExternalServiceError, match="S3Vectors"):
            await adapter.upsert([VectorRecord(key="k", embedding=[1.0])])

    @pytest.mark.asyncio
    async def test_query_converts_distance_and_applies_threshold(self, adapter, mock_client) -> None:
        mock_client.query_vectors.return_value = {
            "vectors": [
                {"key": "near", "distance": 0.1, "metadata": {"text": "hello"}},
                {"key": "far", "distance": 0.9, "metadata": {}},
            ]
        }
        results = await adapter.query([1.0, 0.0], top_k=500, threshold=0.5)

        assert [r.key for r in results] == ["near"]
        assert results[0].score == pytest.approx(0.9)
        params = mock_client.query_vectors.call_args[1]
        assert params["topK"] == MAX_QUERY_TOP_K
        assert "filter" not in params

    @pytest.mark.asyncio
    async def test_query_filter_expression(self, adapter, mock_client) -> None:
        mock_client.query_vectors.return_value = {"vectors": []}
        await adapter.query([1.0], filter={"room_name": "r"})
        assert mock_client.query_vectors.call_args[1]["filter"] == {"room_name": {"$eq": "r"}}

        await adapter.query([1.0], filter={"room_name": "r", "kind": {"$in": ["summary"]}})
        assert mock_client.query_vectors.call_args[1]["filter"] == {
            "$and": [{"room_name": {"$eq": "r"}}, {"kind": {"$in": ["summary"]}}]
        }

    @pytest.mark.asyncio
    async def test_delete_by_filter_pages_and_matches(self, adapter, mock_client) -> None:
        mock_client.list_vectors.side_effect = [
            {
                "vectors": [
                    {"key": "a", "metadata": {"meeting_id": "m-1"}},
                    {"key": "b", "metadata": {"meeting_id": "m-2"}},
                ],
                "nextToken": "page-2",
            },
            {"vectors": [{"key": "c", "metadata": {"meeting_id": "m-1"}}]},
        ]

        deleted = await adapter.delete_by_filter({"meeting_id": "m-1"})

        assert deleted == 2
        assert mock_client.list_vectors.call_args_list[1][1]["nextToken"] == "page-2"
        mock_client.delete_vectors.assert_called_once_with(
            vectorBucketName="test-bucket", indexName="transcripts", keys=["a", "c"]
        )

    @pytest.mark.asyncio
    async def test_query_client_error(self, adapter, mock_client) -> None:
        mock_client.query_vectors.side_effect = ClientError(
            {"Error": {"Code": "ValidationException", "Message": "bad"}}, "QueryVectors"
        )
        with pytest.raises(ExternalServiceError, match="query failed"):
            await adapter.query([1.0])
