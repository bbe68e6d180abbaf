"""
Unit tests for the DynamoDB adapters.

Uses a mocked boto3 resource, no live AWS calls.
"""

import json
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from adapters.dynamo_metadata_store import DynamoMetadataStoreAdapter
from adapters.dynamo_session_store import DynamoSessionStoreAdapter
from domain.models import ChatMessage, MeetingSummary, ProcessingStatus, Task
from shared_utils.error_handler import ExternalServiceError


def _client_error(code: str, operation: str = "UpdateItem") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


# ======================================================================
# DynamoMetadataStoreAdapter
# ======================================================================

class TestDynamoMetadataStoreAdapter:
    @pytest.fixture()
    def tables(self) -> dict:
        return {"rooms": MagicMock(), "meetings": MagicMock(), "tasks": MagicMock()}

    @pytest.fixture()
    def mock_dynamo(self, tables: dict) -> MagicMock:
        resource = MagicMock()
        resource.Table.side_effect = lambda name: tables[name]
        return resource

    @pytest.fixture()
    def adapter(self, mock_dynamo: MagicMock) -> DynamoMetadataStoreAdapter:
        return DynamoMetadataStoreAdapter(
            rooms_table="rooms",
            meetings_table="meetings",
            tasks_table="tasks",
            dynamodb_resource=mock_dynamo,
        )

    @pytest.mark.asyncio
    async def test_get_room(self, adapter, tables) -> None:
        tables["rooms"].get_item.return_value = {
            "Item": {"room_id": "room-1", "room_name": "daily-standup", "title": "Daily Standup"}
        }
        room = await adapter.get_room_by_name("daily-standup")
        assert room.room_id == "room-1"
        tables["rooms"].get_item.assert_called_once_with(Key={"room_name": "daily-standup"})

    @pytest.mark.asyncio
    async def test_get_room_missing(self, adapter, tables) -> None:
        tables["rooms"].get_item.return_value = {}
        assert await adapter.get_room_by_name("nope") is None

    @pytest.mark.asyncio
    async def test_get_meeting_without_transcripts_projects(self, adapter, tables) -> None:
        tables["meetings"].get_item.return_value = {
            "Item": {
                "meeting_id": "m-1",
                "room_id": "room-1",
                "started_at": "2026-01-15T09:00:00+00:00",
                "transcript_count": Decimal("5"),
            }
        }
        meeting = await adapter.get_meeting("m-1", include_transcripts=False)

        assert meeting.transcript_count == 5
        kwargs = tables["meetings"].get_item.call_args[1]
        assert "transcripts" not in kwargs["ExpressionAttributeNames"].values()
        assert "summary" in kwargs["ExpressionAttributeNames"].values()

    @pytest.mark.asyncio
    async def test_put_meeting_converts_floats(self, adapter, tables, sample_meeting, sample_transcripts) -> None:
        sample_transcripts[0].speaker_confidence = 0.87
        sample_meeting.transcripts = sample_transcripts
        await adapter.put_meeting(sample_meeting)

        item = tables["meetings"].put_item.call_args[1]["Item"]
        assert item["meeting_id"] == "m-1"
        assert item["processing_status"] == "pending"
        assert item["transcripts"][0]["speaker_confidence"] == Decimal("0.87")
        assert "summary" not in item

    @pytest.mark.asyncio
    async def test_put_item_client_error(self, adapter, tables, sample_meeting) -> None:
        tables["meetings"].put_item.side_effect = _client_error("500", "PutItem")
        with pytest.raises(ExternalServiceError, match="DynamoDB"):
            await adapter.put_meeting(sample_meeting)

    @pytest.mark.asyncio
    async def test_batch_get_retries_unprocessed_keys(self, adapter, mock_dynamo) -> None:
        def meeting(mid: str) -> dict:
            return {"meeting_id": mid, "room_id": "room-1", "started_at": "2026-01-15T09:00:00+00:00"}

        unprocessed = {"meetings": {"Keys": [{"meeting_id": "m-2"}]}}
        mock_dynamo.batch_get_item.side_effect = [
            {"Responses": {"meetings": [meeting("m-1")]}, "UnprocessedKeys": unprocessed},
            {"Responses": {"meetings": [meeting("m-2")]}, "UnprocessedKeys": {}},
        ]

        meetings = await adapter.get_meetings_by_ids(["m-2", "m-1", "m-2"])

        assert [m.meeting_id for m in meetings] == ["m-2", "m-1"]
        assert mock_dynamo.batch_get_item.call_count == 2
        assert mock_dynamo.batch_get_item.call_args_list[1][1]["RequestItems"] == unprocessed

    @pytest.mark.asyncio
    async def test_batch_get_empty_ids(self, adapter, mock_dynamo) -> None:
        assert await adapter.get_meetings_by_ids([]) == []
        mock_dynamo.batch_get_item.assert_not_called()

    @pytest.mark.asyncio
    async def test_list_room_meetings_pages_until_limit(self, adapter, tables) -> None:
        def meeting(mid: str) -> dict:
            return {"meeting_id": mid, "room_id": "room-1", "started_at": "2026-01-15T09:00:00+00:00"}

        tables["meetings"].query.side_effect = [
            {"Items": [meeting("m-3"), meeting("m-2")], "LastEvaluatedKey": {"meeting_id": "m-2"}},
            {"Items": [meeting("m-1")]},
        ]
        meetings = await adapter.list_meetings_by_room("room-1", limit=3)

        assert [m.meeting_id for m in meetings] == ["m-3", "m-2", "m-1"]
        second_call = tables["meetings"].query.call_args_list[1][1]
        assert second_call["ExclusiveStartKey"] == {"meeting_id": "m-2"}
        assert second_call["IndexName"] == "room_id-started_at-index"
        assert second_call["ScanIndexForward"] is False

    @pytest.mark.asyncio
    async def test_transition_status_conditional_write(self, adapter, tables) -> None:
        swapped = await adapter.transition_status(
            "m-1",
            ProcessingStatus.PENDING,
            ProcessingStatus.IN_PROGRESS,
            {"transcript_count": 5},
        )
        assert swapped is True
        kwargs = tables["meetings"].update_item.call_args[1]
        assert kwargs["ConditionExpression"] == "processing_status = :expected"
        assert kwargs["ExpressionAttributeValues"][":expected"] == "pending"
        assert set(kwargs["ExpressionAttributeNames"].values()) == {
            "transcript_count",
            "processing_status",
        }
        assert "in_progress" in kwargs["ExpressionAttributeValues"].values()

    @pytest.mark.asyncio
    async def test_transition_lost_race_returns_false(self, adapter, tables) -> None:
        tables["meetings"].update_item.side_effect = _client_error("ConditionalCheckFailedException")
        assert not await adapter.transition_status(
            "m-1", ProcessingStatus.PENDING, ProcessingStatus.IN_PROGRESS
        )

    @pytest.mark.asyncio
    async def test_update_other_client_error_raises(self, adapter, tables) -> None:
        tables["meetings"].update_item.side_effect = _client_error("ProvisionedThroughputExceededException")
        with pytest.raises(ExternalServiceError):
            await adapter.update_meeting("m-1", {"has_embeddings": True})

    @pytest.mark.asyncio
    async def test_update_guards_terminal_states(self, adapter, tables) -> None:
        await adapter.update_meeting("m-1", {"summary": MeetingSummary(content="done")})
        kwargs = tables["meetings"].update_item.call_args[1]
        assert "NOT processing_status IN (:completed, :failed)" in kwargs["ConditionExpression"]

        await adapter.update_meeting("m-1", {"has_embeddings": True}, allow_terminal=True)
        kwargs = tables["meetings"].update_item.call_args[1]
        assert kwargs["ConditionExpression"] == "attribute_exists(meeting_id)"

    @pytest.mark.asyncio
    async def test_tasks_round_trip(self, adapter, tables) -> None:
        await adapter.create_task(
            Task(task_id="t-1", room_id="room-1", meeting_id="m-1", title="Ship it", ai_confidence=0.8)
        )
        item = tables["tasks"].put_item.call_args[1]["Item"]
        assert item["ai_confidence"] == Decimal("0.8")

        tables["tasks"].query.return_value = {"Items": [item]}
        tasks = await adapter.list_tasks_by_meeting("m-1")
        assert tasks[0].ai_confidence == pytest.approx(0.8)
        assert tables["tasks"].query.call_args[1]["IndexName"] == "meeting_id-index"


# ======================================================================
# DynamoSessionStoreAdapter
# ======================================================================

class TestDynamoSessionStoreAdapter:
    @pytest.fixture()
    def table(self) -> MagicMock:
        return MagicMock()

    @pytest.fixture()
    def adapter(self, table: MagicMock) -> DynamoSessionStoreAdapter:
        resource = MagicMock()
        resource.Table.return_value = table
        return DynamoSessionStoreAdapter(
            table_name="sessions",
            ttl_seconds=60,
            dynamodb_resource=resource,
            clock=lambda: 1000.0,
        )

    @staticmethod
    def _item(expires_at: int, *contents: str) -> dict:
        messages = [
            ChatMessage(role="user", content=c).model_dump(mode="json") for c in contents
        ]
        return {"session_key": "k", "messages": json.dumps(messages), "expires_at": Decimal(expires_at)}

    @pytest.mark.asyncio
    async def test_missing_item_is_empty(self, adapter, table) -> None:
        table.get_item.return_value = {}
        assert await adapter.get_history("k") == []

    @pytest.mark.asyncio
    async def test_expired_item_is_ignored(self, adapter, table) -> None:
        table.get_item.return_value = {"Item": self._item(1000, "old")}
        assert await adapter.get_history("k") == []

    @pytest.mark.asyncio
    async def test_append_writes_trimmed_history_with_ttl(self, adapter, table) -> None:
        table.get_item.return_value = {"Item": self._item(2000, "a", "b")}

        history = await adapter.append("k", [ChatMessage(role="assistant", content="c")], max_entries=2)

        assert [m.content for m in history] == ["b", "c"]
        item = table.put_item.call_args[1]["Item"]
        assert item["session_key"] == "k"
        assert item["expires_at"] == 1060
        assert [m["content"] for m in json.loads(item["messages"])] == ["b", "c"]

    @pytest.mark.asyncio
    async def test_clear_deletes_item(self, adapter, table) -> None:
        await adapter.clear("k")
        table.delete_item.assert_called_once_with(Key={"session_key": "k"})

    @pytest.mark.asyncio
    async def test_read_failure_raises(self, adapter, table) -> None:
        table.get_item.side_effect = _client_error("500", "GetItem")
        with pytest.raises(ExternalServiceError, match="session"):
            await adapter.get_history("k")
