"""
DynamoDB-backed document store adapter.

Implements MetadataStorePort using boto3 for the rooms, meetings and tasks
tables. Status transitions use conditional writes so that only one caller
can move a meeting out of ``pending``.

Table keys:
    rooms     ``room_name``  (partition key)
    meetings  ``meeting_id`` (partition key), GSI ``room_id-started_at-index``
    tasks     ``task_id``    (partition key), GSI ``meeting_id-index``
"""

from __future__ import annotations

import asyncio
import json
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

import boto3
from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError
from pydantic import BaseModel
from pydantic_core import to_jsonable_python

from domain.models import Meeting, ProcessingStatus, Room, Task
from shared_utils.logging_utils import get_scoped_logger
from shared_utils.constants import Defaults, LogScope
from shared_utils.error_handler import ExternalServiceError


logger = get_scoped_logger(LogScope.ADAPTER)

ROOM_MEETINGS_INDEX = "room_id-started_at-index"
MEETING_TASKS_INDEX = "meeting_id-index"
# BatchGetItem accepts at most 100 keys per request
BATCH_GET_LIMIT = 100

# Every meeting attribute except the (large) transcript list
_MEETING_SUMMARY_ATTRS = [name for name in Meeting.model_fields if name != "transcripts"]


class DynamoMetadataStoreAdapter:
    """Amazon DynamoDB implementation of MetadataStorePort."""

    def __init__(
        self,
        rooms_table: str,
        meetings_table: str,
        tasks_table: str,
        region: str = Defaults.AWS_REGION,
        endpoint_url: str = "",
        dynamodb_resource: Optional[object] = None,
    ) -> None:
        resource_kwargs: dict = {"region_name": region}
        if endpoint_url:
            resource_kwargs["endpoint_url"] = endpoint_url
        self._dynamo = dynamodb_resource or boto3.resource(
            "dynamodb", **resource_kwargs
        )
        self._meetings_table_name = meetings_table
        self._rooms = self._dynamo.Table(rooms_table)
        self._meetings = self._dynamo.Table(meetings_table)
        self._tasks = self._dynamo.Table(tasks_table)

    # ------------------------------------------------------------------
    # Rooms
    # ------------------------------------------------------------------

    async def get_room_by_name(self, room_name: str) -> Optional[Room]:
        item = await asyncio.to_thread(
            self._get_item, self._rooms, {"room_name": room_name}, None
        )
        return Room.model_validate(self._from_dynamo_item(item)) if item else None

    async def put_room(self, room: Room) -> None:
        await asyncio.to_thread(self._put_item, self._rooms, room)
        logger.info("dynamo_put_room", room_name=room.room_name)

    # ------------------------------------------------------------------
    # Meetings
    # ------------------------------------------------------------------

    async def get_meeting(
        self, meeting_id: str, include_transcripts: bool = True
    ) -> Optional[Meeting]:
        projection = None if include_transcripts else _MEETING_SUMMARY_ATTRS
        item = await asyncio.to_thread(
            self._get_item, self._meetings, {"meeting_id": meeting_id}, projection
        )
        return Meeting.model_validate(self._from_dynamo_item(item)) if item else None

    async def get_meetings_by_ids(self, meeting_ids: List[str]) -> List[Meeting]:
        unique_ids = list(dict.fromkeys(meeting_ids))
        if not unique_ids:
            return []
        items = await asyncio.to_thread(self._batch_get_meetings, unique_ids)
        by_id = {item["meeting_id"]: item for item in items}
        return [
            Meeting.model_validate(self._from_dynamo_item(by_id[mid]))
            for mid in unique_ids
            if mid in by_id
        ]

    async def list_meetings_by_room(
        self, room_id: str, limit: int = 50, include_transcripts: bool = False
    ) -> List[Meeting]:
        items = await asyncio.to_thread(
            self._query_room_meetings, room_id, limit, include_transcripts
        )
        return [Meeting.model_validate(self._from_dynamo_item(item)) for item in items]

    async def put_meeting(self, meeting: Meeting) -> None:
        await asyncio.to_thread(self._put_item, self._meetings, meeting)
        logger.info(
            "dynamo_put_meeting",
            meeting_id=meeting.meeting_id,
            status=meeting.processing_status.value,
        )

    async def update_meeting(
        self, meeting_id: str, fields: Dict[str, Any], allow_terminal: bool = False
    ) -> bool:
        condition = "attribute_exists(meeting_id)"
        values: Dict[str, Any] = {}
        if not allow_terminal:
            condition += " AND NOT processing_status IN (:completed, :failed)"
            values[":completed"] = ProcessingStatus.COMPLETED.value
            values[":failed"] = ProcessingStatus.FAILED.value
        updated = await asyncio.to_thread(
            self._conditional_update, meeting_id, fields, condition, values
        )
        if not updated:
            logger.warning("dynamo_update_meeting_refused", meeting_id=meeting_id)
        return updated

    async def transition_status(
        self,
        meeting_id: str,
        expected: ProcessingStatus,
        new: ProcessingStatus,
        fields: Optional[Dict[str, Any]] = None,
    ) -> bool:
        swapped = await asyncio.to_thread(
            self._conditional_update,
            meeting_id,
            {**(fields or {}), "processing_status": new},
            "processing_status = :expected",
            {":expected": expected.value},
        )
        logger.info(
            "dynamo_status_transition",
            meeting_id=meeting_id,
            expected=expected.value,
            new=new.value,
            swapped=swapped,
        )
        return swapped

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    async def create_task(self, task: Task) -> None:
        await asyncio.to_thread(self._put_item, self._tasks, task)
        logger.info("dynamo_create_task", task_id=task.task_id, meeting_id=task.meeting_id)

    async def list_tasks_by_meeting(self, meeting_id: str) -> List[Task]:
        items = await asyncio.to_thread(self._query_meeting_tasks, meeting_id)
        return [Task.model_validate(self._from_dynamo_item(item)) for item in items]

    # ------------------------------------------------------------------
    # Blocking boto3 calls (run in a worker thread)
    # ------------------------------------------------------------------

    def _get_item(
        self, table: Any, key: Dict[str, str], projection: Optional[List[str]]
    ) -> Optional[Dict[str, Any]]:
        kwargs: Dict[str, Any] = {"Key": key}
        if projection:
            expression, names = self._projection(projection)
            kwargs["ProjectionExpression"] = expression
            kwargs["ExpressionAttributeNames"] = names
        try:
            return table.get_item(**kwargs).get("Item")
        except ClientError as exc:
            logger.error("dynamo_get_item_failed", key=key, error=str(exc))
            raise ExternalServiceError(
                "DynamoDB", f"Failed to get item: {exc}"
            ) from exc

    def _put_item(self, table: Any, model: BaseModel) -> None:
        try:
            table.put_item(Item=self._to_dynamo_item(model))
        except ClientError as exc:
            logger.error("dynamo_put_item_failed", error=str(exc))
            raise ExternalServiceError(
                "DynamoDB", f"Failed to put item: {exc}"
            ) from exc

    def _batch_get_meetings(self, meeting_ids: List[str]) -> List[Dict[str, Any]]:
        expression, names = self._projection(_MEETING_SUMMARY_ATTRS)
        items: List[Dict[str, Any]] = []
        try:
            for i in range(0, len(meeting_ids), BATCH_GET_LIMIT):
                request: Dict[str, Any] = {
                    self._meetings_table_name: {
                        "Keys": [{"meeting_id": mid} for mid in meeting_ids[i : i + BATCH_GET_LIMIT]],
                        "ProjectionExpression": expression,
                        "ExpressionAttributeNames": names,
                    }
                }
                # Throttled keys come back as UnprocessedKeys
                while request:
                    response = self._dynamo.batch_get_item(RequestItems=request)
                    items.extend(
                        response.get("Responses", {}).get(self._meetings_table_name, [])
                    )
                    request = response.get("UnprocessedKeys") or {}
        except ClientError as exc:
            logger.error("dynamo_batch_get_failed", count=len(meeting_ids), error=str(exc))
            raise ExternalServiceError(
                "DynamoDB", f"Failed to batch get meetings: {exc}"
            ) from exc
        logger.info("dynamo_batch_get_meetings", requested=len(meeting_ids), found=len(items))
        return items

    def _query_room_meetings(
        self, room_id: str, limit: int, include_transcripts: bool
    ) -> List[Dict[str, Any]]:
        kwargs: Dict[str, Any] = {
            "IndexName": ROOM_MEETINGS_INDEX,
            "KeyConditionExpression": Key("room_id").eq(room_id),
            "ScanIndexForward": False,
            "Limit": limit,
        }
        if not include_transcripts:
            expression, names = self._projection(_MEETING_SUMMARY_ATTRS)
            kwargs["ProjectionExpression"] = expression
            kwargs["ExpressionAttributeNames"] = names

        items: List[Dict[str, Any]] = []
        try:
            while len(items) < limit:
                response = self._meetings.query(**kwargs)
                items.extend(response.get("Items", []))
                last_key = response.get("LastEvaluatedKey")
                if last_key is None:
                    break
                kwargs["ExclusiveStartKey"] = last_key
        except ClientError as exc:
            logger.error("dynamo_query_room_meetings_failed", room_id=room_id, error=str(exc))
            raise ExternalServiceError(
                "DynamoDB", f"Failed to list room meetings: {exc}"
            ) from exc
        return items[:limit]

    def _query_meeting_tasks(self, meeting_id: str) -> List[Dict[str, Any]]:
        kwargs: Dict[str, Any] = {
            "IndexName": MEETING_TASKS_INDEX,
            "KeyConditionExpression": Key("meeting_id").eq(meeting_id),
        }
        items: List[Dict[str, Any]] = []
        try:
            while True:
                response = self._tasks.query(**kwargs)
                items.extend(response.get("Items", []))
                last_key = response.get("LastEvaluatedKey")
                if last_key is None:
                    break
                kwargs["ExclusiveStartKey"] = last_key
        except ClientError as exc:
            logger.error("dynamo_query_tasks_failed", meeting_id=meeting_id, error=str(exc))
            raise ExternalServiceError(
                "DynamoDB", f"Failed to list meeting tasks: {exc}"
            ) from exc
        return items

    def _conditional_update(
        self,
        meeting_id: str,
        fields: Dict[str, Any],
        condition: str,
        condition_values: Dict[str, Any],
    ) -> bool:
        """SET *fields* if *condition* holds; False on a failed condition."""
        names: Dict[str, str] = {}
        values: Dict[str, Any] = dict(condition_values)
        assignments: List[str] = []
        for i, (field, value) in enumerate(fields.items()):
            names[f"#f{i}"] = field
            values[f":v{i}"] = self._to_dynamo_value(value)
            assignments.append(f"#f{i} = :v{i}")

        kwargs: Dict[str, Any] = {
            "Key": {"meeting_id": meeting_id},
            "ConditionExpression": condition,
        }
        if assignments:
            kwargs["UpdateExpression"] = "SET " + ", ".join(assignments)
            kwargs["ExpressionAttributeNames"] = names
        if values:
            kwargs["ExpressionAttributeValues"] = values

        try:
            if assignments:
                self._meetings.update_item(**kwargs)
            else:
                # Nothing to write; only report whether the condition holds
                item = self._meetings.get_item(Key={"meeting_id": meeting_id}).get("Item")
                return item is not None
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException":
                return False
            logger.error("dynamo_update_meeting_failed", meeting_id=meeting_id, error=str(exc))
            raise ExternalServiceError(
                "DynamoDB", f"Failed to update meeting: {exc}"
            ) from exc
        return True

    # ------------------------------------------------------------------
    # Serialisation helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _projection(attrs: List[str]) -> Tuple[str, Dict[str, str]]:
        """Build a ProjectionExpression; placeholders dodge reserved words."""
        names = {f"#a{i}": attr for i, attr in enumerate(attrs)}
        return ", ".join(names), names

    @staticmethod
    def _to_dynamo_value(value: Any) -> Any:
        """JSON-compatible value with floats as Decimal (boto3 rejects float)."""
        return json.loads(json.dumps(to_jsonable_python(value)), parse_float=Decimal)

    @classmethod
    def _to_dynamo_item(cls, model: BaseModel) -> Dict[str, Any]:
        """Convert a domain model into a DynamoDB item dict, dropping None."""
        item = cls._to_dynamo_value(model.model_dump(mode="json", exclude_none=True))
        return item

    @classmethod
    def _from_dynamo_item(cls, value: Any) -> Any:
        """Convert Decimals back into int/float recursively."""
        if isinstance(value, Decimal):
            return int(value) if value == value.to_integral_value() else float(value)
        if isinstance(value, dict):
            return {k: cls._from_dynamo_item(v) for k, v in value.items()}
        if isinstance(value, (list, set)):
            return [cls._from_dynamo_item(v) for v in value]
        return value
