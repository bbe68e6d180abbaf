"""
DynamoDB-backed session store adapter.

Implements SessionStorePort on a table keyed by ``session_key``. Each item
carries an ``expires_at`` epoch attribute configured as the table's TTL
attribute; since DynamoDB deletes expired items lazily, reads also ignore
items whose ``expires_at`` has passed.
"""

from __future__ import annotations

import asyncio
import json
import time
from typing import Any, Callable, Dict, List, Optional

import boto3
from botocore.exceptions import ClientError

from domain.models import ChatMessage
from shared_utils.constants import Defaults, LogScope
from shared_utils.error_handler import ExternalServiceError
from shared_utils.logging_utils import get_scoped_logger


logger = get_scoped_logger(LogScope.ADAPTER)


class DynamoSessionStoreAdapter:
    """Amazon DynamoDB implementation of SessionStorePort.

    Messages are stored as one JSON string attribute. Appends within this
    process are serialized per key; the last writer wins across processes.
    """

    def __init__(
        self,
        table_name: str,
        ttl_seconds: int = Defaults.SESSION_TTL_SECONDS,
        region: str = Defaults.AWS_REGION,
        endpoint_url: str = "",
        dynamodb_resource: Optional[object] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        resource_kwargs: dict = {"region_name": region}
        if endpoint_url:
            resource_kwargs["endpoint_url"] = endpoint_url
        self._dynamo = dynamodb_resource or boto3.resource(
            "dynamodb", **resource_kwargs
        )
        self._table = self._dynamo.Table(table_name)
        self._ttl = ttl_seconds
        self._clock = clock
        self._locks: Dict[str, asyncio.Lock] = {}

    # ------------------------------------------------------------------
    # SessionStorePort implementation
    # ------------------------------------------------------------------

    async def get_history(self, key: str) -> List[ChatMessage]:
        item = await asyncio.to_thread(self._get, key)
        if not item or int(item.get("expires_at", 0)) <= self._clock():
            return []
        return [ChatMessage.model_validate(m) for m in json.loads(item.get("messages", "[]"))]

    async def append(
        self, key: str, messages: List[ChatMessage], max_entries: int
    ) -> List[ChatMessage]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            history = await self.get_history(key)
            history.extend(messages)
            history = history[-max_entries:] if max_entries > 0 else []
            await asyncio.to_thread(self._put, key, history)
        logger.debug("dynamo_session_appended", key=key, entries=len(history))
        return history

    async def clear(self, key: str) -> None:
        await asyncio.to_thread(self._delete, key)
        self._locks.pop(key, None)
        logger.info("dynamo_session_cleared", key=key)

    # ------------------------------------------------------------------
    # Blocking boto3 calls (run in a worker thread)
    # ------------------------------------------------------------------

    def _get(self, key: str) -> Optional[Dict[str, Any]]:
        try:
            return self._table.get_item(Key={"session_key": key}).get("Item")
        except ClientError as exc:
            logger.error("dynamo_session_get_failed", key=key, error=str(exc))
            raise ExternalServiceError(
                "DynamoDB", f"Failed to read session: {exc}"
            ) from exc

    def _put(self, key: str, history: List[ChatMessage]) -> None:
        item = {
            "session_key": key,
            "messages": json.dumps([m.model_dump(mode="json") for m in history]),
            "expires_at": int(self._clock() + self._ttl),
        }
        try:
            self._table.put_item(Item=item)
        except ClientError as exc:
            logger.error("dynamo_session_put_failed", key=key, error=str(exc))
            raise ExternalServiceError(
                "DynamoDB", f"Failed to write session: {exc}"
            ) from exc

    def _delete(self, key: str) -> None:
        try:
            self._table.delete_item(Key={"session_key": key})
        except ClientError as exc:
            logger.error("dynamo_session_delete_failed", key=key, error=str(exc))
            raise ExternalServiceError(
                "DynamoDB", f"Failed to delete session: {exc}"
            ) from exc
