"""
In-memory session store adapter.

Implements SessionStorePort with a dict of capped chat histories and a
per-entry TTL measured on a monotonic clock. Appends and clears are
serialized by one asyncio.Lock.
"""

from __future__ import annotations

import asyncio
import time
from typing import Callable, Dict, List, Tuple

from domain.models import ChatMessage
from shared_utils.constants import Defaults, LogScope
from shared_utils.logging_utils import get_scoped_logger


logger = get_scoped_logger(LogScope.ADAPTER)


class InMemorySessionStoreAdapter:
    """Dict-backed implementation of SessionStorePort."""

    def __init__(
        self,
        ttl_seconds: int = Defaults.SESSION_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[float, List[ChatMessage]]] = {}
        self._lock = asyncio.Lock()

    async def get_history(self, key: str) -> List[ChatMessage]:
        entry = self._entries.get(key)
        if entry is None:
            return []
        expires_at, messages = entry
        if self._clock() >= expires_at:
            self._entries.pop(key, None)
            logger.debug("inmemory_session_expired", key=key)
            return []
        return list(messages)

    async def append(
        self, key: str, messages: List[ChatMessage], max_entries: int
    ) -> List[ChatMessage]:
        async with self._lock:
            history = await self.get_history(key)
            history.extend(messages)
            history = history[-max_entries:] if max_entries > 0 else []
            self._entries[key] = (self._clock() + self._ttl, history)
        logger.debug("inmemory_session_appended", key=key, entries=len(history))
        return list(history)

    async def clear(self, key: str) -> None:
        async with self._lock:
            self._entries.pop(key, None)
        logger.info("inmemory_session_cleared", key=key)
