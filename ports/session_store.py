"""
Port interface for conversation history.

The store is a cache with TTL, not a system of record: losing an entry
only means the assistant forgets earlier turns.

Implementations: InMemorySessionStoreAdapter, DynamoSessionStoreAdapter (adapters/)
"""

from __future__ import annotations

from typing import List, Protocol, runtime_checkable

from domain.models import ChatMessage


@runtime_checkable
class SessionStorePort(Protocol):
    """Key-value store of capped chat histories."""

    async def get_history(self, key: str) -> List[ChatMessage]:
        """Return the stored turns (oldest first), or [] when absent/expired."""
        ...

    async def append(
        self, key: str, messages: List[ChatMessage], max_entries: int
    ) -> List[ChatMessage]:
        """Append turns, keep only the newest *max_entries*, refresh the TTL.

        Returns:
            The history after trimming.
        """
        ...

    async def clear(self, key: str) -> None:
        """Forget a conversation."""
        ...
