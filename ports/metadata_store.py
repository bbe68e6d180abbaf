"""
Port interface for the document store (rooms, meetings, tasks).

Implementations: DynamoMetadataStoreAdapter, InMemoryMetadataStoreAdapter (adapters/)
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from domain.models import Meeting, ProcessingStatus, Room, Task


@runtime_checkable
class MetadataStorePort(Protocol):
    """Abstract interface for room, meeting and task records."""

    # -- rooms ---------------------------------------------------------

    async def get_room_by_name(self, room_name: str) -> Optional[Room]:
        """Return the room or None."""
        ...

    async def put_room(self, room: Room) -> None:
        """Create or overwrite a room."""
        ...

    # -- meetings ------------------------------------------------------

    async def get_meeting(
        self, meeting_id: str, include_transcripts: bool = True
    ) -> Optional[Meeting]:
        """Retrieve a single meeting.

        Args:
            meeting_id: Primary key.
            include_transcripts: When False the transcript list is projected out.
        """
        ...

    async def get_meetings_by_ids(self, meeting_ids: List[str]) -> List[Meeting]:
        """Fetch many meetings in one batched call, transcripts excluded.

        Unknown ids are skipped silently.
        """
        ...

    async def list_meetings_by_room(
        self, room_id: str, limit: int = 50, include_transcripts: bool = False
    ) -> List[Meeting]:
        """Meetings of a room, most recent first."""
        ...

    async def put_meeting(self, meeting: Meeting) -> None:
        """Create or overwrite a meeting."""
        ...

    async def update_meeting(
        self, meeting_id: str, fields: Dict[str, Any], allow_terminal: bool = False
    ) -> bool:
        """Partially update a meeting.

        Args:
            meeting_id: Primary key.
            fields: Attribute values to set.
            allow_terminal: Permit corrective edits (e.g. re-indexing) on a
                completed/failed meeting. Never used by the processing pipeline.

        Returns:
            False when the meeting is missing, or is completed/failed and
            *allow_terminal* is not set.

        Raises:
            ExternalServiceError: If the store is unreachable.
        """
        ...

    async def transition_status(
        self,
        meeting_id: str,
        expected: ProcessingStatus,
        new: ProcessingStatus,
        fields: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Atomically move ``processing_status`` from *expected* to *new*.

        Extra *fields* are written in the same atomic operation.

        Returns:
            True when the swap happened, False when the current status was
            not *expected* (or the meeting does not exist).
        """
        ...

    # -- tasks ---------------------------------------------------------

    async def create_task(self, task: Task) -> None:
        """Persist a new task."""
        ...

    async def list_tasks_by_meeting(self, meeting_id: str) -> List[Task]:
        """Tasks created from one meeting."""
        ...
