"""
In-memory document store adapter for local development and tests.

Implements MetadataStorePort with dicts guarded by an asyncio.Lock, which
makes ``transition_status`` an atomic compare-and-swap within one process.
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional

from domain.models import Meeting, ProcessingStatus, Room, Task
from shared_utils.constants import LogScope
from shared_utils.logging_utils import get_scoped_logger


logger = get_scoped_logger(LogScope.ADAPTER)


class InMemoryMetadataStoreAdapter:
    """Dict-backed implementation of MetadataStorePort."""

    def __init__(self) -> None:
        self._rooms: Dict[str, Room] = {}
        self._meetings: Dict[str, Meeting] = {}
        self._tasks: Dict[str, Task] = {}
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Rooms
    # ------------------------------------------------------------------

    async def get_room_by_name(self, room_name: str) -> Optional[Room]:
        room = self._rooms.get(room_name)
        return room.model_copy(deep=True) if room else None

    async def put_room(self, room: Room) -> None:
        self._rooms[room.room_name] = room.model_copy(deep=True)

    # ------------------------------------------------------------------
    # Meetings
    # ------------------------------------------------------------------

    async def get_meeting(
        self, meeting_id: str, include_transcripts: bool = True
    ) -> Optional[Meeting]:
        meeting = self._meetings.get(meeting_id)
        if meeting is None:
            return None
        return self._project(meeting, include_transcripts)

    async def get_meetings_by_ids(self, meeting_ids: List[str]) -> List[Meeting]:
        return [
            self._project(self._meetings[mid], include_transcripts=False)
            for mid in dict.fromkeys(meeting_ids)
            if mid in self._meetings
        ]

    async def list_meetings_by_room(
        self, room_id: str, limit: int = 50, include_transcripts: bool = False
    ) -> List[Meeting]:
        meetings = [m for m in self._meetings.values() if m.room_id == room_id]
        meetings.sort(key=lambda m: m.started_at, reverse=True)
        return [self._project(m, include_transcripts) for m in meetings[:limit]]

    async def put_meeting(self, meeting: Meeting) -> None:
        async with self._lock:
            self._meetings[meeting.meeting_id] = meeting.model_copy(deep=True)

    async def update_meeting(
        self, meeting_id: str, fields: Dict[str, Any], allow_terminal: bool = False
    ) -> bool:
        async with self._lock:
            meeting = self._meetings.get(meeting_id)
            if meeting is None:
                return False
            if meeting.processing_status.is_terminal and not allow_terminal:
                logger.warning(
                    "inmemory_update_refused_terminal",
                    meeting_id=meeting_id,
                    status=meeting.processing_status.value,
                )
                return False
            self._meetings[meeting_id] = self._merge(meeting, fields)
        return True

    async def transition_status(
        self,
        meeting_id: str,
        expected: ProcessingStatus,
        new: ProcessingStatus,
        fields: Optional[Dict[str, Any]] = None,
    ) -> bool:
        async with self._lock:
            meeting = self._meetings.get(meeting_id)
            if meeting is None or meeting.processing_status is not expected:
                return False
            self._meetings[meeting_id] = self._merge(
                meeting, {**(fields or {}), "processing_status": new}
            )
        logger.info(
            "inmemory_status_transition",
            meeting_id=meeting_id,
            expected=expected.value,
            new=new.value,
        )
        return True

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    async def create_task(self, task: Task) -> None:
        self._tasks[task.task_id] = task.model_copy(deep=True)

    async def list_tasks_by_meeting(self, meeting_id: str) -> List[Task]:
        return [t.model_copy(deep=True) for t in self._tasks.values() if t.meeting_id == meeting_id]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _merge(meeting: Meeting, fields: Dict[str, Any]) -> Meeting:
        return Meeting.model_validate({**meeting.model_dump(), **fields})

    @staticmethod
    def _project(meeting: Meeting, include_transcripts: bool) -> Meeting:
        copy = meeting.model_copy(deep=True)
        if not include_transcripts:
            copy.transcripts = []
        return copy
