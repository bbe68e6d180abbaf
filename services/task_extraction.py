"""
Task extraction: one reviewable task per summary action item.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import List, Optional

from domain.models import (
    ActionItem,
    Meeting,
    ReviewStatus,
    Task,
    TaskPriority,
    ensure_aware,
    utc_now,
)
from ports.metadata_store import MetadataStorePort
from shared_utils.constants import AI_TASK_AUTHOR, LogScope, UNASSIGNED_OWNER
from shared_utils.logging_utils import get_scoped_logger

logger = get_scoped_logger(LogScope.PROCESSING)

STRUCTURED_ITEM_CONFIDENCE = 0.9
PLAIN_ITEM_CONFIDENCE = 0.8


def _parse_due_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return ensure_aware(datetime.fromisoformat(value))
    except ValueError:
        return None


def build_tasks(meeting: Meeting) -> List[Task]:
    """Map the meeting summary's action items onto new Task records."""
    if meeting.summary is None or not meeting.room_id:
        return []

    meeting_title = meeting.title or meeting.type
    default_description = f"Generated from meeting: {meeting_title}"
    tasks: List[Task] = []

    for item in meeting.summary.action_items:
        common = dict(
            task_id=str(uuid.uuid4()),
            room_id=meeting.room_id,
            meeting_id=meeting.meeting_id,
            is_ai_generated=True,
            created_by_name=AI_TASK_AUTHOR,
            review_status=ReviewStatus.PENDING_REVIEW,
            meeting_title=meeting_title,
            meeting_date=meeting.started_at,
            created_at=utc_now(),
        )
        if isinstance(item, ActionItem):
            owner = (item.owner or "").strip()
            tasks.append(
                Task(
                    title=item.title,
                    description=item.context or default_description,
                    priority=item.priority or TaskPriority.MEDIUM,
                    assigned_to_name=None if owner in ("", UNASSIGNED_OWNER) else owner,
                    due_date=_parse_due_date(item.due_date),
                    ai_confidence=STRUCTURED_ITEM_CONFIDENCE,
                    **common,
                )
            )
        elif isinstance(item, str) and item.strip():
            tasks.append(
                Task(
                    title=item.strip(),
                    description=default_description,
                    priority=TaskPriority.MEDIUM,
                    ai_confidence=PLAIN_ITEM_CONFIDENCE,
                    **common,
                )
            )
    return tasks


class TaskExtractionService:
    """Persists tasks for a summarized meeting."""

    def __init__(self, *, metadata_store: MetadataStorePort) -> None:
        self._store = metadata_store

    async def create_tasks(self, meeting: Meeting) -> int:
        """Create one task per action item; returns how many were stored.

        A failure on one task is logged and the rest are still attempted.
        """
        if not meeting.room_id:
            logger.info("task_creation_skipped_no_room", meeting_id=meeting.meeting_id)
            return 0

        created = 0
        for task in build_tasks(meeting):
            try:
                await self._store.create_task(task)
                created += 1
            except Exception as exc:
                logger.error(
                    "task_creation_failed",
                    meeting_id=meeting.meeting_id,
                    title=task.title,
                    error=str(exc),
                )
        logger.info("tasks_created", meeting_id=meeting.meeting_id, count=created)
        return created
