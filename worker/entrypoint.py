"""
Worker entrypoint for ECS Fargate RunTask.

Environment:
    MEETING_ID    : the meeting to work on
    WORKER_ACTION : ``reindex`` (default) or ``process``

Actions:
    reindex  Re-embed the meeting's stored transcripts (old vectors are
             replaced) and refresh its summary vector.
    process  Run post-meeting processing to completion for a meeting that
             is still pending.

Exits 0 on success, 1 on missing env or failure.
Logging is structlog JSON (outside development) and ships to CloudWatch via the awslogs driver.
"""

from __future__ import annotations

import asyncio
import os
import sys
from typing import Optional

from domain.models import utc_now
from shared_utils.config_loader import get_settings
from shared_utils.constants import LogScope
from shared_utils.di_container import ServiceContainer, build_container
from shared_utils.error_handler import NotFoundError, ProcessingError, ValidationError
from shared_utils.logging_utils import get_scoped_logger

logger = get_scoped_logger(LogScope.WORKER)

ACTIONS = ("reindex", "process")


async def reindex_meeting(container: ServiceContainer, meeting_id: str) -> int:
    """Rebuild the vectors of one meeting from its stored transcripts.

    Returns:
        Number of transcript vectors written.
    """
    store = container.metadata_store
    meeting = await store.get_meeting(meeting_id, include_transcripts=True)
    if meeting is None:
        raise NotFoundError("Meeting", meeting_id)

    indexing = container.indexing_service
    report = await indexing.index_meeting(meeting, meeting.transcripts)
    if meeting.summary is not None:
        await indexing.index_summary(meeting)

    await store.update_meeting(
        meeting_id,
        {
            "has_embeddings": report.vectors_indexed > 0,
            "embeddings_generated_at": utc_now(),
            "embedding_error": None,
        },
        allow_terminal=True,
    )
    return report.vectors_indexed


async def process_meeting(container: ServiceContainer, meeting_id: str) -> int:
    result = await container.processing_orchestrator.process_meeting(meeting_id)
    if not result.success:
        raise ProcessingError(result.message, meeting_id=meeting_id)
    return result.transcripts_stored


async def run(meeting_id: str, action: str, container: Optional[ServiceContainer] = None) -> int:
    if action not in ACTIONS:
        raise ValidationError(f"WORKER_ACTION must be one of {ACTIONS}", {"action": action})
    container = container or build_container(get_settings())
    if action == "process":
        return await process_meeting(container, meeting_id)
    return await reindex_meeting(container, meeting_id)


def main() -> int:
    """Worker main: parse env vars, build deps, run the action."""
    meeting_id = os.environ.get("MEETING_ID", "")
    action = os.environ.get("WORKER_ACTION", "reindex").strip().lower() or "reindex"

    if not meeting_id:
        logger.error("worker_missing_env", meeting_id=meeting_id, action=action)
        print("ERROR: MEETING_ID env var is required", file=sys.stderr)
        return 1

    logger.info("worker_started", meeting_id=meeting_id, action=action)

    try:
        count = asyncio.run(run(meeting_id, action))
    except Exception as exc:
        logger.error(
            "worker_failed",
            meeting_id=meeting_id,
            action=action,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        return 1

    logger.info("worker_completed", meeting_id=meeting_id, action=action, transcripts=count)
    return 0


if __name__ == "__main__":
    sys.exit(main())
