"""
Processing orchestrator: drives an ended meeting to a terminal status.

State machine (forward only, ``failed`` reachable from any step):

    pending → in_progress → summary_completed → completed

Flow:  claim (atomic pending → in_progress) → store transcripts → summarize
→ index summary → notify ‖ create tasks → completed.

Only the claim can be refused. Once a meeting is claimed, every error is
caught here and the meeting always reaches ``completed`` or ``failed``.
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from domain.models import (
    Meeting,
    Participant,
    ProcessingResult,
    ProcessingStatus,
    TranscriptEntry,
    utc_now,
)
from ports.metadata_store import MetadataStorePort
from ports.notifier import NotifierPort
from services.indexing_service import IndexingService, deduplicate_transcripts
from services.summarizer import SummarizerService
from services.task_extraction import TaskExtractionService
from shared_utils.constants import LogScope
from shared_utils.error_handler import ProcessingError
from shared_utils.logging_utils import get_scoped_logger, log_execution

logger = get_scoped_logger(LogScope.PROCESSING)

NOTHING_TO_PROCESS = "No transcripts to process"

_IN_FLIGHT = (ProcessingStatus.IN_PROGRESS, ProcessingStatus.SUMMARY_COMPLETED)


class ProcessingOrchestrator:
    """Runs post-meeting processing for one meeting at a time per call."""

    def __init__(
        self,
        *,
        metadata_store: MetadataStorePort,
        indexing_service: IndexingService,
        summarizer: SummarizerService,
        task_service: TaskExtractionService,
        notifier: Optional[NotifierPort] = None,
    ) -> None:
        self._store = metadata_store
        self._indexing = indexing_service
        self._summarizer = summarizer
        self._tasks = task_service
        self._notifier = notifier
        # Strong references keep scheduled pipelines alive until they finish
        self._background: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def process_immediately(
        self,
        meeting_id: str,
        room_name: str,
        transcripts: Sequence[TranscriptEntry],
        participants: Sequence[Participant],
    ) -> ProcessingResult:
        """Claim the meeting and schedule processing in the background.

        Returns as soon as the claim is decided. ``status`` is None when the
        meeting does not exist.
        """
        meeting, refusal = await self._claim(meeting_id)
        if refusal is not None:
            return refusal

        task = asyncio.create_task(
            self._run_pipeline(meeting, room_name, list(transcripts), list(participants))
        )
        self._background.add(task)
        task.add_done_callback(self._background.discard)

        logger.info("processing_scheduled", meeting_id=meeting_id, room_name=room_name)
        return ProcessingResult(
            meeting_id=meeting_id,
            success=True,
            background_processing_started=True,
            message="Meeting processing started in background",
            status=ProcessingStatus.IN_PROGRESS,
        )

    @log_execution(scope=LogScope.PROCESSING)
    async def process_meeting(
        self,
        meeting_id: str,
        room_name: Optional[str] = None,
        transcripts: Optional[Sequence[TranscriptEntry]] = None,
        participants: Optional[Sequence[Participant]] = None,
    ) -> ProcessingResult:
        """Claim and fully process a meeting, awaiting the result.

        Missing *transcripts* / *participants* default to what the meeting
        record holds.
        """
        meeting, refusal = await self._claim(meeting_id, include_transcripts=transcripts is None)
        if refusal is not None:
            return refusal
        return await self._run_pipeline(
            meeting,
            room_name or meeting.room_name,
            list(meeting.transcripts if transcripts is None else transcripts),
            list(meeting.participants if participants is None else participants),
        )

    async def wait_for_background(self) -> None:
        """Await every scheduled pipeline (shutdown hook and tests)."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # ------------------------------------------------------------------
    # Claim
    # ------------------------------------------------------------------

    async def _claim(
        self, meeting_id: str, include_transcripts: bool = False
    ) -> Tuple[Optional[Meeting], Optional[ProcessingResult]]:
        meeting = await self._store.get_meeting(meeting_id, include_transcripts=include_transcripts)
        if meeting is None:
            logger.warning("processing_meeting_not_found", meeting_id=meeting_id)
            return None, ProcessingResult(
                meeting_id=meeting_id, success=False, message=f"Meeting not found: {meeting_id}"
            )

        claimed = await self._store.transition_status(
            meeting_id,
            ProcessingStatus.PENDING,
            ProcessingStatus.IN_PROGRESS,
            {"processing_started_at": utc_now()},
        )
        if not claimed:
            current = await self._store.get_meeting(meeting_id, include_transcripts=False)
            status = current.processing_status if current else meeting.processing_status
            message = "Meeting already processing" if status in _IN_FLIGHT else "Meeting already processed"
            logger.info("processing_claim_refused", meeting_id=meeting_id, status=status.value)
            return None, ProcessingResult(
                meeting_id=meeting_id, success=False, message=message, status=status
            )

        logger.info("processing_claimed", meeting_id=meeting_id)
        meeting.processing_status = ProcessingStatus.IN_PROGRESS
        return meeting, None

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def _run_pipeline(
        self,
        meeting: Meeting,
        room_name: str,
        transcripts: List[TranscriptEntry],
        participants: List[Participant],
    ) -> ProcessingResult:
        meeting_id = meeting.meeting_id
        status = ProcessingStatus.IN_PROGRESS
        try:
            kept, _, _ = deduplicate_transcripts(transcripts)
            if not kept:
                await self._advance(
                    meeting_id,
                    status,
                    ProcessingStatus.COMPLETED,
                    {"processing_completed_at": utc_now(), "processing_note": NOTHING_TO_PROCESS},
                )
                logger.info("processing_nothing_to_process", meeting_id=meeting_id)
                return ProcessingResult(
                    meeting_id=meeting_id,
                    success=True,
                    message=NOTHING_TO_PROCESS,
                    status=ProcessingStatus.COMPLETED,
                )

            stored = await self._store_transcripts(meeting, kept)

            summary = await self._summarizer.summarize(meeting.type, kept, participants)
            title = summary.title.strip() if summary.title and summary.title.strip() else meeting.type
            await self._advance(
                meeting_id,
                status,
                ProcessingStatus.SUMMARY_COMPLETED,
                {"summary": summary, "title": title, "summary_generated_at": utc_now()},
            )
            status = ProcessingStatus.SUMMARY_COMPLETED
            meeting = meeting.model_copy(update={"summary": summary, "title": title})

            await self._index_summary(meeting)
            _, tasks_created = await asyncio.gather(
                self._notify(meeting, room_name), self._create_tasks(meeting)
            )

            await self._advance(
                meeting_id,
                status,
                ProcessingStatus.COMPLETED,
                {"processing_completed_at": utc_now()},
            )
        except Exception as exc:
            await self._fail(meeting_id, status, exc)
            return ProcessingResult(
                meeting_id=meeting_id,
                success=False,
                message=str(exc),
                status=ProcessingStatus.FAILED,
            )

        logger.info(
            "processing_completed",
            meeting_id=meeting_id,
            transcripts_stored=stored,
            tasks_created=tasks_created,
            fallback_summary=summary.is_fallback,
        )
        return ProcessingResult(
            meeting_id=meeting_id,
            success=True,
            message="Meeting processed",
            status=ProcessingStatus.COMPLETED,
            transcripts_stored=stored,
            tasks_created=tasks_created,
        )

    async def _store_transcripts(self, meeting: Meeting, kept: List[TranscriptEntry]) -> int:
        """Persist transcript metadata, then index.

        Indexing failures and failures to record the embedding state are
        logged and left for a reindex run; neither stops the pipeline.
        """
        meeting_id = meeting.meeting_id
        await self._update(meeting_id, {"transcripts": kept, "transcript_count": len(kept)})
        try:
            report = await self._indexing.index_meeting(meeting, kept)
        except Exception as exc:
            logger.error("processing_embedding_failed", meeting_id=meeting_id, error=str(exc))
            await self._record_embedding_state(
                meeting_id,
                {"has_embeddings": False, "embedding_error": str(exc), "embedding_error_at": utc_now()},
            )
            return len(kept)

        await self._record_embedding_state(
            meeting_id,
            {
                "has_embeddings": report.vectors_indexed > 0,
                "embeddings_generated_at": utc_now(),
                "embedding_error": None,
            },
        )
        return len(kept)

    async def _record_embedding_state(self, meeting_id: str, fields: Dict[str, Any]) -> None:
        # vectors and meeting record can disagree; a reindex run reconciles them
        try:
            await self._update(meeting_id, fields)
        except Exception as exc:
            logger.error(
                "embedding_state_not_recorded",
                meeting_id=meeting_id,
                fields=sorted(fields),
                error=str(exc),
            )

    async def _index_summary(self, meeting: Meeting) -> None:
        try:
            await self._indexing.index_summary(meeting)
        except Exception as exc:
            logger.warning("summary_indexing_failed", meeting_id=meeting.meeting_id, error=str(exc))

    async def _notify(self, meeting: Meeting, room_name: str) -> int:
        if self._notifier is None:
            return 0
        try:
            room = await self._store.get_room_by_name(room_name)
            if room is None:
                logger.info("notification_skipped_no_room", meeting_id=meeting.meeting_id, room_name=room_name)
                return 0
            room_title = room.title or meeting.type or room_name
            return await self._notifier.send_meeting_summary(meeting, room_title, room.participants)
        except Exception as exc:
            logger.error("notification_failed", meeting_id=meeting.meeting_id, error=str(exc))
            return 0

    async def _create_tasks(self, meeting: Meeting) -> int:
        try:
            return await self._tasks.create_tasks(meeting)
        except Exception as exc:
            logger.error("task_extraction_failed", meeting_id=meeting.meeting_id, error=str(exc))
            return 0

    # ------------------------------------------------------------------
    # Status helpers
    # ------------------------------------------------------------------

    async def _update(self, meeting_id: str, fields: Dict[str, Any]) -> None:
        if not await self._store.update_meeting(meeting_id, fields):
            raise ProcessingError("Meeting is no longer processable", meeting_id=meeting_id)

    async def _advance(
        self,
        meeting_id: str,
        current: ProcessingStatus,
        new: ProcessingStatus,
        fields: Dict[str, Any],
    ) -> None:
        if not current.can_transition_to(new):
            raise ProcessingError(
                f"Illegal status transition {current.value} -> {new.value}", meeting_id=meeting_id
            )
        if not await self._store.transition_status(meeting_id, current, new, fields):
            raise ProcessingError(
                f"Status changed concurrently, expected {current.value}", meeting_id=meeting_id
            )
        logger.info("processing_status_advanced", meeting_id=meeting_id, status=new.value)

    async def _fail(self, meeting_id: str, current: ProcessingStatus, exc: Exception) -> None:
        logger.error(
            "processing_failed",
            meeting_id=meeting_id,
            status=current.value,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        try:
            await self._store.transition_status(
                meeting_id,
                current,
                ProcessingStatus.FAILED,
                {"processing_error": str(exc), "processing_failed_at": utc_now()},
            )
        except Exception as store_exc:
            logger.error("processing_failure_not_recorded", meeting_id=meeting_id, error=str(store_exc))
