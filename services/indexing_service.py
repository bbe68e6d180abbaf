"""
Indexing service: transcript entries to searchable vectors.

Flow:  transcripts → dedupe → embed ("speaker: text") → replace the meeting's
vectors in the index.

Depends only on ports (protocol interfaces), never on concrete adapters.
"""

from __future__ import annotations

import time
from typing import Any, Dict, List, Sequence, Tuple

from domain.models import (
    ActionItem,
    IndexingReport,
    Meeting,
    TranscriptEntry,
    VectorKind,
    VectorRecord,
    ensure_aware,
)
from ports.llm_provider import EmbeddingProviderPort
from ports.vector_store import VectorStorePort
from shared_utils.constants import Defaults, LogScope, SUMMARY_SPEAKER
from shared_utils.logging_utils import get_scoped_logger, log_execution

logger = get_scoped_logger(LogScope.INDEXING)


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

def _normalize_text(text: str) -> str:
    return " ".join(text.split()).lower()


def deduplicate_transcripts(
    transcripts: Sequence[TranscriptEntry],
    window_seconds: float = Defaults.DEDUP_WINDOW_SECONDS,
) -> Tuple[List[TranscriptEntry], int, int]:
    """Drop empty lines and repeated lines, oldest first.

    A line is a duplicate when an already-kept line has the same speaker and
    the same normalized text within *window_seconds*. Kept lines have their
    text stripped.

    Returns:
        (kept entries sorted by timestamp, duplicates removed, empties removed)
    """
    non_empty = [t for t in transcripts if t.text and t.text.strip()]
    empty_removed = len(transcripts) - len(non_empty)

    ordered = sorted(non_empty, key=lambda t: ensure_aware(t.timestamp))
    kept: List[TranscriptEntry] = []
    # (speaker, normalized text) -> timestamps of kept lines
    seen: Dict[Tuple[str, str], List[float]] = {}

    for entry in ordered:
        key = (entry.speaker, _normalize_text(entry.text))
        ts = ensure_aware(entry.timestamp).timestamp()
        if any(abs(ts - prev) <= window_seconds for prev in seen.get(key, [])):
            continue
        seen.setdefault(key, []).append(ts)
        kept.append(entry.model_copy(update={"text": entry.text.strip()}))

    return kept, len(ordered) - len(kept), empty_removed


def transcript_vector_key(meeting_id: str, index: int) -> str:
    return f"{meeting_id}-{index}"


def summary_vector_key(meeting_id: str) -> str:
    return f"{meeting_id}-summary"


def summary_embedding_text(meeting: Meeting) -> str:
    """Flatten a meeting summary into one passage for embedding."""
    summary = meeting.summary
    if summary is None:
        return ""
    parts = [summary.title, summary.content]
    for section in summary.sections:
        parts.append(section.title)
        parts.extend(point.text for point in section.points)
    if summary.decisions:
        parts.append("Decisions: " + "; ".join(summary.decisions))
    titles = [a.title if isinstance(a, ActionItem) else a for a in summary.action_items]
    if titles:
        parts.append("Action items: " + "; ".join(titles))
    return "\n".join(p for p in parts if p)


# ---------------------------------------------------------------------------
# IndexingService
# ---------------------------------------------------------------------------

class IndexingService:
    """Embeds meeting transcripts and summaries into the vector index.

    Re-indexing a meeting replaces its vectors: keys are deterministic and
    stale vectors are deleted first, so repeated runs never grow the index.
    """

    def __init__(
        self,
        *,
        embedding_provider: EmbeddingProviderPort,
        vector_store: VectorStorePort,
        dedup_window_seconds: float = Defaults.DEDUP_WINDOW_SECONDS,
    ) -> None:
        self._embedder = embedding_provider
        self._vectors = vector_store
        self._dedup_window = dedup_window_seconds

    @log_execution(scope=LogScope.INDEXING)
    async def index_meeting(
        self, meeting: Meeting, transcripts: Sequence[TranscriptEntry]
    ) -> IndexingReport:
        """Dedupe, embed and store the transcript vectors of one meeting.

        Raises:
            ExternalServiceError: If embedding or the vector index fails.
                Previously stored vectors are left untouched when embedding
                fails.
        """
        started = time.perf_counter()
        kept, duplicates, empties = deduplicate_transcripts(transcripts, self._dedup_window)

        records: List[VectorRecord] = []
        if kept:
            embeddings = await self._embedder.embed_batch(
                [f"{t.speaker}: {t.text}" for t in kept]
            )
            records = [
                VectorRecord(
                    key=transcript_vector_key(meeting.meeting_id, i),
                    embedding=embedding,
                    metadata=self._transcript_metadata(meeting, entry, i),
                )
                for i, (entry, embedding) in enumerate(zip(kept, embeddings))
            ]

        removed = await self._vectors.delete_by_filter(
            {"meetingId": meeting.meeting_id, "kind": VectorKind.TRANSCRIPT.value}
        )
        if records:
            await self._vectors.upsert(records)

        report = IndexingReport(
            meeting_id=meeting.meeting_id,
            vectors_indexed=len(records),
            duplicates_removed=duplicates,
            empty_removed=empties,
            duration_ms=(time.perf_counter() - started) * 1000,
        )
        logger.info(
            "meeting_indexed",
            meeting_id=meeting.meeting_id,
            vectors_indexed=report.vectors_indexed,
            stale_vectors_removed=removed,
            duplicates_removed=duplicates,
            empty_removed=empties,
        )
        return report

    async def index_summary(self, meeting: Meeting) -> bool:
        """Store one vector for the meeting summary; False when there is none."""
        text = summary_embedding_text(meeting)
        if not text:
            return False
        embedding = await self._embedder.embed(text)
        await self._vectors.upsert(
            [
                VectorRecord(
                    key=summary_vector_key(meeting.meeting_id),
                    embedding=embedding,
                    metadata=self._base_metadata(
                        meeting,
                        speaker=SUMMARY_SPEAKER,
                        text=text,
                        timestamp=meeting.ended_at or meeting.started_at,
                        kind=VectorKind.SUMMARY,
                    ),
                )
            ]
        )
        logger.info("summary_indexed", meeting_id=meeting.meeting_id, chars=len(text))
        return True

    async def delete_meeting(self, meeting_id: str) -> int:
        """Remove every vector (transcripts and summary) of a meeting."""
        removed = await self._vectors.delete_by_filter({"meetingId": meeting_id})
        logger.info("meeting_vectors_deleted", meeting_id=meeting_id, removed=removed)
        return removed

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _transcript_metadata(
        self, meeting: Meeting, entry: TranscriptEntry, index: int
    ) -> Dict[str, Any]:
        metadata = self._base_metadata(
            meeting,
            speaker=entry.speaker,
            text=entry.text,
            timestamp=entry.timestamp,
            kind=VectorKind.TRANSCRIPT,
        )
        metadata["transcriptIndex"] = index
        return metadata

    @staticmethod
    def _base_metadata(meeting: Meeting, *, speaker, text, timestamp, kind: VectorKind) -> Dict[str, Any]:
        return {
            "meetingId": meeting.meeting_id,
            "roomId": meeting.room_id,
            "speaker": speaker,
            "text": text[: Defaults.VECTOR_TEXT_MAX_CHARS],
            "timestamp": ensure_aware(timestamp).isoformat(),
            "meetingDate": ensure_aware(meeting.started_at).isoformat(),
            "meetingType": meeting.type,
            "kind": kind.value,
        }
