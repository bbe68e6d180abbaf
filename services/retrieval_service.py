"""
Hybrid retrieval service: vector similarity plus document-store metadata.

Flow:  resolve room → classify query → embed once → room-scoped vector query
(with one low-threshold retry) → batched meeting fetch → merge summaries and
transcript hits → rank → cap.

Retrieval is best-effort grounding: a missing room, an empty index or a
failing collaborator all produce an empty context rather than an error.
"""

from __future__ import annotations

import functools
import re
from collections import Counter
from typing import Dict, List, Optional

from domain.models import (
    Meeting,
    QueryAnalysis,
    RetrievalContext,
    RoomStats,
    SummaryPriority,
    TranscriptContext,
    VectorKind,
    VectorMatch,
    utc_now,
)
from ports.llm_provider import EmbeddingProviderPort
from ports.metadata_store import MetadataStorePort
from ports.vector_store import VectorStorePort
from services.query_classifier import HeuristicQueryClassifier, QueryClassifier
from shared_utils.constants import (
    Defaults,
    LIVE_MEETING_ID,
    LIVE_MEETING_TYPE,
    LogScope,
    RetrievalLimits,
    SUMMARY_SECTION_SPEAKER,
    SUMMARY_SPEAKER,
)
from shared_utils.logging_utils import get_scoped_logger

logger = get_scoped_logger(LogScope.RETRIEVAL)

_LIVE_LINE = re.compile(r"^([^:]+):\s*(.+)$")

# Similarity gap below which two items count as equally relevant
_SIMILARITY_TIE = 0.05


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

def parse_live_transcript(buffer: str) -> List[TranscriptContext]:
    """Parse ``speaker: text`` lines of an unindexed live buffer."""
    now = utc_now()
    entries: List[TranscriptContext] = []
    for line in buffer.splitlines():
        match = _LIVE_LINE.match(line.strip())
        if not match:
            continue
        entries.append(
            TranscriptContext(
                speaker=match.group(1).strip(),
                text=match.group(2).strip(),
                timestamp=now,
                meeting_id=LIVE_MEETING_ID,
                meeting_type=LIVE_MEETING_TYPE,
                meeting_date=now,
            )
        )
    return entries


def _meeting_label(meeting: Meeting) -> str:
    names = ", ".join(p.name for p in meeting.participants) or "Unknown"
    return f"{meeting.type} (All participants: {names})"


def _compare_items(priority: SummaryPriority, a: TranscriptContext, b: TranscriptContext) -> int:
    """Summaries first (high) or last (low), then similarity, then recency."""
    if priority is not SummaryPriority.MEDIUM and a.is_summary != b.is_summary:
        summaries_first = priority is SummaryPriority.HIGH
        return -1 if a.is_summary == summaries_first else 1

    sim_a, sim_b = a.similarity or 0.0, b.similarity or 0.0
    if abs(sim_a - sim_b) > _SIMILARITY_TIE:
        return -1 if sim_a > sim_b else 1

    ts_a, ts_b = a.timestamp.timestamp(), b.timestamp.timestamp()
    if ts_a == ts_b:
        return 0
    return -1 if ts_a > ts_b else 1


def rank_context(
    items: List[TranscriptContext], analysis: QueryAnalysis
) -> List[TranscriptContext]:
    """Order merged items and cut to the query type's result cap."""
    ranked = sorted(
        items,
        key=functools.cmp_to_key(
            functools.partial(_compare_items, analysis.summary_priority)
        ),
    )
    return ranked[: RetrievalLimits.MAX_RESULTS[analysis.type.value]]


def format_context_for_prompt(context: RetrievalContext) -> str:
    """Render a retrieval context as the grounding block of a system prompt."""
    parts: List[str] = []

    analysis = context.query_analysis
    if analysis is not None:
        parts.append(
            "QUERY ANALYSIS:\n"
            f"Type: {analysis.type.value}\n"
            f"Search Strategy: {analysis.search_strategy.value}\n"
            f"Reasoning: {analysis.reasoning}\n"
        )

    if context.current_transcripts:
        lines = ["CURRENT MEETING TRANSCRIPTS:", "(This is what was just said in the live meeting)"]
        lines.extend(f"{t.speaker}: {t.text}" for t in context.current_transcripts)
        parts.append("\n".join(lines) + "\n")

    if context.historical_context:
        lines = [
            "RELEVANT HISTORICAL CONTEXT:",
            "(These are relevant excerpts from past meetings in this room)",
        ]
        summaries = [t for t in context.historical_context if t.speaker.startswith(SUMMARY_SPEAKER)]
        excerpts = [t for t in context.historical_context if not t.speaker.startswith(SUMMARY_SPEAKER)]

        if summaries:
            lines.append("\nMEETING SUMMARIES:")
            for summary in summaries:
                lines.append(f"{summary.text}\n")

        if excerpts:
            lines.append("RELEVANT TRANSCRIPT EXCERPTS:")
            by_meeting: Dict[str, List[TranscriptContext]] = {}
            for item in excerpts:
                by_meeting.setdefault(item.meeting_id, []).append(item)
            for group in sorted(
                by_meeting.values(), key=lambda g: g[0].meeting_date, reverse=True
            ):
                first = group[0]
                lines.append(
                    f"\n--- {first.meeting_type} ({first.meeting_date.strftime('%a %b %d %Y')}) ---"
                )
                for item in group:
                    relevance = (
                        f" (relevance: {item.similarity * 100:.0f}%)" if item.similarity else ""
                    )
                    lines.append(f"{item.speaker}: {item.text}{relevance}")
        parts.append("\n".join(lines))

    return "\n".join(parts)


# ---------------------------------------------------------------------------
# RetrievalService
# ---------------------------------------------------------------------------

class RetrievalService:
    """Builds ranked, room-scoped grounding context for a query."""

    def __init__(
        self,
        *,
        metadata_store: MetadataStorePort,
        embedding_provider: EmbeddingProviderPort,
        vector_store: VectorStorePort,
        classifier: Optional[QueryClassifier] = None,
    ) -> None:
        self._store = metadata_store
        self._embedder = embedding_provider
        self._vectors = vector_store
        self._classifier = classifier or HeuristicQueryClassifier()

    async def get_context(
        self,
        room_name: str,
        query: str,
        live_transcript: Optional[str] = None,
        is_live_meeting: bool = True,
    ) -> RetrievalContext:
        """Return grounding context for *query* within one room.

        Never raises. A lookup, embedding or index failure leaves the
        historical part empty; the live buffer is kept regardless.
        """
        current: List[TranscriptContext] = []
        if live_transcript and is_live_meeting:
            current = parse_live_transcript(live_transcript)

        try:
            room = await self._store.get_room_by_name(room_name)
        except Exception as exc:
            logger.error("retrieval_room_lookup_failed", room_name=room_name, error=str(exc))
            room = None
        if room is None:
            logger.info("retrieval_room_not_found", room_name=room_name)
            return RetrievalContext()

        analysis = await self._classifier.classify(query)
        logger.info(
            "query_classified",
            room_name=room_name,
            type=analysis.type.value,
            strategy=analysis.search_strategy.value,
            priority=analysis.summary_priority.value,
            threshold=analysis.adaptive_threshold,
        )

        try:
            embedding = await self._embedder.embed(query)
            historical = await self._historical_context(room.room_id, embedding, analysis)
        except Exception as exc:
            logger.error("retrieval_failed", room_name=room_name, error=str(exc))
            historical = []

        context = RetrievalContext(
            current_transcripts=current,
            historical_context=historical,
            total_relevant_transcripts=len(current) + len(historical),
            used_context=bool(current or historical),
            query_analysis=analysis,
        )
        logger.info(
            "retrieval_completed",
            room_name=room_name,
            historical=len(historical),
            current=len(current),
            used_context=context.used_context,
        )
        return context

    async def get_room_stats(self, room_name: str) -> RoomStats:
        """Aggregate counts over the room's most recent meetings; zeros on error."""
        try:
            room = await self._store.get_room_by_name(room_name)
            if room is None:
                return RoomStats()
            meetings = await self._store.list_meetings_by_room(
                room.room_id,
                limit=Defaults.ROOM_STATS_MEETING_LIMIT,
                include_transcripts=False,
            )
        except Exception as exc:
            logger.warning("room_stats_failed", room_name=room_name, error=str(exc))
            return RoomStats()

        participant_counts = Counter(
            p.name for meeting in meetings for p in meeting.participants
        )
        recent_types = list(
            dict.fromkeys(m.type for m in meetings[: Defaults.ROOM_STATS_RECENT_TYPES])
        )
        return RoomStats(
            total_meetings=len(meetings),
            total_transcripts=sum(m.transcript_count for m in meetings),
            recent_meeting_types=recent_types,
            frequent_participants=[
                name
                for name, _ in participant_counts.most_common(Defaults.ROOM_STATS_TOP_PARTICIPANTS)
            ],
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _historical_context(
        self, room_id: str, embedding: List[float], analysis: QueryAnalysis
    ) -> List[TranscriptContext]:
        top_k = RetrievalLimits.TOP_K[analysis.type.value]
        room_filter = {"roomId": room_id}

        matches = await self._vectors.query(
            embedding, top_k=top_k, filter=room_filter, threshold=analysis.adaptive_threshold
        )
        if not matches:
            logger.info(
                "retrieval_threshold_fallback",
                room_id=room_id,
                threshold=analysis.adaptive_threshold,
                fallback_threshold=Defaults.FALLBACK_THRESHOLD,
            )
            matches = await self._vectors.query(
                embedding,
                top_k=min(top_k, Defaults.FALLBACK_TOP_K),
                filter=room_filter,
                threshold=Defaults.FALLBACK_THRESHOLD,
            )
            if not matches:
                return []

        meeting_ids = list(dict.fromkeys(
            m.metadata.get("meetingId") for m in matches if m.metadata.get("meetingId")
        ))
        meetings = await self._store.get_meetings_by_ids(meeting_ids)
        by_id = {m.meeting_id: m for m in meetings}

        items = self._summary_items(meetings, analysis.summary_priority)
        for match in matches:
            meeting = by_id.get(match.metadata.get("meetingId"))
            if meeting is None:
                continue
            item = self._match_item(match, meeting, analysis.summary_priority)
            if item is not None:
                items.append(item)

        return rank_context(items, analysis)

    @staticmethod
    def _summary_items(
        meetings: List[Meeting], priority: SummaryPriority
    ) -> List[TranscriptContext]:
        """Meeting-level summary entries, weighted by summary priority."""
        if priority is SummaryPriority.LOW:
            return []
        items: List[TranscriptContext] = []
        for meeting in meetings:
            if meeting.summary is None or not meeting.summary.content:
                continue
            items.append(
                TranscriptContext(
                    speaker=SUMMARY_SPEAKER,
                    text=f"Meeting Summary: {meeting.summary.content}",
                    timestamp=meeting.started_at,
                    meeting_id=meeting.meeting_id,
                    meeting_type=_meeting_label(meeting),
                    meeting_date=meeting.started_at,
                    similarity=0.95 if priority is SummaryPriority.HIGH else 0.80,
                )
            )
            if priority is not SummaryPriority.HIGH:
                continue
            for index, section in enumerate(meeting.summary.sections):
                if not section.title or not section.points:
                    continue
                items.append(
                    TranscriptContext(
                        speaker=SUMMARY_SECTION_SPEAKER,
                        text=f"{section.title}: " + "; ".join(p.text for p in section.points),
                        timestamp=meeting.started_at,
                        meeting_id=meeting.meeting_id,
                        meeting_type=f"{meeting.type} - {section.title}",
                        meeting_date=meeting.started_at,
                        similarity=0.90 - index * 0.05,
                    )
                )
        return items

    @staticmethod
    def _match_item(
        match: VectorMatch, meeting: Meeting, priority: SummaryPriority
    ) -> Optional[TranscriptContext]:
        metadata = match.metadata
        if metadata.get("kind") == VectorKind.SUMMARY.value:
            # Medium/high priority already carry this meeting's summary
            if priority is not SummaryPriority.LOW:
                return None
            content = meeting.summary.content if meeting.summary else ""
            return TranscriptContext(
                speaker=SUMMARY_SPEAKER,
                text=f"Meeting Summary: {content or metadata.get('text', '')}",
                timestamp=meeting.started_at,
                meeting_id=meeting.meeting_id,
                meeting_type=_meeting_label(meeting),
                meeting_date=meeting.started_at,
                similarity=match.score,
            )
        return TranscriptContext(
            speaker=metadata.get("speaker", "Unknown"),
            text=metadata.get("text", ""),
            timestamp=metadata.get("timestamp") or meeting.started_at,
            meeting_id=meeting.meeting_id,
            meeting_type=_meeting_label(meeting),
            meeting_date=metadata.get("meetingDate") or meeting.started_at,
            similarity=match.score,
        )
