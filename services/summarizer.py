"""
Meeting summarizer.

Turns a deduplicated transcript into a structured MeetingSummary with a
single LLM call. Any model or parsing failure yields a deterministic
fallback summary, so meeting processing never stalls on a model outage.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Sequence

from domain.models import (
    ActionItem,
    ChatMessage,
    MeetingSummary,
    Participant,
    PointContext,
    SummaryPoint,
    SummarySection,
    TaskPriority,
    TranscriptEntry,
    ensure_aware,
    utc_now,
)
from ports.llm_provider import LLMProviderPort
from shared_utils.constants import Defaults, LogScope, UNASSIGNED_OWNER
from shared_utils.logging_utils import get_scoped_logger, log_execution

logger = get_scoped_logger(LogScope.SUMMARIZER)


SUMMARY_SYSTEM_PROMPT = """You are a meeting analysis AI. Analyze the transcript and create detailed meeting notes in JSON format.

ADAPTIVE APPROACH:
- Short or simple conversations: 1-2 sections
- Medium meetings (10-30 minutes): 2-4 sections with moderate detail
- Long meetings (30+ minutes): 3-6 sections with comprehensive detail
- Let the content of the discussion drive the structure

REQUIRED JSON STRUCTURE:
{
  "title": "concise 4-8 word title based on the main topic",
  "content": "2-3 sentence overall summary",
  "sections": [
    {
      "title": "descriptive section name",
      "points": [
        {
          "text": "substantive bullet point with specific information",
          "speaker": "person who raised it, if identifiable",
          "context": {
            "speaker": "person who said this",
            "reasoning": "why they said it",
            "transcript_excerpt": "the key quote from the transcript",
            "related_discussion": "surrounding conversation"
          }
        }
      ]
    }
  ],
  "action_items": [
    {
      "title": "specific task",
      "owner": "participant responsible, or 'Unassigned'",
      "priority": "HIGH|MEDIUM|LOW",
      "due_date": "YYYY-MM-DD or null",
      "context": "why the task is needed"
    }
  ],
  "decisions": ["clear decisions made during the meeting"]
}

Return only valid JSON."""

# camelCase spellings some models return
_KEY_ALIASES = {
    "actionItems": "action_items",
    "dueDate": "due_date",
    "transcriptExcerpt": "transcript_excerpt",
    "relatedDiscussion": "related_discussion",
}


def format_transcript(
    transcripts: Sequence[TranscriptEntry],
    max_chars: int = Defaults.SUMMARY_TRANSCRIPT_MAX_CHARS,
) -> str:
    """``[HH:MM] speaker: text`` lines, truncated with a trailing ``...``."""
    text = "\n".join(
        f"[{ensure_aware(t.timestamp).strftime('%H:%M')}] {t.speaker}: {t.text.strip()}"
        for t in transcripts
    )
    if len(text) > max_chars:
        return text[:max_chars] + "..."
    return text


def fallback_summary(meeting_type: str, participant_count: int) -> MeetingSummary:
    """Generic summary used whenever the model cannot produce one."""
    return MeetingSummary(
        title=f"{meeting_type} Session",
        content=f"{meeting_type} session with {participant_count} participants completed successfully.",
        sections=[
            SummarySection(
                title="Meeting Notes",
                points=[
                    SummaryPoint(text="Meeting completed successfully"),
                    SummaryPoint(text="Participants engaged in discussion"),
                    SummaryPoint(text="Transcripts recorded for reference"),
                ],
            )
        ],
        action_items=[
            ActionItem(
                title="Review meeting transcripts",
                owner=UNASSIGNED_OWNER,
                priority=TaskPriority.MEDIUM,
                context="Follow up on meeting discussion",
            ),
            ActionItem(
                title="Follow up on discussed topics",
                owner=UNASSIGNED_OWNER,
                priority=TaskPriority.MEDIUM,
                context="Ensure action items are addressed",
            ),
        ],
        decisions=[
            "Meeting summary generated",
            "Transcripts stored for future reference",
        ],
        generated_at=utc_now(),
        is_fallback=True,
    )


def _normalize_keys(value: Any) -> Any:
    if isinstance(value, dict):
        return {_KEY_ALIASES.get(k, k): _normalize_keys(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_normalize_keys(v) for v in value]
    return value


def parse_summary(raw: str) -> MeetingSummary:
    """Parse a model reply into a MeetingSummary.

    Raises:
        ValueError: If the reply holds no parsable JSON object.
    """
    start, end = raw.find("{"), raw.rfind("}")
    if start == -1 or end <= start:
        raise ValueError("summary reply contains no JSON object")
    data: Dict[str, Any] = _normalize_keys(json.loads(raw[start : end + 1]))

    sections: List[SummarySection] = []
    for section in data.get("sections") or []:
        if not isinstance(section, dict) or not section.get("title"):
            continue
        points: List[SummaryPoint] = []
        for point in section.get("points") or []:
            if isinstance(point, str):
                points.append(SummaryPoint(text=point))
            elif isinstance(point, dict) and point.get("text"):
                context = point.get("context")
                points.append(
                    SummaryPoint(
                        text=str(point["text"]),
                        speaker=point.get("speaker"),
                        context=PointContext(**context) if isinstance(context, dict) else None,
                    )
                )
        sections.append(SummarySection(title=str(section["title"]), points=points))

    action_items: List[Any] = []
    for item in data.get("action_items") or []:
        if isinstance(item, str):
            if item.strip():
                action_items.append(item.strip())
        elif isinstance(item, dict) and item.get("title"):
            try:
                priority = TaskPriority(str(item.get("priority") or "MEDIUM").upper())
            except ValueError:
                priority = TaskPriority.MEDIUM
            action_items.append(
                ActionItem(
                    title=str(item["title"]),
                    owner=str(item.get("owner") or UNASSIGNED_OWNER),
                    priority=priority,
                    due_date=item.get("due_date") or None,
                    context=item.get("context"),
                )
            )

    return MeetingSummary(
        title=str(data.get("title") or ""),
        content=str(data.get("content") or ""),
        sections=sections,
        action_items=action_items,
        decisions=[str(d) for d in data.get("decisions") or [] if d],
        generated_at=utc_now(),
    )


class SummarizerService:
    """Generates structured meeting summaries with a fallback path."""

    def __init__(
        self,
        *,
        llm: LLMProviderPort,
        timeout_base_seconds: float = Defaults.LLM_TIMEOUT_BASE_SECONDS,
        timeout_per_1k_chars: float = Defaults.LLM_TIMEOUT_PER_1K_CHARS,
        timeout_max_seconds: float = Defaults.LLM_TIMEOUT_MAX_SECONDS,
    ) -> None:
        self._llm = llm
        self._timeout_base = timeout_base_seconds
        self._timeout_per_1k = timeout_per_1k_chars
        self._timeout_max = timeout_max_seconds

    def timeout_for(self, transcript_chars: int) -> float:
        """LLM timeout scaled by transcript size."""
        scaled = self._timeout_base + self._timeout_per_1k * transcript_chars / 1000
        return min(scaled, self._timeout_max)

    @log_execution(scope=LogScope.SUMMARIZER)
    async def summarize(
        self,
        meeting_type: str,
        transcripts: Sequence[TranscriptEntry],
        participants: Optional[Sequence[Participant]] = None,
    ) -> MeetingSummary:
        """Summarize a meeting; never raises."""
        participants = list(participants or [])
        if not transcripts:
            return fallback_summary(meeting_type, len(participants))

        transcript_text = format_transcript(transcripts)
        user_prompt = (
            f"Meeting Type: {meeting_type}\n"
            f"Participants: {', '.join(p.name for p in participants)}\n"
            f"Transcript: {transcript_text}\n\n"
            "Return only valid JSON."
        )
        timeout = self.timeout_for(len(transcript_text))
        try:
            raw = await self._llm.complete(
                SUMMARY_SYSTEM_PROMPT,
                [ChatMessage(role="user", content=user_prompt)],
                max_tokens=Defaults.SUMMARY_MAX_TOKENS,
                temperature=Defaults.SUMMARY_TEMPERATURE,
                timeout=timeout,
            )
            summary = parse_summary(raw)
        except Exception as exc:
            logger.warning(
                "summary_generation_failed",
                model_id=getattr(self._llm, "model_id", None),
                timeout=timeout,
                error=str(exc),
            )
            return fallback_summary(meeting_type, len(participants))

        logger.info(
            "summary_generated",
            sections=len(summary.sections),
            action_items=len(summary.action_items),
            decisions=len(summary.decisions),
        )
        return summary
