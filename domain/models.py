"""
Pure domain models for the Meeting Intelligence Pipeline.

These models contain NO AWS or LLM SDK dependencies. They represent core
business concepts that flow through ports and services.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field


def utc_now() -> datetime:
    """Timezone-aware current UTC time; all stored timestamps are aware."""
    return datetime.now(timezone.utc)


def ensure_aware(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so mixed inputs stay comparable."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class ProcessingStatus(str, Enum):
    """Post-meeting processing state.

    Moves forward only: pending -> in_progress -> summary_completed ->
    completed (steps may be skipped, e.g. an empty meeting completes
    straight from in_progress), or sideways into failed from any
    non-terminal state.
    """

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    SUMMARY_COMPLETED = "summary_completed"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ProcessingStatus.COMPLETED, ProcessingStatus.FAILED)

    def can_transition_to(self, new: "ProcessingStatus") -> bool:
        """True when ``self -> new`` is a legal forward move."""
        if self.is_terminal:
            return False
        if new is ProcessingStatus.FAILED:
            return True
        return _STATUS_ORDER.index(new) > _STATUS_ORDER.index(self)


_STATUS_ORDER = [
    ProcessingStatus.PENDING,
    ProcessingStatus.IN_PROGRESS,
    ProcessingStatus.SUMMARY_COMPLETED,
    ProcessingStatus.COMPLETED,
]


class QueryType(str, Enum):
    COMPREHENSIVE = "comprehensive"
    TARGETED = "targeted"
    SPECIFIC = "specific"


class SearchStrategy(str, Enum):
    LOCAL_ONLY = "local_only"
    LOCAL_FIRST = "local_first"
    WEB_REQUIRED = "web_required"


class SummaryPriority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class TaskPriority(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class ReviewStatus(str, Enum):
    PENDING_REVIEW = "pending_review"
    APPROVED = "approved"
    REJECTED = "rejected"


class VectorKind(str, Enum):
    TRANSCRIPT = "transcript"
    SUMMARY = "summary"


# ---------------------------------------------------------------------------
# Rooms, meetings, transcripts
# ---------------------------------------------------------------------------


class Participant(BaseModel):
    """A person on a room roster or in a meeting."""

    name: str = "Participant"
    email: Optional[str] = None
    role: Optional[str] = None


class Room(BaseModel):
    """Long-lived meeting room; many meetings per room."""

    room_id: str
    room_name: str
    title: str = ""
    type: str = "Meeting"
    recurrence: Optional[str] = None
    participants: List[Participant] = []
    created_at: Optional[datetime] = None


class TranscriptEntry(BaseModel):
    """One spoken line; the unit indexed for retrieval. Never mutated."""

    speaker: str
    text: str
    timestamp: datetime
    speaker_confidence: Optional[float] = None


class PointContext(BaseModel):
    speaker: Optional[str] = None
    reasoning: Optional[str] = None
    transcript_excerpt: Optional[str] = None
    related_discussion: Optional[str] = None


class SummaryPoint(BaseModel):
    text: str
    speaker: Optional[str] = None
    context: Optional[PointContext] = None


class SummarySection(BaseModel):
    title: str
    points: List[SummaryPoint] = []


class ActionItem(BaseModel):
    title: str
    owner: str = "Unassigned"
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: Optional[str] = None
    context: Optional[str] = None


class MeetingSummary(BaseModel):
    """Structured post-meeting summary."""

    title: str = ""
    content: str = ""
    sections: List[SummarySection] = []
    # Older summaries carry plain-string action items.
    action_items: List[Union[ActionItem, str]] = []
    decisions: List[str] = []
    generated_at: Optional[datetime] = None
    is_fallback: bool = False


class Meeting(BaseModel):
    """Meeting record (maps to a document-store item).

    ``transcripts`` holds metadata only; vectors live in the vector index.
    """

    meeting_id: str
    room_id: str
    room_name: str = ""
    title: str = ""
    type: str = "Meeting"
    started_at: datetime
    ended_at: Optional[datetime] = None
    participants: List[Participant] = []
    transcripts: List[TranscriptEntry] = []
    summary: Optional[MeetingSummary] = None

    processing_status: ProcessingStatus = ProcessingStatus.PENDING
    transcript_count: int = 0
    has_embeddings: bool = False

    processing_started_at: Optional[datetime] = None
    embeddings_generated_at: Optional[datetime] = None
    summary_generated_at: Optional[datetime] = None
    processing_completed_at: Optional[datetime] = None
    processing_failed_at: Optional[datetime] = None
    processing_error: Optional[str] = None
    processing_note: Optional[str] = None
    embedding_error: Optional[str] = None
    embedding_error_at: Optional[datetime] = None


class Task(BaseModel):
    """Task created from a meeting action item."""

    task_id: str
    room_id: str
    meeting_id: str
    title: str
    description: str = ""
    priority: TaskPriority = TaskPriority.MEDIUM
    assigned_to_name: Optional[str] = None
    due_date: Optional[datetime] = None
    is_ai_generated: bool = False
    ai_confidence: Optional[float] = None
    created_by_name: str = ""
    review_status: ReviewStatus = ReviewStatus.PENDING_REVIEW
    meeting_title: Optional[str] = None
    meeting_date: Optional[datetime] = None
    created_at: Optional[datetime] = None


# ---------------------------------------------------------------------------
# Vector index
# ---------------------------------------------------------------------------


class VectorRecord(BaseModel):
    """A single embedding vector with metadata for storage."""

    key: str
    embedding: List[float]
    metadata: Dict[str, Any] = {}


class VectorMatch(BaseModel):
    """A scored query hit. Vectors are not returned on search."""

    key: str
    score: float
    metadata: Dict[str, Any] = {}


class IndexingReport(BaseModel):
    meeting_id: str
    vectors_indexed: int = 0
    duplicates_removed: int = 0
    empty_removed: int = 0
    duration_ms: float = 0.0


# ---------------------------------------------------------------------------
# Retrieval
# ---------------------------------------------------------------------------


class QueryAnalysis(BaseModel):
    type: QueryType = QueryType.TARGETED
    search_strategy: SearchStrategy = SearchStrategy.LOCAL_FIRST
    summary_priority: SummaryPriority = SummaryPriority.MEDIUM
    adaptive_threshold: float = 0.3
    reasoning: str = ""


class TranscriptContext(BaseModel):
    """One ranked context item handed to the answer model."""

    speaker: str
    text: str
    timestamp: datetime
    meeting_id: str
    meeting_type: str
    meeting_date: datetime
    similarity: Optional[float] = None

    @property
    def is_summary(self) -> bool:
        return "AI Summary" in self.speaker


class RetrievalContext(BaseModel):
    """Ephemeral result of a retrieval query; never persisted."""

    current_transcripts: List[TranscriptContext] = []
    historical_context: List[TranscriptContext] = []
    total_relevant_transcripts: int = 0
    used_context: bool = False
    query_analysis: Optional[QueryAnalysis] = None

    @property
    def search_strategy(self) -> Optional[SearchStrategy]:
        return self.query_analysis.search_strategy if self.query_analysis else None


class RoomStats(BaseModel):
    total_meetings: int = 0
    total_transcripts: int = 0
    recent_meeting_types: List[str] = []
    frequent_participants: List[str] = []


# ---------------------------------------------------------------------------
# Conversation
# ---------------------------------------------------------------------------


class ChatMessage(BaseModel):
    role: str  # "user" | "assistant"
    content: str
    timestamp: datetime = Field(default_factory=lambda: utc_now())


class StreamEventType(str, Enum):
    METADATA = "metadata"
    CONTEXT = "context"
    TEXT = "text"
    RETRY = "retry"
    COMPLETE = "complete"
    ERROR = "error"


class StreamEvent(BaseModel):
    """One event of the conversational answer stream."""

    type: StreamEventType
    data: Dict[str, Any] = {}

    def to_payload(self) -> Dict[str, Any]:
        return {"type": self.type.value, **self.data}


class WebSearchResult(BaseModel):
    title: str
    url: str
    snippet: str = ""


# ---------------------------------------------------------------------------
# Processing
# ---------------------------------------------------------------------------


class ProcessingResult(BaseModel):
    meeting_id: str
    success: bool
    background_processing_started: bool = False
    message: str = ""
    status: Optional[ProcessingStatus] = None
    transcripts_stored: int = 0
    tasks_created: int = 0
