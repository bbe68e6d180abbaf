"""
Unit tests for domain models.

Validates pure domain types with no AWS dependencies.
"""

import pytest
from datetime import datetime, timezone

from domain.models import (
    ActionItem,
    Meeting,
    MeetingSummary,
    ProcessingStatus,
    StreamEvent,
    StreamEventType,
    TranscriptContext,
    ensure_aware,
)


class TestProcessingStatus:
    def test_values(self) -> None:
        assert ProcessingStatus.PENDING == "pending"
        assert ProcessingStatus.SUMMARY_COMPLETED == "summary_completed"

    def test_terminal_states(self) -> None:
        assert ProcessingStatus.COMPLETED.is_terminal
        assert ProcessingStatus.FAILED.is_terminal
        assert not ProcessingStatus.IN_PROGRESS.is_terminal

    @pytest.mark.parametrize(
        "current,new",
        [
            (ProcessingStatus.PENDING, ProcessingStatus.IN_PROGRESS),
            (ProcessingStatus.IN_PROGRESS, ProcessingStatus.SUMMARY_COMPLETED),
            (ProcessingStatus.SUMMARY_COMPLETED, ProcessingStatus.COMPLETED),
            (ProcessingStatus.IN_PROGRESS, ProcessingStatus.COMPLETED),
            (ProcessingStatus.PENDING, ProcessingStatus.FAILED),
            (ProcessingStatus.SUMMARY_COMPLETED, ProcessingStatus.FAILED),
        ],
    )
    def test_forward_transitions_allowed(self, current, new) -> None:
        assert current.can_transition_to(new)

    @pytest.mark.parametrize(
        "current,new",
        [
            (ProcessingStatus.IN_PROGRESS, ProcessingStatus.PENDING),
            (ProcessingStatus.SUMMARY_COMPLETED, ProcessingStatus.IN_PROGRESS),
            (ProcessingStatus.IN_PROGRESS, ProcessingStatus.IN_PROGRESS),
            (ProcessingStatus.COMPLETED, ProcessingStatus.FAILED),
            (ProcessingStatus.FAILED, ProcessingStatus.PENDING),
            (ProcessingStatus.COMPLETED, ProcessingStatus.COMPLETED),
        ],
    )
    def test_backward_and_terminal_transitions_refused(self, current, new) -> None:
        assert not current.can_transition_to(new)


class TestEnsureAware:
    def test_naive_treated_as_utc(self) -> None:
        value = ensure_aware(datetime(2026, 1, 1, 12, 0))
        assert value.tzinfo is timezone.utc

    def test_aware_unchanged(self) -> None:
        aware = datetime(2026, 1, 1, tzinfo=timezone.utc)
        assert ensure_aware(aware) is aware


class TestMeeting:
    def test_defaults(self) -> None:
        meeting = Meeting(meeting_id="m-1", room_id="r-1", started_at=datetime(2026, 1, 1))
        assert meeting.processing_status is ProcessingStatus.PENDING
        assert meeting.transcripts == []
        assert meeting.summary is None
        assert not meeting.has_embeddings

    def test_summary_accepts_plain_string_action_items(self) -> None:
        summary = MeetingSummary(action_items=["Ship it", ActionItem(title="Write docs")])
        assert summary.action_items[0] == "Ship it"
        assert isinstance(summary.action_items[1], ActionItem)
        assert summary.action_items[1].owner == "Unassigned"


class TestTranscriptContext:
    def test_summary_detection(self) -> None:
        now = datetime(2026, 1, 1, tzinfo=timezone.utc)
        common = dict(text="x", timestamp=now, meeting_id="m", meeting_type="t", meeting_date=now)
        assert TranscriptContext(speaker="AI Summary", **common).is_summary
        assert TranscriptContext(speaker="AI Summary Section", **common).is_summary
        assert not TranscriptContext(speaker="Alice", **common).is_summary


class TestStreamEvent:
    def test_payload_flattens_data(self) -> None:
        event = StreamEvent(type=StreamEventType.TEXT, data={"content": "hi", "complete": False})
        assert event.to_payload() == {"type": "text", "content": "hi", "complete": False}
