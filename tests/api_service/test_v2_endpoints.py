"""
Tests for the v2 API endpoints.

Covers: health, chat streaming (SSE), chat history, meeting end
(202 / 404 / 409) and meeting status polling.

The app runs against in-memory stores and scripted models, so no AWS
or model provider is contacted.
"""

import asyncio
import json
from typing import List

import pytest
from fastapi.testclient import TestClient

from api_service.src.main import create_app, limiter
from conftest import BASE_SETTINGS_KWARGS, FakeEmbeddingProvider, FakeLLM
from domain.models import ChatMessage, ProcessingStatus
from services.conversation_service import session_key
from services.processing_orchestrator import NOTHING_TO_PROCESS
from shared_utils.config_loader import Settings
from shared_utils.di_container import build_container

SUMMARY_REPLY = json.dumps({
    "title": "API refactor standup",
    "content": "Bob finished the API refactor.",
    "action_items": [{"title": "Finish tests", "owner": "Bob"}],
})


def _parse_sse(body: str) -> List:
    """Split an SSE body into decoded payloads ("[DONE]" kept verbatim)."""
    events = []
    for block in body.split("\n\n"):
        if not block.strip():
            continue
        assert block.startswith("data: ")
        data = block[len("data: "):]
        events.append(data if data == "[DONE]" else json.loads(data))
    return events


@pytest.fixture()
def container(metadata_store, session_store):
    settings = Settings(**BASE_SETTINGS_KWARGS, model_retry_delay_seconds=0)
    return build_container(
        settings,
        metadata_store=metadata_store,
        session_store=session_store,
        embedding_provider=FakeEmbeddingProvider(),
        chat_models=[FakeLLM("primary")],
        summary_llm=FakeLLM("summary", chunks=(SUMMARY_REPLY,)),
        notifier=None,
        web_search=None,
    )


@pytest.fixture()
def client(container):
    limiter.reset()
    with TestClient(create_app(container)) as test_client:
        yield test_client


@pytest.fixture()
def seeded(metadata_store, sample_room, sample_meeting):
    async def seed():
        await metadata_store.put_room(sample_room)
        await metadata_store.put_meeting(sample_meeting)

    asyncio.run(seed())
    return sample_meeting


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


class TestHealth:
    def test_health_returns_200(self, client) -> None:
        response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["environment"] == "development"
        assert body["chat_models"] == ["primary"]


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------


class TestChatStream:
    def test_streams_events_then_done(self, client) -> None:
        response = client.post(
            "/api/v2/chat/stream",
            json={"message": "What did Bob work on?", "room_name": "daily-standup", "user_name": "Alice"},
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        events = _parse_sse(response.text)
        assert events[-1] == "[DONE]"
        assert [e["type"] for e in events[:-1]] == ["metadata", "context", "text", "text", "complete"]
        assert events[-2]["content"] == "Hello there"
        assert events[-2]["model"] == "primary"

    def test_exchange_recorded_in_history(self, client) -> None:
        client.post("/api/v2/chat/stream", json={"message": "Hi", "room_name": "daily-standup"})

        body = client.get("/api/v2/chat/daily-standup/history").json()
        assert body["room_name"] == "daily-standup"
        assert [(m["role"], m["content"]) for m in body["messages"]] == [
            ("user", "Hi"),
            ("assistant", "Hello there"),
        ]

    @pytest.mark.parametrize(
        "payload",
        [
            {"message": "   ", "room_name": "daily-standup"},
            {"message": "x" * 4001, "room_name": "daily-standup"},
            {"message": "hello", "room_name": "bad room/name"},
        ],
    )
    def test_invalid_input_is_400(self, client, payload) -> None:
        response = client.post("/api/v2/chat/stream", json=payload)
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_INPUT"

    def test_missing_field_is_422(self, client) -> None:
        assert client.post("/api/v2/chat/stream", json={"message": "hi"}).status_code == 422

    def test_all_models_down_streams_error_event(self, metadata_store, session_store, overloaded_error) -> None:
        container = build_container(
            Settings(**BASE_SETTINGS_KWARGS, model_retry_delay_seconds=0),
            metadata_store=metadata_store,
            session_store=session_store,
            embedding_provider=FakeEmbeddingProvider(),
            chat_models=[FakeLLM("a", error=overloaded_error), FakeLLM("b", error=overloaded_error)],
            summary_llm=FakeLLM("summary"),
            notifier=None,
            web_search=None,
        )
        limiter.reset()
        with TestClient(create_app(container)) as client:
            response = client.post("/api/v2/chat/stream", json={"message": "Hi", "room_name": "daily-standup"})

        assert response.status_code == 200
        events = _parse_sse(response.text)
        assert events[-1] == "[DONE]"
        assert events[-2]["type"] == "error"


class TestChatHistory:
    def test_unknown_room_is_empty(self, client) -> None:
        assert client.get("/api/v2/chat/nobody-here/history").json()["messages"] == []

    def test_delete_clears(self, client, session_store) -> None:
        asyncio.run(session_store.append(session_key("daily-standup"), [ChatMessage(role="user", content="Hi")], 20))

        response = client.delete("/api/v2/chat/daily-standup/history")
        assert response.status_code == 200
        assert response.json() == {"room_name": "daily-standup", "cleared": True}
        assert client.get("/api/v2/chat/daily-standup/history").json()["messages"] == []


# ---------------------------------------------------------------------------
# Meetings
# ---------------------------------------------------------------------------


class TestMeetingEnd:
    def test_accepted_and_processed(self, container, seeded, sample_transcripts, sample_participants) -> None:
        limiter.reset()
        with TestClient(create_app(container)) as client:
            response = client.post(
                "/api/v2/meetings/daily-standup/end",
                json={
                    "meeting_id": "m-1",
                    "transcripts": [t.model_dump(mode="json") for t in sample_transcripts],
                    "participants": [p.model_dump(mode="json") for p in sample_participants],
                },
            )
            assert response.status_code == 202
            body = response.json()
            assert body["success"] is True
            assert body["background_processing_started"] is True
        # leaving the client runs the lifespan shutdown, which drains background work

        meeting = asyncio.run(container.metadata_store.get_meeting("m-1"))
        assert meeting.processing_status is ProcessingStatus.COMPLETED
        assert meeting.summary.title == "API refactor standup"

    def test_unknown_meeting_is_404(self, client) -> None:
        response = client.post("/api/v2/meetings/daily-standup/end", json={"meeting_id": "m-404"})
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"

    def test_already_claimed_is_409(self, client, metadata_store, seeded) -> None:
        asyncio.run(metadata_store.update_meeting("m-1", {"processing_status": ProcessingStatus.IN_PROGRESS}))

        response = client.post("/api/v2/meetings/daily-standup/end", json={"meeting_id": "m-1"})
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "STATUS_CONFLICT"

    def test_blank_meeting_id_is_400(self, client) -> None:
        response = client.post("/api/v2/meetings/daily-standup/end", json={"meeting_id": " "})
        assert response.status_code == 400


class TestMeetingStatus:
    def test_pending_meeting(self, client, seeded) -> None:
        response = client.get("/api/v2/meetings/m-1/status")
        assert response.status_code == 200
        body = response.json()
        assert body["meeting_id"] == "m-1"
        assert body["processing_status"] == "pending"
        assert body["has_summary"] is False
        assert "transcripts" not in body

    def test_empty_meeting_reports_note(self, client, metadata_store, seeded) -> None:
        asyncio.run(metadata_store.update_meeting("m-1", {
            "processing_status": ProcessingStatus.COMPLETED,
            "processing_note": NOTHING_TO_PROCESS,
        }))

        body = client.get("/api/v2/meetings/m-1/status").json()
        assert body["processing_status"] == "completed"
        assert body["processing_note"] == NOTHING_TO_PROCESS
        assert body.get("processing_error") is None

    def test_unknown_meeting_is_404(self, client) -> None:
        assert client.get("/api/v2/meetings/m-404/status").status_code == 404
