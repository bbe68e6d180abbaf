"""
Root conftest.py: shared fixtures for the entire test suite.

Guidelines:
    • No __init__.py in test sub-directories (avoids shadowing root packages).
    • pytest.ini_options lives in pyproject.toml with pythonpath=["."].
    • Markers: integration.
"""

import math
import zlib
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Sequence

import pytest

from adapters.in_memory_metadata_store import InMemoryMetadataStoreAdapter
from adapters.in_memory_session_store import InMemorySessionStoreAdapter
from adapters.in_memory_vector_store import InMemoryVectorStoreAdapter
from domain.models import (
    ChatMessage,
    Meeting,
    Participant,
    Room,
    TranscriptEntry,
)
from shared_utils.error_handler import ModelError


# ---------------------------------------------------------------------------
# Marker registration
# ---------------------------------------------------------------------------

def pytest_configure(config):
    config.addinivalue_line("markers", "integration: mark test as integration test")


# ---------------------------------------------------------------------------
# Minimal required settings kwargs for Settings(**BASE_SETTINGS_KWARGS)
# ---------------------------------------------------------------------------

BASE_SETTINGS_KWARGS: Dict[str, str] = {
    "llm_provider": "bedrock",
    "embed_provider": "bedrock",
    "bedrock_region": "eu-west-2",
    "environment": "development",
}


@pytest.fixture()
def base_settings_kwargs() -> Dict[str, str]:
    """Provide the minimal kwargs needed to instantiate ``Settings``."""
    return {**BASE_SETTINGS_KWARGS}


# ---------------------------------------------------------------------------
# Deterministic model doubles
# ---------------------------------------------------------------------------

EMBED_DIM = 64


def _bag_of_words(text: str) -> List[float]:
    """Hashed bag-of-words vector: shared words mean higher cosine similarity."""
    vector = [0.0] * EMBED_DIM
    for word in text.lower().replace(":", " ").replace("?", " ").split():
        vector[zlib.crc32(word.encode()) % EMBED_DIM] += 1.0
    norm = math.sqrt(sum(v * v for v in vector)) or 1.0
    return [v / norm for v in vector]


class FakeEmbeddingProvider:
    """EmbeddingProviderPort double that records every text it embeds."""

    def __init__(self) -> None:
        self.calls: List[List[str]] = []

    async def embed(self, text: str) -> List[float]:
        self.calls.append([text])
        return _bag_of_words(text)

    async def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        self.calls.append(list(texts))
        return [_bag_of_words(t) for t in texts]


class FakeLLM:
    """LLMProviderPort double with a scripted reply or failure."""

    def __init__(
        self,
        model_id: str = "fake-model",
        chunks: Sequence[str] = ("Hello", " there"),
        error: Optional[Exception] = None,
        fail_after: int = 0,
    ) -> None:
        self.model_id = model_id
        self.chunks = list(chunks)
        self.error = error
        self.fail_after = fail_after
        self.calls: List[Dict] = []

    async def complete(self, system_prompt, messages, *, max_tokens=1000, temperature=0.7, timeout=None) -> str:
        self.calls.append({"system_prompt": system_prompt, "messages": list(messages), "timeout": timeout})
        if self.error is not None:
            raise self.error
        return "".join(self.chunks)

    async def stream(self, system_prompt, messages, *, max_tokens=1000, temperature=0.7, timeout=None):
        self.calls.append({"system_prompt": system_prompt, "messages": list(messages), "timeout": timeout})
        for i, chunk in enumerate(self.chunks):
            if self.error is not None and i >= self.fail_after:
                raise self.error
            yield chunk
        if self.error is not None:
            raise self.error


@pytest.fixture()
def embedder() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture()
def make_llm() -> Callable[..., FakeLLM]:
    """Factory for scripted chat models."""
    return FakeLLM


@pytest.fixture()
def overloaded_error() -> ModelError:
    return ModelError("Model overloaded", retryable=True)


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------

@pytest.fixture()
def metadata_store() -> InMemoryMetadataStoreAdapter:
    return InMemoryMetadataStoreAdapter()


@pytest.fixture()
def vector_store() -> InMemoryVectorStoreAdapter:
    return InMemoryVectorStoreAdapter()


@pytest.fixture()
def session_store() -> InMemorySessionStoreAdapter:
    return InMemorySessionStoreAdapter(ttl_seconds=3600)


# ---------------------------------------------------------------------------
# Domain object factories
# ---------------------------------------------------------------------------

BASE_TIME = datetime(2026, 1, 15, 9, 0, tzinfo=timezone.utc)


def make_transcripts(lines: Sequence[tuple], start: datetime = BASE_TIME) -> List[TranscriptEntry]:
    """(speaker, text, seconds offset) tuples to TranscriptEntry objects."""
    return [
        TranscriptEntry(speaker=speaker, text=text, timestamp=start + timedelta(seconds=offset))
        for speaker, text, offset in lines
    ]


STANDUP_LINES = [
    ("Alice", "Hello everyone, welcome to the standup.", 0),
    ("Bob", "I worked on the API refactoring yesterday.", 15),
    ("Alice", "Great, any blockers?", 30),
    ("Bob", "No blockers. I will finish the tests today.", 45),
    ("Carol", "I am working on the deployment pipeline.", 60),
]


@pytest.fixture()
def sample_transcripts() -> List[TranscriptEntry]:
    return make_transcripts(STANDUP_LINES)


@pytest.fixture()
def sample_participants() -> List[Participant]:
    return [
        Participant(name="Alice", email="alice@example.com"),
        Participant(name="Bob", email="bob@example.com"),
        Participant(name="Carol"),
    ]


@pytest.fixture()
def sample_room(sample_participants) -> Room:
    return Room(
        room_id="room-1",
        room_name="daily-standup",
        title="Daily Standup",
        type="Standup",
        participants=sample_participants,
    )


@pytest.fixture()
def sample_meeting(sample_participants) -> Meeting:
    return Meeting(
        meeting_id="m-1",
        room_id="room-1",
        room_name="daily-standup",
        type="Standup",
        started_at=BASE_TIME,
        ended_at=BASE_TIME + timedelta(minutes=15),
        participants=sample_participants,
    )


@pytest.fixture()
def chat_history() -> List[ChatMessage]:
    return [
        ChatMessage(role="user", content="What did Bob work on?"),
        ChatMessage(role="assistant", content="Bob worked on the API refactoring."),
    ]


@pytest.fixture()
def transcript_factory() -> Callable[..., List[TranscriptEntry]]:
    return make_transcripts
