"""
Conversational orchestrator: grounded, streamed answers with model fallback.

Flow:  record user turn → (web search) → retrieval → system prompt →
stream from the first chat model that works → record assistant turn.

The event stream always ends with exactly one ``complete`` or ``error``
event. Text already emitted is never retracted; a fallback model starts a
fresh answer after a ``retry`` event.
"""

from __future__ import annotations

import asyncio
import re
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, List, Optional, Sequence, Tuple

from domain.models import (
    ChatMessage,
    RetrievalContext,
    RoomStats,
    StreamEvent,
    StreamEventType,
    WebSearchResult,
)
from ports.llm_provider import LLMProviderPort
from ports.session_store import SessionStorePort
from ports.web_search import WebSearchPort
from services.retrieval_service import RetrievalService, format_context_for_prompt
from shared_utils.constants import Defaults, LogScope, WebSearchMode
from shared_utils.error_handler import ConfigurationError, is_retryable_error
from shared_utils.logging_utils import get_scoped_logger

logger = get_scoped_logger(LogScope.CONVERSATION)

CITATION_PATTERN = re.compile(r"\[(\d+)\]\s*\(([^)]+)\)")

ASSISTANT_PROMPT = """You are Aura, a helpful AI assistant for video meetings. Be concise and direct in your responses.

CAPABILITIES:
- Meeting summaries, decisions, action items
- Task management and participant assignments
- Conversation analysis and participant interactions
- General meeting assistance and advice

RESPONSE STYLE:
- Keep responses brief and to the point
- Use bullet points or numbered lists when appropriate
- Focus on actionable information
- If context is extensive, summarize key points only

RESPONSE GUIDELINES:
- When you have relevant context, use it confidently to provide specific answers
- Quote exact phrases from transcripts when available
- Reference meeting dates and participants from the context
- Only say "I don't have access" if NO relevant context is provided
- If context exists but doesn't contain the specific information, say "Based on the available transcripts, I don't see information about X"

Always analyze all provided context before stating information isn't available."""

TEMPORARY_ERROR_MESSAGE = (
    "I'm experiencing some technical difficulties right now. "
    "Please try again in a moment."
)


def session_key(room_name: str) -> str:
    return f"{room_name}-ai"


def extract_citations(text: str) -> List[str]:
    """URLs cited as ``[n](url)``, in order of appearance."""
    return [match.group(2) for match in CITATION_PATTERN.finditer(text)]


def build_system_prompt(
    room_name: str,
    stats: RoomStats,
    context: RetrievalContext,
    live_transcript: Optional[str] = None,
    web_results: Sequence[WebSearchResult] = (),
) -> str:
    """Compose persona, room stats, grounding, live transcript and web results."""
    prompt = ASSISTANT_PROMPT

    if stats.total_meetings > 0:
        prompt += (
            "\n\nROOM CONTEXT:"
            f"\nRoom: {room_name}"
            f"\nTotal meetings: {stats.total_meetings}"
            f"\nTotal transcripts: {stats.total_transcripts}"
        )
        if stats.recent_meeting_types:
            prompt += f"\nMeeting types: {', '.join(stats.recent_meeting_types)}"
        if stats.frequent_participants:
            prompt += f"\nFrequent participants: {', '.join(stats.frequent_participants)}"

    context_block = format_context_for_prompt(context)
    if context_block.strip():
        prompt += (
            f"\n\n{context_block}\n"
            "Use this context to provide specific and relevant answers. Keep responses "
            "concise - summarize key points rather than repeating lengthy details."
        )

    if live_transcript and live_transcript.strip():
        prompt += (
            f"\n\nCURRENT LIVE MEETING TRANSCRIPTS:\n{live_transcript}"
            "\n\nThese are the most recent transcripts from the ongoing meeting. Prioritize "
            "this current information when relevant to the user's question."
        )

    if web_results:
        lines = [f"[{i}] {r.title} ({r.url})\n{r.snippet}" for i, r in enumerate(web_results, 1)]
        prompt += (
            "\n\nWEB SEARCH RESULTS:\n"
            + "\n\n".join(lines)
            + "\n\nWhen you use a web result, cite it inline as [n](url)."
        )
    return prompt


class ConversationService:
    """Streams answers for a room's AI chat.

    Turns for the same room are serialized within this process; history
    lives in the injected session store.
    """

    def __init__(
        self,
        *,
        retrieval_service: RetrievalService,
        session_store: SessionStorePort,
        chat_models: Sequence[LLMProviderPort],
        web_search: Optional[WebSearchPort] = None,
        web_search_mode: str = WebSearchMode.COMMAND.value,
        retry_delay_seconds: float = Defaults.MODEL_RETRY_DELAY_SECONDS,
        timeout_base_seconds: float = Defaults.LLM_TIMEOUT_BASE_SECONDS,
        timeout_per_1k_chars: float = Defaults.LLM_TIMEOUT_PER_1K_CHARS,
        max_history: int = Defaults.HISTORY_MAX_ENTRIES,
        prompt_window: int = Defaults.HISTORY_PROMPT_WINDOW,
    ) -> None:
        if not chat_models:
            raise ConfigurationError("At least one chat model is required")
        self._retrieval = retrieval_service
        self._sessions = session_store
        self._models = list(chat_models)
        self._web_search = web_search
        self._web_mode = WebSearchMode(web_search_mode)
        self._retry_delay = retry_delay_seconds
        self._timeout_base = timeout_base_seconds
        self._timeout_per_1k = timeout_per_1k_chars
        self._max_history = max_history
        self._prompt_window = prompt_window
        self._locks: Dict[str, Tuple[asyncio.Lock, int]] = {}

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    async def get_history(self, room_name: str) -> List[ChatMessage]:
        return await self._sessions.get_history(session_key(room_name))

    async def clear_history(self, room_name: str) -> None:
        await self._sessions.clear(session_key(room_name))

    # ------------------------------------------------------------------
    # Streaming answer
    # ------------------------------------------------------------------

    async def stream_answer(
        self,
        message: str,
        room_name: str,
        user_name: str,
        live_transcript: Optional[str] = None,
        is_live_meeting: bool = False,
    ) -> AsyncIterator[StreamEvent]:
        """Yield stream events for one chat turn; never raises."""
        key = session_key(room_name)
        async with self._turn_lock(key):
            try:
                async for event in self._answer(
                    key, message, room_name, user_name, live_transcript, is_live_meeting
                ):
                    yield event
            except Exception as exc:
                yield self._error_event(room_name, exc)

    @asynccontextmanager
    async def _turn_lock(self, key: str) -> AsyncIterator[None]:
        """Serialise turns per room; the lock is dropped once nobody holds or awaits it."""
        lock, holders = self._locks.get(key, (asyncio.Lock(), 0))
        self._locks[key] = (lock, holders + 1)
        try:
            async with lock:
                yield
        finally:
            lock, holders = self._locks[key]
            if holders == 1:
                del self._locks[key]
            else:
                self._locks[key] = (lock, holders - 1)

    async def _answer(
        self,
        key: str,
        message: str,
        room_name: str,
        user_name: str,
        live_transcript: Optional[str],
        is_live_meeting: bool,
    ) -> AsyncIterator[StreamEvent]:
        needs_web, query = self._web_intent(message)
        history = await self._sessions.append(
            key, [ChatMessage(role="user", content=query)], self._max_history
        )
        logger.info(
            "chat_turn_started",
            room_name=room_name,
            user_name=user_name,
            needs_web_search=needs_web,
            history_entries=len(history),
        )
        yield StreamEvent(
            type=StreamEventType.METADATA,
            data={
                "processing": True,
                "needs_web_search": needs_web,
                "search_query": query if needs_web else "",
            },
        )

        # the search runs alongside retrieval; the context event does not wait for it
        search = asyncio.ensure_future(self._search_web(query)) if needs_web else None
        try:
            context = await self._retrieval.get_context(
                room_name, query, live_transcript, is_live_meeting
            )
            yield StreamEvent(
                type=StreamEventType.CONTEXT,
                data={
                    "used_context": context.used_context,
                    "relevant_transcripts": context.total_relevant_transcripts,
                },
            )
            web_results = await search if search is not None else []
        finally:
            if search is not None and not search.done():
                search.cancel()

        stats = await self._retrieval.get_room_stats(room_name)
        system_prompt = build_system_prompt(
            room_name,
            stats,
            context,
            live_transcript if is_live_meeting else None,
            web_results,
        )
        messages = history[-self._prompt_window :]

        answer = ""
        model_used = ""
        async for event, text, model_id in self._stream_with_fallback(system_prompt, messages):
            if event is not None:
                yield event
            else:
                answer, model_used = text, model_id

        citations = extract_citations(answer) if web_results else []
        await self._sessions.append(
            key, [ChatMessage(role="assistant", content=answer)], self._max_history
        )
        complete = {
            "content": answer,
            "used_web_search": bool(citations),
            "used_context": context.used_context,
            "relevant_transcripts": context.total_relevant_transcripts,
            "model": model_used,
        }
        if citations:
            complete["citations"] = citations
        logger.info(
            "chat_turn_completed",
            room_name=room_name,
            model=model_used,
            chars=len(answer),
            used_context=context.used_context,
            citations=len(citations),
        )
        yield StreamEvent(type=StreamEventType.COMPLETE, data=complete)

    async def _stream_with_fallback(
        self, system_prompt: str, messages: List[ChatMessage]
    ) -> AsyncIterator[Tuple[Optional[StreamEvent], str, str]]:
        """Yield (event, "", "") while streaming, then (None, answer, model).

        Raises the last model's error when every model fails.
        """
        timeout = min(
            self._timeout_base + self._timeout_per_1k * len(system_prompt) / 1000,
            Defaults.LLM_TIMEOUT_MAX_SECONDS,
        )
        total = len(self._models)
        for attempt, model in enumerate(self._models, 1):
            buffer: List[str] = []
            try:
                async for delta in model.stream(
                    system_prompt,
                    messages,
                    max_tokens=Defaults.CHAT_MAX_TOKENS,
                    temperature=Defaults.CHAT_TEMPERATURE,
                    timeout=timeout,
                ):
                    buffer.append(delta)
                    yield (
                        StreamEvent(type=StreamEventType.TEXT, data={"content": delta, "complete": False}),
                        "",
                        "",
                    )
            except Exception as exc:
                logger.warning(
                    "chat_model_failed",
                    model=model.model_id,
                    attempt=attempt,
                    total_attempts=total,
                    retryable=is_retryable_error(exc),
                    error=str(exc),
                )
                if attempt == total:
                    raise
                yield (
                    StreamEvent(
                        type=StreamEventType.RETRY,
                        data={
                            "model": model.model_id,
                            "next_model": self._models[attempt].model_id,
                            "attempt": attempt,
                            "total_attempts": total,
                        },
                    ),
                    "",
                    "",
                )
                await asyncio.sleep(self._retry_delay)
                continue

            yield None, "".join(buffer), model.model_id
            return

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _web_intent(self, message: str) -> Tuple[bool, str]:
        """Whether to search the web, and the message with any command stripped."""
        text = message.strip()
        prefix = Defaults.WEB_COMMAND_PREFIX
        has_command = text.lower().startswith(prefix)
        if has_command:
            text = text[len(prefix):].strip() or text

        if self._web_search is None or self._web_mode is WebSearchMode.OFF:
            return False, text
        if self._web_mode is WebSearchMode.ALWAYS:
            return True, text
        return has_command, text

    async def _search_web(self, query: str) -> List[WebSearchResult]:
        try:
            return await self._web_search.search(query, Defaults.WEB_SEARCH_RESULTS)
        except Exception as exc:
            logger.warning("chat_web_search_failed", query=query, error=str(exc))
            return []

    @staticmethod
    def _error_event(room_name: str, exc: Exception) -> StreamEvent:
        retryable = is_retryable_error(exc)
        logger.error(
            "chat_turn_failed",
            room_name=room_name,
            error_type=type(exc).__name__,
            error=str(exc),
            retryable=retryable,
        )
        if retryable:
            data = {
                "error": "AI assistant temporarily unavailable",
                "message": TEMPORARY_ERROR_MESSAGE,
                "is_temporary": True,
                "retryable": True,
            }
        else:
            data = {
                "error": "Failed to process chat request",
                "details": str(exc),
                "is_temporary": False,
                "retryable": False,
            }
        return StreamEvent(type=StreamEventType.ERROR, data=data)
