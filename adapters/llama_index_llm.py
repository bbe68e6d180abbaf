"""
Shared llama-index chat model adapter.

Wraps any llama-index ``LLM`` behind LLMProviderPort. llama-index's chat
calls are blocking, so they run in worker threads; streaming pulls one
chunk per thread hop so the event loop never blocks on the provider.
"""

from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator, Callable, Iterator, List, Optional, Sequence, TypeVar

from llama_index.core.llms import ChatMessage as LlamaChatMessage
from llama_index.core.llms import MessageRole

from domain.models import ChatMessage
from shared_utils.constants import LogScope
from shared_utils.error_handler import ModelError, is_retryable_error
from shared_utils.logging_utils import get_scoped_logger


logger = get_scoped_logger(LogScope.PROVIDER)

T = TypeVar("T")

_STREAM_END = object()


class LlamaIndexLLMAdapter:
    """LLMProviderPort implementation over a llama-index chat model.

    Provider exceptions are mapped to ``ModelError`` with ``retryable`` set
    from the error text, so callers can decide whether to fall back.
    """

    def __init__(self, model_id: str, llm: Any) -> None:
        self.model_id = model_id
        self._llm = llm

    # ------------------------------------------------------------------
    # LLMProviderPort implementation
    # ------------------------------------------------------------------

    async def complete(
        self,
        system_prompt: str,
        messages: Sequence[ChatMessage],
        *,
        max_tokens: int = 1000,
        temperature: float = 0.7,
        timeout: Optional[float] = None,
    ) -> str:
        chat_messages = self._to_llama_messages(system_prompt, messages)
        response = await self._run(
            lambda: self._llm.chat(
                chat_messages, max_tokens=max_tokens, temperature=temperature
            ),
            timeout,
        )
        text = response.message.content or ""
        logger.info("llm_completion", model_id=self.model_id, chars=len(text))
        return text

    async def stream(
        self,
        system_prompt: str,
        messages: Sequence[ChatMessage],
        *,
        max_tokens: int = 1000,
        temperature: float = 0.7,
        timeout: Optional[float] = None,
    ) -> AsyncIterator[str]:
        chat_messages = self._to_llama_messages(system_prompt, messages)
        chunks: Iterator[Any] = await self._run(
            lambda: iter(
                self._llm.stream_chat(
                    chat_messages, max_tokens=max_tokens, temperature=temperature
                )
            ),
            timeout,
        )
        emitted = 0
        while True:
            chunk = await self._run(lambda: next(chunks, _STREAM_END), timeout)
            if chunk is _STREAM_END:
                break
            delta = getattr(chunk, "delta", None)
            if delta:
                emitted += len(delta)
                yield delta
        logger.info("llm_stream_completed", model_id=self.model_id, chars=emitted)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _run(self, call: Callable[[], T], timeout: Optional[float]) -> T:
        """Run a blocking provider call in a thread, mapping failures."""
        try:
            if timeout is None:
                return await asyncio.to_thread(call)
            return await asyncio.wait_for(asyncio.to_thread(call), timeout)
        except asyncio.TimeoutError as exc:
            logger.warning("llm_call_timed_out", model_id=self.model_id, timeout=timeout)
            raise ModelError(
                f"{self.model_id} timed out after {timeout}s", retryable=True
            ) from exc
        except ModelError:
            raise
        except Exception as exc:
            retryable = is_retryable_error(exc)
            logger.error(
                "llm_call_failed",
                model_id=self.model_id,
                error=str(exc),
                retryable=retryable,
            )
            raise ModelError(f"{self.model_id} failed: {exc}", retryable=retryable) from exc

    @staticmethod
    def _to_llama_messages(
        system_prompt: str, messages: Sequence[ChatMessage]
    ) -> List[LlamaChatMessage]:
        converted = [LlamaChatMessage(role=MessageRole.SYSTEM, content=system_prompt)]
        for message in messages:
            role = MessageRole.ASSISTANT if message.role == "assistant" else MessageRole.USER
            converted.append(LlamaChatMessage(role=role, content=message.content))
        return converted
