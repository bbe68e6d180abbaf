"""
Port interfaces for LLM and embedding operations.

Implementations live in adapters/ (llama-index backed OpenAI and Bedrock).
Services depend on these protocols, never on a vendor SDK.
"""

from __future__ import annotations

from typing import AsyncIterator, List, Optional, Protocol, Sequence, runtime_checkable

from domain.models import ChatMessage


@runtime_checkable
class LLMProviderPort(Protocol):
    """Abstract interface for one chat model."""

    model_id: str

    async def complete(
        self,
        system_prompt: str,
        messages: Sequence[ChatMessage],
        *,
        max_tokens: int = 1000,
        temperature: float = 0.7,
        timeout: Optional[float] = None,
    ) -> str:
        """Run a non-streaming chat completion.

        Args:
            system_prompt: Instructions placed before the conversation.
            messages: Conversation turns, oldest first.
            max_tokens: Upper bound on generated tokens.
            temperature: Sampling temperature.
            timeout: Seconds before the call is abandoned.

        Returns:
            Generated text.

        Raises:
            ModelError: If the provider fails or the call times out.
        """
        ...

    def stream(
        self,
        system_prompt: str,
        messages: Sequence[ChatMessage],
        *,
        max_tokens: int = 1000,
        temperature: float = 0.7,
        timeout: Optional[float] = None,
    ) -> AsyncIterator[str]:
        """Stream a chat completion as text deltas.

        Raises:
            ModelError: If the provider fails before or during the stream.
        """
        ...


@runtime_checkable
class EmbeddingProviderPort(Protocol):
    """Abstract interface for text embedding."""

    async def embed(self, text: str) -> List[float]:
        """Embed a single text string.

        Args:
            text: Input text.

        Returns:
            Embedding vector.
        """
        ...

    async def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        """Embed multiple text strings, batching provider calls.

        Args:
            texts: Input texts.

        Returns:
            List of embedding vectors (same order as input).

        Raises:
            ExternalServiceError: If the provider fails or returns a
                different number of vectors than texts.
        """
        ...
