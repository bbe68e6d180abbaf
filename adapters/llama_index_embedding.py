"""
Shared llama-index embedding adapter.

Wraps any llama-index ``BaseEmbedding`` behind EmbeddingProviderPort,
batching provider calls and running them in worker threads.
"""

from __future__ import annotations

import asyncio
from typing import Any, List, Sequence

from shared_utils.constants import Defaults, LogScope
from shared_utils.error_handler import ExternalServiceError
from shared_utils.logging_utils import get_scoped_logger


logger = get_scoped_logger(LogScope.PROVIDER)


class LlamaIndexEmbeddingAdapter:
    """EmbeddingProviderPort implementation over a llama-index embed model."""

    def __init__(
        self,
        name: str,
        embed_model: Any,
        batch_size: int = Defaults.EMBED_BATCH_SIZE,
    ) -> None:
        self.name = name
        self._embed_model = embed_model
        self._batch_size = batch_size

    async def embed(self, text: str) -> List[float]:
        try:
            return await asyncio.to_thread(self._embed_model.get_text_embedding, text)
        except Exception as exc:
            logger.error("embedding_failed", provider=self.name, error=str(exc))
            raise ExternalServiceError(self.name, f"Embedding failed: {exc}") from exc

    async def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        vectors: List[List[float]] = []
        for i in range(0, len(texts), self._batch_size):
            batch = list(texts[i : i + self._batch_size])
            try:
                vectors.extend(
                    await asyncio.to_thread(self._embed_model.get_text_embedding_batch, batch)
                )
            except Exception as exc:
                logger.error(
                    "embedding_batch_failed",
                    provider=self.name,
                    batch_start=i,
                    error=str(exc),
                )
                raise ExternalServiceError(self.name, f"Batch embedding failed: {exc}") from exc

        if len(vectors) != len(texts):
            raise ExternalServiceError(
                self.name,
                f"Provider returned {len(vectors)} vectors for {len(texts)} texts",
            )
        logger.info("embedding_batch_completed", provider=self.name, count=len(vectors))
        return vectors
