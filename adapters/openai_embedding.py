"""
OpenAI embedding adapter.
"""

from __future__ import annotations

from typing import Any, Optional

from llama_index.embeddings.openai import OpenAIEmbedding

from adapters.llama_index_embedding import LlamaIndexEmbeddingAdapter
from shared_utils.constants import Defaults, LogScope, ModelIDs
from shared_utils.logging_utils import get_scoped_logger


logger = get_scoped_logger(LogScope.PROVIDER)


class OpenAIEmbeddingAdapter(LlamaIndexEmbeddingAdapter):
    """OpenAI text embeddings (1536 dimensions for text-embedding-3-small)."""

    def __init__(
        self,
        api_key: str,
        model: str = ModelIDs.OPENAI_EMBED_MODEL,
        embed_model: Optional[Any] = None,
    ) -> None:
        super().__init__(
            name=f"OpenAIEmbedding({model})",
            embed_model=embed_model
            or OpenAIEmbedding(
                api_key=api_key,
                model=model,
                embed_batch_size=Defaults.EMBED_BATCH_SIZE,
            ),
        )
        logger.info("openai_embedding_initialized", model=model)
