"""
AWS Bedrock embedding adapter.
"""

from __future__ import annotations

from typing import Any, Optional

from llama_index.embeddings.bedrock import BedrockEmbedding

from adapters.llama_index_embedding import LlamaIndexEmbeddingAdapter
from shared_utils.constants import Defaults, LogScope, ModelIDs
from shared_utils.logging_utils import get_scoped_logger


logger = get_scoped_logger(LogScope.PROVIDER)


class BedrockEmbeddingAdapter(LlamaIndexEmbeddingAdapter):
    """Bedrock Titan text embeddings."""

    def __init__(
        self,
        model_id: str = ModelIDs.BEDROCK_TITAN_EMBED_V2,
        region: str = Defaults.AWS_REGION,
        embed_model: Optional[Any] = None,
    ) -> None:
        super().__init__(
            name=f"BedrockEmbedding({model_id})",
            embed_model=embed_model
            or BedrockEmbedding(model_name=model_id, region_name=region),
        )
        logger.info("bedrock_embedding_initialized", model_id=model_id, region=region)
