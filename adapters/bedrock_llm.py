"""
AWS Bedrock chat model adapter.
"""

from __future__ import annotations

from typing import Any, Optional

from llama_index.llms.bedrock import Bedrock

from adapters.llama_index_llm import LlamaIndexLLMAdapter
from shared_utils.constants import Defaults, LogScope
from shared_utils.logging_utils import get_scoped_logger


logger = get_scoped_logger(LogScope.PROVIDER)


class BedrockLLMAdapter(LlamaIndexLLMAdapter):
    """Bedrock-hosted chat model (Claude family) via llama-index."""

    def __init__(
        self,
        model_id: str,
        region: str = Defaults.AWS_REGION,
        llm: Optional[Any] = None,
    ) -> None:
        super().__init__(model_id, llm or Bedrock(model=model_id, region_name=region))
        logger.info("bedrock_llm_initialized", model_id=model_id, region=region)
