"""
OpenAI chat model adapter.
"""

from __future__ import annotations

from typing import Any, Optional

from llama_index.llms.openai import OpenAI

from adapters.llama_index_llm import LlamaIndexLLMAdapter
from shared_utils.constants import LogScope
from shared_utils.logging_utils import get_scoped_logger


logger = get_scoped_logger(LogScope.PROVIDER)


class OpenAILLMAdapter(LlamaIndexLLMAdapter):
    """OpenAI chat model via llama-index."""

    def __init__(self, model_id: str, api_key: str, llm: Optional[Any] = None) -> None:
        super().__init__(model_id, llm or OpenAI(model=model_id, api_key=api_key))
        logger.info("openai_llm_initialized", model_id=model_id)
