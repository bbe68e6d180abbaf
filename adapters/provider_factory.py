"""
Factory for creating configured provider adapters.
Maps Settings onto the OpenAI or Bedrock llama-index adapters.
"""

from __future__ import annotations

from typing import List

from adapters.bedrock_embedding import BedrockEmbeddingAdapter
from adapters.bedrock_llm import BedrockLLMAdapter
from adapters.openai_embedding import OpenAIEmbeddingAdapter
from adapters.openai_llm import OpenAILLMAdapter
from ports.llm_provider import EmbeddingProviderPort, LLMProviderPort
from shared_utils.config_loader import Settings
from shared_utils.constants import EmbeddingProvider, LLMProvider, LogScope
from shared_utils.error_handler import ConfigurationError
from shared_utils.logging_utils import get_scoped_logger


logger = get_scoped_logger(LogScope.CONFIG)


def create_embedding_provider(settings: Settings) -> EmbeddingProviderPort:
    """Create the configured embedding provider.

    Raises:
        ConfigurationError: If the provider is unknown or misconfigured.
    """
    provider = settings.embed_provider
    logger.info("creating_embedding_provider", provider=provider)

    if provider == EmbeddingProvider.OPENAI.value:
        if not settings.openai_api_key:
            raise ConfigurationError("OPENAI_API_KEY not configured", {"provider": provider})
        return OpenAIEmbeddingAdapter(
            api_key=settings.openai_api_key, model=settings.openai_embed_model_id
        )
    if provider == EmbeddingProvider.BEDROCK.value:
        return BedrockEmbeddingAdapter(
            model_id=settings.bedrock_embed_model_id, region=settings.bedrock_region
        )
    raise ConfigurationError(f"Unknown embedding provider: {provider}")


def create_llm_provider(settings: Settings, model_id: str) -> LLMProviderPort:
    """Create one chat model adapter for *model_id*.

    Raises:
        ConfigurationError: If the provider is unknown or misconfigured.
    """
    provider = settings.llm_provider
    if provider == LLMProvider.OPENAI.value:
        if not settings.openai_api_key:
            raise ConfigurationError("OPENAI_API_KEY not configured", {"provider": provider})
        return OpenAILLMAdapter(model_id=model_id, api_key=settings.openai_api_key)
    if provider == LLMProvider.BEDROCK.value:
        return BedrockLLMAdapter(model_id=model_id, region=settings.bedrock_region)
    raise ConfigurationError(f"Unknown LLM provider: {provider}")


def create_chat_providers(settings: Settings) -> List[LLMProviderPort]:
    """Primary chat model followed by its fallbacks, in preference order."""
    providers = [create_llm_provider(settings, model_id) for model_id in settings.chat_models()]
    logger.info(
        "chat_providers_created",
        provider=settings.llm_provider,
        models=[p.model_id for p in providers],
    )
    return providers
