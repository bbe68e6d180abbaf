"""
Dependency wiring.

``build_container`` constructs every adapter and service once at startup,
choosing backends from Settings. Nothing here is a module-level singleton:
the API keeps its container on ``app.state`` and the worker builds its own.
Tests pass ready-made doubles as keyword overrides.
"""

from __future__ import annotations

from typing import Any, List, Optional

from adapters.provider_factory import (
    create_chat_providers,
    create_embedding_provider,
    create_llm_provider,
)
from ports.llm_provider import EmbeddingProviderPort, LLMProviderPort
from ports.metadata_store import MetadataStorePort
from ports.notifier import NotifierPort
from ports.session_store import SessionStorePort
from ports.vector_store import VectorStorePort
from ports.web_search import WebSearchPort
from services.conversation_service import ConversationService
from services.indexing_service import IndexingService
from services.processing_orchestrator import ProcessingOrchestrator
from services.query_classifier import HeuristicQueryClassifier, LLMQueryClassifier, QueryClassifier
from services.retrieval_service import RetrievalService
from services.summarizer import SummarizerService
from services.task_extraction import TaskExtractionService
from shared_utils.config_loader import Settings
from shared_utils.constants import LogScope
from shared_utils.error_handler import ConfigurationError
from shared_utils.logging_utils import get_scoped_logger


logger = get_scoped_logger(LogScope.CONFIG)

_OVERRIDABLE = frozenset(
    {
        "metadata_store",
        "vector_store",
        "session_store",
        "embedding_provider",
        "chat_models",
        "summary_llm",
        "classifier",
        "notifier",
        "web_search",
    }
)


class ServiceContainer:
    """Holds the port implementations and the services built on them."""

    def __init__(
        self,
        *,
        settings: Settings,
        metadata_store: MetadataStorePort,
        vector_store: VectorStorePort,
        session_store: SessionStorePort,
        embedding_provider: EmbeddingProviderPort,
        chat_models: List[LLMProviderPort],
        summary_llm: LLMProviderPort,
        classifier: QueryClassifier,
        notifier: Optional[NotifierPort] = None,
        web_search: Optional[WebSearchPort] = None,
    ) -> None:
        self.settings = settings
        self.metadata_store = metadata_store
        self.vector_store = vector_store
        self.session_store = session_store
        self.embedding_provider = embedding_provider
        self.chat_models = chat_models
        self.summary_llm = summary_llm
        self.classifier = classifier
        self.notifier = notifier
        self.web_search = web_search

        self.indexing_service = IndexingService(
            embedding_provider=embedding_provider,
            vector_store=vector_store,
        )
        self.retrieval_service = RetrievalService(
            metadata_store=metadata_store,
            embedding_provider=embedding_provider,
            vector_store=vector_store,
            classifier=classifier,
        )
        self.summarizer = SummarizerService(
            llm=summary_llm,
            timeout_base_seconds=settings.llm_timeout_base_seconds,
            timeout_per_1k_chars=settings.llm_timeout_per_1k_chars,
        )
        self.task_service = TaskExtractionService(metadata_store=metadata_store)
        self.processing_orchestrator = ProcessingOrchestrator(
            metadata_store=metadata_store,
            indexing_service=self.indexing_service,
            summarizer=self.summarizer,
            task_service=self.task_service,
            notifier=notifier,
        )
        self.conversation_service = ConversationService(
            retrieval_service=self.retrieval_service,
            session_store=session_store,
            chat_models=chat_models,
            web_search=web_search,
            web_search_mode=settings.web_search_mode,
            retry_delay_seconds=settings.model_retry_delay_seconds,
            timeout_base_seconds=settings.llm_timeout_base_seconds,
            timeout_per_1k_chars=settings.llm_timeout_per_1k_chars,
        )


# ---------------------------------------------------------------------------
# Backend selection
# ---------------------------------------------------------------------------


def _metadata_store(settings: Settings) -> MetadataStorePort:
    if settings.document_backend == "dynamodb":
        from adapters.dynamo_metadata_store import DynamoMetadataStoreAdapter

        return DynamoMetadataStoreAdapter(
            rooms_table=settings.dynamodb_rooms_table,
            meetings_table=settings.dynamodb_meetings_table,
            tasks_table=settings.dynamodb_tasks_table,
            region=settings.aws_region,
            endpoint_url=settings.aws_endpoint_url,
        )
    from adapters.in_memory_metadata_store import InMemoryMetadataStoreAdapter

    return InMemoryMetadataStoreAdapter()


def _vector_store(settings: Settings) -> VectorStorePort:
    if settings.vector_backend == "s3vectors":
        if not settings.s3_vectors_bucket:
            raise ConfigurationError("S3_VECTORS_BUCKET not configured")
        from adapters.s3vectors_vector_store import S3VectorsVectorStoreAdapter

        return S3VectorsVectorStoreAdapter(
            vector_bucket_name=settings.s3_vectors_bucket,
            index_name=settings.s3_vectors_index_name,
            region=settings.aws_region,
            endpoint_url=settings.aws_endpoint_url,
        )
    from adapters.in_memory_vector_store import InMemoryVectorStoreAdapter

    return InMemoryVectorStoreAdapter()


def _session_store(settings: Settings) -> SessionStorePort:
    if settings.session_backend == "dynamodb":
        from adapters.dynamo_session_store import DynamoSessionStoreAdapter

        return DynamoSessionStoreAdapter(
            table_name=settings.dynamodb_sessions_table,
            ttl_seconds=settings.session_ttl_seconds,
            region=settings.aws_region,
            endpoint_url=settings.aws_endpoint_url,
        )
    from adapters.in_memory_session_store import InMemorySessionStoreAdapter

    return InMemorySessionStoreAdapter(ttl_seconds=settings.session_ttl_seconds)


def _notifier(settings: Settings) -> Optional[NotifierPort]:
    if not settings.ses_sender:
        return None
    from adapters.ses_notifier import SESNotifierAdapter

    return SESNotifierAdapter(
        sender=settings.ses_sender,
        region=settings.aws_region,
        endpoint_url=settings.aws_endpoint_url,
    )


def _web_search(settings: Settings) -> Optional[WebSearchPort]:
    if settings.web_search_mode == "off" or not settings.web_search_api_key:
        return None
    from adapters.brave_web_search import BraveWebSearchAdapter

    return BraveWebSearchAdapter(
        api_key=settings.web_search_api_key, endpoint=settings.web_search_endpoint
    )


def _classifier(settings: Settings) -> QueryClassifier:
    if settings.use_llm_classifier:
        return LLMQueryClassifier(llm=create_llm_provider(settings, settings.classifier_model_id))
    return HeuristicQueryClassifier()


def build_container(settings: Settings, **overrides: Any) -> ServiceContainer:
    """Build the application's object graph.

    Args:
        settings: Loaded Settings.
        **overrides: Ready-made components keyed by container attribute
            (``metadata_store``, ``chat_models``, ``notifier`` ...). Passing
            ``notifier=None`` or ``web_search=None`` disables that feature.

    Raises:
        ConfigurationError: If an override name is unknown or a backend
            is misconfigured.
    """
    unknown = set(overrides) - _OVERRIDABLE
    if unknown:
        raise ConfigurationError("Unknown container overrides", {"names": sorted(unknown)})

    def pick(name: str, factory):
        return overrides[name] if name in overrides else factory(settings)

    container = ServiceContainer(
        settings=settings,
        metadata_store=pick("metadata_store", _metadata_store),
        vector_store=pick("vector_store", _vector_store),
        session_store=pick("session_store", _session_store),
        embedding_provider=pick("embedding_provider", create_embedding_provider),
        chat_models=pick("chat_models", create_chat_providers),
        summary_llm=pick(
            "summary_llm", lambda s: create_llm_provider(s, s.summary_model_id)
        ),
        classifier=pick("classifier", _classifier),
        notifier=pick("notifier", _notifier),
        web_search=pick("web_search", _web_search),
    )
    logger.info(
        "container_built",
        document_backend=settings.document_backend,
        vector_backend=settings.vector_backend,
        session_backend=settings.session_backend,
        chat_models=[m.model_id for m in container.chat_models],
        notifier_enabled=container.notifier is not None,
        web_search_enabled=container.web_search is not None,
    )
    return container
