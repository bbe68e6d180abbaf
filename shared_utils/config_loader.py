from pydantic_settings import BaseSettings
from pydantic import field_validator, ConfigDict
from functools import lru_cache
from typing import List, Optional
import os
import json
import boto3

from shared_utils.constants import Defaults, Environment, ModelIDs, LogScope
from shared_utils.logging_utils import get_scoped_logger

logger = get_scoped_logger(LogScope.CONFIG)


def get_secret_from_aws(secret_name: str, region: str = Defaults.AWS_REGION) -> str:
    """Fetch the OpenAI key from AWS Secrets Manager.

    Args:
        secret_name: Name of the secret in Secrets Manager
        region: AWS region

    Returns:
        Secret value or empty string if fetch fails
    """
    try:
        client = boto3.client("secretsmanager", region_name=region)
        response = client.get_secret_value(SecretId=secret_name)
        if "SecretString" in response:
            secret = json.loads(response["SecretString"])
            return secret.get("openai_api_key", "")
        return ""
    except Exception as e:
        logger.warning("secret_fetch_failed", secret_name=secret_name, error=str(e))
        return ""


def _choice(value: str, field: str, valid: set) -> str:
    if value.lower() not in valid:
        raise ValueError(f"{field} must be one of {valid}, got {value}")
    return value.lower()


class Settings(BaseSettings):
    """Application configuration with environment variable precedence.

    Precedence: 1) Environment Variables > 2) .env file > 3) Class defaults
    """
    # Application metadata
    app_name: str = "Meeting Intelligence Pipeline"
    app_version: str = "2.0.0"
    app_description: str = "Transcript indexing, hybrid retrieval and meeting processing"
    environment: str = "development"

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    chat_rate_limit: str = "20/minute"

    # AWS
    aws_region: str = Defaults.AWS_REGION
    aws_endpoint_url: str = ""

    # Storage backends: "memory" for local dev / CI, managed services otherwise
    vector_backend: str = "memory"
    document_backend: str = "memory"
    session_backend: str = "memory"

    dynamodb_rooms_table: str = "MeetingRooms"
    dynamodb_meetings_table: str = "Meetings"
    dynamodb_tasks_table: str = "MeetingTasks"
    dynamodb_sessions_table: str = "ChatSessions"
    s3_vectors_bucket: str = ""
    s3_vectors_index_name: str = "meeting-transcripts"

    # LLM Configuration
    llm_provider: str = "bedrock"
    bedrock_region: str = Defaults.AWS_REGION
    chat_model_id: str = ModelIDs.BEDROCK_CLAUDE_SONNET_4
    chat_fallback_model_ids: List[str] = [ModelIDs.BEDROCK_CLAUDE_37_SONNET]
    summary_model_id: str = ModelIDs.BEDROCK_CLAUDE_35_SONNET
    classifier_model_id: str = ModelIDs.BEDROCK_CLAUDE_3_HAIKU
    use_llm_classifier: bool = False
    llm_timeout_base_seconds: float = Defaults.LLM_TIMEOUT_BASE_SECONDS
    llm_timeout_per_1k_chars: float = Defaults.LLM_TIMEOUT_PER_1K_CHARS
    model_retry_delay_seconds: float = Defaults.MODEL_RETRY_DELAY_SECONDS

    # Embedding Configuration (Bedrock or OpenAI)
    embed_provider: str = "openai"
    openai_embed_model_id: str = ModelIDs.OPENAI_EMBED_MODEL
    bedrock_embed_model_id: str = ModelIDs.BEDROCK_TITAN_EMBED_V2
    openai_api_key: Optional[str] = None
    openai_secret_name: Optional[str] = None

    # Conversation
    session_ttl_seconds: int = Defaults.SESSION_TTL_SECONDS
    web_search_mode: str = "command"
    web_search_api_key: Optional[str] = None
    web_search_endpoint: str = "https://api.search.brave.com/res/v1/web/search"

    # Notifications
    ses_sender: str = ""

    model_config = ConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    @field_validator('embed_provider')
    @classmethod
    def validate_embed_provider(cls, v: str) -> str:
        """Validate embedding provider is supported."""
        return _choice(v, "embed_provider", {"openai", "bedrock"})

    @field_validator('llm_provider')
    @classmethod
    def validate_llm_provider(cls, v: str) -> str:
        """Validate LLM provider is supported."""
        return _choice(v, "llm_provider", {"openai", "bedrock"})

    @field_validator('environment')
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment is recognized."""
        return _choice(v, "environment", {e.value for e in Environment})

    @field_validator('vector_backend')
    @classmethod
    def validate_vector_backend(cls, v: str) -> str:
        return _choice(v, "vector_backend", {"memory", "s3vectors"})

    @field_validator('document_backend', 'session_backend')
    @classmethod
    def validate_store_backend(cls, v: str) -> str:
        return _choice(v, "backend", {"memory", "dynamodb"})

    @field_validator('web_search_mode')
    @classmethod
    def validate_web_search_mode(cls, v: str) -> str:
        return _choice(v, "web_search_mode", {"off", "command", "always"})

    def chat_models(self) -> List[str]:
        """Ordered, de-duplicated list of chat models to try (primary first)."""
        ordered: List[str] = []
        for model_id in [self.chat_model_id, *self.chat_fallback_model_ids]:
            if model_id and model_id not in ordered:
                ordered.append(model_id)
        return ordered


@lru_cache()
def get_settings() -> Settings:
    """Load and cache application settings.

    If an OpenAI provider is configured and OPENAI_SECRET_NAME is provided,
    fetches the API key from AWS Secrets Manager.

    Returns:
        Validated Settings instance

    Raises:
        ValueError: If settings are invalid
    """
    settings = Settings()

    needs_openai = "openai" in (settings.embed_provider, settings.llm_provider)
    if needs_openai and not settings.openai_api_key and settings.openai_secret_name:
        secret_key = get_secret_from_aws(settings.openai_secret_name, settings.aws_region)
        if secret_key:
            settings.openai_api_key = secret_key
            os.environ["OPENAI_API_KEY"] = secret_key
            logger.debug("fetched_openai_key_from_secrets_manager")

    # Log loaded configuration (sensitive values omitted)
    logger.info(
        "configuration_loaded",
        environment=settings.environment,
        llm_provider=settings.llm_provider,
        chat_models=settings.chat_models(),
        embed_provider=settings.embed_provider,
        vector_backend=settings.vector_backend,
        document_backend=settings.document_backend,
        session_backend=settings.session_backend,
        web_search_mode=settings.web_search_mode,
    )

    return settings
