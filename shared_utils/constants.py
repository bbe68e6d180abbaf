"""
Constants management.
Centralized configuration for all magic values, model IDs, and defaults.
"""

from enum import Enum
from typing import Dict, Final


class Environment(str, Enum):
    """Application environment."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class EmbeddingProvider(str, Enum):
    """Supported embedding providers."""
    OPENAI = "openai"
    BEDROCK = "bedrock"


class LLMProvider(str, Enum):
    """Supported LLM providers."""
    BEDROCK = "bedrock"
    OPENAI = "openai"


class WebSearchMode(str, Enum):
    """When the conversational path augments answers with web results."""
    OFF = "off"
    COMMAND = "command"  # only for messages prefixed with WEB_COMMAND_PREFIX
    ALWAYS = "always"


# Model IDs
class ModelIDs:
    """Centralized model identifiers."""
    # Bedrock LLM
    BEDROCK_CLAUDE_SONNET_4: Final[str] = "anthropic.claude-sonnet-4-20250514-v1:0"
    BEDROCK_CLAUDE_37_SONNET: Final[str] = "anthropic.claude-3-7-sonnet-20250219-v1:0"
    BEDROCK_CLAUDE_35_SONNET: Final[str] = "anthropic.claude-3-5-sonnet-20241022-v2:0"
    BEDROCK_CLAUDE_3_HAIKU: Final[str] = "anthropic.claude-3-haiku-20240307-v1:0"

    # OpenAI LLM
    OPENAI_GPT_4O: Final[str] = "gpt-4o"
    OPENAI_GPT_4O_MINI: Final[str] = "gpt-4o-mini"

    # OpenAI Embeddings
    OPENAI_EMBED_MODEL: Final[str] = "text-embedding-3-small"

    # Bedrock Embeddings
    BEDROCK_TITAN_EMBED_V2: Final[str] = "amazon.titan-embed-text-v2:0"


# Default values
class Defaults:
    """Pipeline defaults."""
    EMBED_BATCH_SIZE: Final[int] = 100
    VECTOR_WRITE_BATCH_SIZE: Final[int] = 100
    VECTOR_TEXT_MAX_CHARS: Final[int] = 1000
    DEDUP_WINDOW_SECONDS: Final[float] = 5.0

    HISTORY_MAX_ENTRIES: Final[int] = 20
    HISTORY_PROMPT_WINDOW: Final[int] = 10
    SESSION_TTL_SECONDS: Final[int] = 24 * 60 * 60

    FALLBACK_THRESHOLD: Final[float] = 0.2
    FALLBACK_TOP_K: Final[int] = 10
    MIN_THRESHOLD: Final[float] = 0.2
    MAX_THRESHOLD: Final[float] = 0.5
    DEFAULT_THRESHOLD: Final[float] = 0.3

    ROOM_STATS_MEETING_LIMIT: Final[int] = 50
    ROOM_STATS_RECENT_TYPES: Final[int] = 10
    ROOM_STATS_TOP_PARTICIPANTS: Final[int] = 5

    SUMMARY_TRANSCRIPT_MAX_CHARS: Final[int] = 8000
    SUMMARY_MAX_TOKENS: Final[int] = 800
    CHAT_MAX_TOKENS: Final[int] = 1000
    CHAT_TEMPERATURE: Final[float] = 0.7
    SUMMARY_TEMPERATURE: Final[float] = 0.1

    LLM_TIMEOUT_BASE_SECONDS: Final[float] = 30.0
    LLM_TIMEOUT_PER_1K_CHARS: Final[float] = 2.0
    LLM_TIMEOUT_MAX_SECONDS: Final[float] = 180.0
    MODEL_RETRY_DELAY_SECONDS: Final[float] = 1.0

    WEB_SEARCH_RESULTS: Final[int] = 5
    WEB_SEARCH_TIMEOUT: Final[float] = 10.0
    WEB_COMMAND_PREFIX: Final[str] = "@web"

    MAX_MESSAGE_CHARS: Final[int] = 4000
    LOG_LEVEL: Final[str] = "INFO"
    AWS_REGION: Final[str] = "eu-west-2"


class RetrievalLimits:
    """Per query-type retrieval sizing (keys are QueryType values)."""
    TOP_K: Final[Dict[str, int]] = {
        "comprehensive": 25,
        "targeted": 20,
        "specific": 15,
    }
    MAX_RESULTS: Final[Dict[str, int]] = {
        "comprehensive": 30,
        "targeted": 20,
        "specific": 15,
    }


# Speaker labels used for synthesized context entries
SUMMARY_SPEAKER: Final[str] = "AI Summary"
SUMMARY_SECTION_SPEAKER: Final[str] = "AI Summary Section"
LIVE_MEETING_ID: Final[str] = "current"
LIVE_MEETING_TYPE: Final[str] = "Live Meeting"
UNASSIGNED_OWNER: Final[str] = "Unassigned"
AI_TASK_AUTHOR: Final[str] = "AI Assistant"


# Logging scopes
class LogScope:
    """Standardized logging scope names."""
    CONFIG = "config_loader"
    API = "api"
    VALIDATION = "validation"
    ERROR_HANDLER = "error_handler"
    PROVIDER = "provider"
    ADAPTER = "adapter"
    WORKER = "worker"
    INDEXING = "indexing"
    RETRIEVAL = "retrieval"
    CLASSIFIER = "query_classifier"
    SUMMARIZER = "summarizer"
    PROCESSING = "processing"
    CONVERSATION = "conversation"


# API endpoints and paths
class APIEndpoints:
    """API route definitions."""
    HEALTH = "/health"
    CHAT_STREAM = "/api/v2/chat/stream"
    CHAT_HISTORY = "/api/v2/chat/{room_name}/history"
    MEETING_END = "/api/v2/meetings/{room_name}/end"
    MEETING_STATUS = "/api/v2/meetings/{meeting_id}/status"


# Error codes
class ErrorCode(str, Enum):
    """Standardized error codes for consistency."""
    INVALID_CONFIG = "INVALID_CONFIG"
    INVALID_INPUT = "INVALID_INPUT"
    NOT_FOUND = "NOT_FOUND"
    MODEL_NOT_AVAILABLE = "MODEL_NOT_AVAILABLE"
    PROCESSING_FAILED = "PROCESSING_FAILED"
    STATUS_CONFLICT = "STATUS_CONFLICT"
    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"
