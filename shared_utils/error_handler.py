"""
Structured error handling and response formatting.
Provides consistent error responses with error codes and context.
"""

import asyncio
from typing import Optional, Dict, Any
import logging

from shared_utils.constants import ErrorCode, LogScope
from shared_utils.logging_utils import get_scoped_logger


# Substrings that mark a provider failure as transient.
RETRYABLE_MARKERS = (
    "overloaded",
    "rate_limit",
    "rate limit",
    "service_unavailable",
    "throttl",
    "timeout",
    "timed out",
)


class AppException(Exception):
    """Base exception for application errors."""

    def __init__(
        self,
        error_code: str,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        http_status: int = 500
    ):
        self.error_code = error_code
        self.message = message
        self.context = context or {}
        self.http_status = http_status
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to response dictionary."""
        return {
            "error": {
                "code": self.error_code,
                "message": self.message,
                "context": self.context
            }
        }


class ValidationError(AppException):
    """Validation/input error."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(
            error_code=ErrorCode.INVALID_INPUT.value,
            message=message,
            context=context,
            http_status=400
        )


class NotFoundError(AppException):
    """A room or meeting that the request refers to does not exist."""

    def __init__(self, resource: str, identifier: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(
            error_code=ErrorCode.NOT_FOUND.value,
            message=f"{resource} not found: {identifier}",
            context={**(context or {}), "resource": resource, "id": identifier},
            http_status=404
        )


class ConfigurationError(AppException):
    """Configuration error."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(
            error_code=ErrorCode.INVALID_CONFIG.value,
            message=message,
            context=context,
            http_status=500
        )


class ModelError(AppException):
    """Model availability or invocation error."""

    def __init__(
        self,
        message: str,
        retryable: bool = False,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.retryable = retryable
        super().__init__(
            error_code=ErrorCode.MODEL_NOT_AVAILABLE.value,
            message=message,
            context={**(context or {}), "retryable": retryable},
            http_status=503
        )


class ProcessingError(AppException):
    """Meeting processing pipeline error."""

    def __init__(
        self,
        message: str,
        meeting_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = {**(context or {})}
        if meeting_id:
            ctx["meeting_id"] = meeting_id
        super().__init__(
            error_code=ErrorCode.PROCESSING_FAILED.value,
            message=message,
            context=ctx,
            http_status=500,
        )


class StatusConflictError(AppException):
    """A processing status transition lost its compare-and-swap."""

    def __init__(self, meeting_id: str, current_status: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(
            error_code=ErrorCode.STATUS_CONFLICT.value,
            message=f"Meeting {meeting_id} is already {current_status}",
            context={**(context or {}), "meeting_id": meeting_id, "status": current_status},
            http_status=409,
        )


class ExternalServiceError(AppException):
    """External service unavailable error."""

    def __init__(self, service: str, message: str, context: Optional[Dict[str, Any]] = None):
        full_message = f"{service} unavailable: {message}"
        super().__init__(
            error_code=ErrorCode.EXTERNAL_SERVICE_ERROR.value,
            message=full_message,
            context={**(context or {}), "service": service},
            http_status=503
        )


def is_retryable_error(exc: BaseException) -> bool:
    """Return True when *exc* looks like a transient provider failure.

    Timeouts, overload, throttling and rate limiting are transient; anything
    else (bad request, auth, parsing) is a hard failure.
    """
    if isinstance(exc, ModelError):
        return exc.retryable
    if isinstance(exc, asyncio.TimeoutError):
        return True
    text = f"{type(exc).__name__} {exc}".lower()
    return any(marker in text for marker in RETRYABLE_MARKERS)


def log_exception(
    exc: Exception,
    scope: str = LogScope.ERROR_HANDLER,
    logger: Optional[logging.Logger] = None
) -> None:
    """Log exception with structured context.

    Args:
        exc: Exception to log
        scope: Log scope identifier
        logger: Optional custom logger (uses structlog if not provided)
    """
    if logger is None:
        logger = get_scoped_logger(scope)

    if isinstance(exc, AppException):
        logger.error(
            "app_exception",
            error_code=exc.error_code,
            message=exc.message,
            http_status=exc.http_status,
            context=exc.context
        )
    else:
        logger.error(
            "unexpected_exception",
            error_type=type(exc).__name__,
            message=str(exc),
            traceback=True
        )


def handle_error(
    exc: Exception,
    scope: str = LogScope.ERROR_HANDLER,
    default_error_code: str = ErrorCode.EXTERNAL_SERVICE_ERROR.value
) -> Dict[str, Any]:
    """Handle exception and return structured error response.

    Args:
        exc: Exception to handle
        scope: Log scope
        default_error_code: Default error code for non-AppException errors

    Returns:
        Structured error response dictionary
    """
    log_exception(exc, scope)

    if isinstance(exc, AppException):
        return exc.to_dict()
    else:
        # Convert unexpected exceptions to structured format
        return {
            "error": {
                "code": default_error_code,
                "message": f"An unexpected error occurred: {str(exc)}",
                "context": {"error_type": type(exc).__name__}
            }
        }
