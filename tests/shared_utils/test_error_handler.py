"""
Tests for shared_utils.error_handler.

Covers every exception subclass, to_dict() serialisation, HTTP status codes,
is_retryable_error(), log_exception() and handle_error().
"""

import asyncio
from unittest.mock import MagicMock

import pytest

from shared_utils.constants import ErrorCode
from shared_utils.error_handler import (
    AppException,
    ConfigurationError,
    ExternalServiceError,
    ModelError,
    NotFoundError,
    ProcessingError,
    StatusConflictError,
    ValidationError,
    handle_error,
    is_retryable_error,
    log_exception,
)


# ---------------------------------------------------------------------------
# AppException base
# ---------------------------------------------------------------------------


class TestAppException:
    def test_defaults(self) -> None:
        exc = AppException(error_code="TEST", message="boom")
        assert exc.error_code == "TEST"
        assert exc.http_status == 500
        assert exc.context == {}
        assert str(exc) == "boom"

    def test_to_dict_structure(self) -> None:
        d = AppException("CODE", "msg", context={"a": 1}).to_dict()
        assert d == {"error": {"code": "CODE", "message": "msg", "context": {"a": 1}}}


# ---------------------------------------------------------------------------
# Subclass-specific tests
# ---------------------------------------------------------------------------


class TestSubclasses:
    def test_validation_error(self) -> None:
        exc = ValidationError("bad input", context={"field": "name"})
        assert exc.error_code == ErrorCode.INVALID_INPUT.value
        assert exc.http_status == 400
        assert exc.context == {"field": "name"}

    def test_not_found(self) -> None:
        exc = NotFoundError("Meeting", "m-1")
        assert exc.http_status == 404
        assert exc.message == "Meeting not found: m-1"
        assert exc.context == {"resource": "Meeting", "id": "m-1"}

    def test_configuration_error(self) -> None:
        assert ConfigurationError("missing key").to_dict()["error"]["code"] == "INVALID_CONFIG"

    def test_model_error_carries_retryable(self) -> None:
        exc = ModelError("model down", retryable=True)
        assert exc.http_status == 503
        assert exc.retryable is True
        assert exc.context["retryable"] is True

    def test_processing_error_meeting_id(self) -> None:
        exc = ProcessingError("fail", meeting_id="m-1", context={"step": "summary"})
        assert exc.error_code == ErrorCode.PROCESSING_FAILED.value
        assert exc.context == {"step": "summary", "meeting_id": "m-1"}

    def test_processing_error_without_meeting_id(self) -> None:
        assert "meeting_id" not in ProcessingError("fail").context

    def test_status_conflict(self) -> None:
        exc = StatusConflictError("m-1", "in_progress")
        assert exc.http_status == 409
        assert exc.error_code == ErrorCode.STATUS_CONFLICT.value
        assert exc.context["status"] == "in_progress"

    def test_external_service_error(self) -> None:
        exc = ExternalServiceError("DynamoDB", "throttled", context={"extra": 1})
        assert "DynamoDB" in exc.message and "throttled" in exc.message
        assert exc.context == {"extra": 1, "service": "DynamoDB"}


# ---------------------------------------------------------------------------
# is_retryable_error
# ---------------------------------------------------------------------------


class TestIsRetryableError:
    @pytest.mark.parametrize(
        "message",
        [
            "Model is overloaded",
            "rate_limit_error",
            "Rate limit reached",
            "service_unavailable",
            "ThrottlingException: slow down",
            "Read timeout",
        ],
    )
    def test_transient_messages(self, message: str) -> None:
        assert is_retryable_error(RuntimeError(message))

    def test_asyncio_timeout(self) -> None:
        assert is_retryable_error(asyncio.TimeoutError())

    def test_model_error_flag_wins(self) -> None:
        assert not is_retryable_error(ModelError("overloaded", retryable=False))
        assert is_retryable_error(ModelError("bad gateway", retryable=True))

    @pytest.mark.parametrize("message", ["invalid api key", "malformed request", "KeyError"])
    def test_hard_failures(self, message: str) -> None:
        assert not is_retryable_error(ValueError(message))


# ---------------------------------------------------------------------------
# log_exception / handle_error
# ---------------------------------------------------------------------------


class TestLogException:
    def test_app_exception_uses_error_level(self) -> None:
        mock_logger = MagicMock()
        log_exception(ValidationError("oops"), logger=mock_logger)
        mock_logger.error.assert_called_once()
        assert mock_logger.error.call_args[0][0] == "app_exception"

    def test_generic_exception_uses_error_level(self) -> None:
        mock_logger = MagicMock()
        log_exception(RuntimeError("boom"), logger=mock_logger)
        assert mock_logger.error.call_args[0][0] == "unexpected_exception"

    def test_default_logger_does_not_raise(self) -> None:
        log_exception(RuntimeError("boom"))


class TestHandleError:
    def test_app_exception_passthrough(self) -> None:
        result = handle_error(NotFoundError("Meeting", "m-9"))
        assert result["error"]["code"] == ErrorCode.NOT_FOUND.value

    def test_unexpected_exception_wrapped(self) -> None:
        result = handle_error(KeyError("x"))
        assert result["error"]["code"] == ErrorCode.EXTERNAL_SERVICE_ERROR.value
        assert result["error"]["context"] == {"error_type": "KeyError"}

    def test_custom_default_code(self) -> None:
        result = handle_error(RuntimeError("x"), default_error_code="CUSTOM")
        assert result["error"]["code"] == "CUSTOM"
