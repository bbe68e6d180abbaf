"""
Centralized logging utilities with scoped loggers and decorators.
Provides structured logging with consistent field names across services.
"""

import asyncio
import functools
import logging
import os
import sys
import time
from typing import Any, Callable, Optional
from enum import Enum

import structlog

from shared_utils.constants import Defaults, LogScope


_SHARED_PROCESSORS = [
    structlog.stdlib.filter_by_level,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.stdlib.PositionalArgumentsFormatter(),
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
    structlog.processors.UnicodeDecoder(),
]


def configure_logging(environment: Optional[str] = None, level: Optional[str] = None) -> None:
    """Configure structlog for the process.

    Development gets console-friendly output; every other environment
    emits JSON lines for CloudWatch. Both arguments default to the
    ENVIRONMENT and LOG_LEVEL env vars, read before any logger is bound.
    """
    environment = environment or os.environ.get("ENVIRONMENT", "production")
    level = level or os.environ.get("LOG_LEVEL", Defaults.LOG_LEVEL)
    renderer = (
        structlog.dev.ConsoleRenderer()
        if environment == "development"
        else structlog.processors.JSONRenderer()
    )
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level.upper(), force=True)
    structlog.configure(
        processors=[*_SHARED_PROCESSORS, renderer],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


configure_logging()


def get_scoped_logger(scope: str) -> structlog.BoundLogger:
    """Get a scoped logger for a specific service/component.

    Args:
        scope: LogScope value (indexing, retrieval, processing, conversation, ...)

    Returns:
        Structured logger bound to scope.
    """
    logger = structlog.get_logger()
    return logger.bind(scope=scope)


class LogLevel(str, Enum):
    """Log level enumeration."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


def log_execution(scope: str = LogScope.API, level: str = LogLevel.INFO.value):
    """Decorator to automatically log function execution time and results.

    Works for both plain functions and coroutine functions.

    Args:
        scope: Log scope identifier
        level: Log level for the start/success events (failures are ERROR)

    Example:
        @log_execution(scope=LogScope.PROCESSING)
        async def process_meeting(meeting_id):
            ...
    """
    def decorator(func: Callable) -> Callable:
        def _start(logger, args, kwargs) -> float:
            getattr(logger, level.lower())(
                f"{func.__name__}_start",
                func_name=func.__name__,
                args_count=len(args),
                kwargs_keys=list(kwargs.keys())
            )
            return time.time()

        def _success(logger, start_time: float, result: Any) -> None:
            getattr(logger, level.lower())(
                f"{func.__name__}_success",
                func_name=func.__name__,
                elapsed_seconds=time.time() - start_time,
                result_type=type(result).__name__
            )

        def _failure(logger, start_time: float, e: Exception) -> None:
            logger.error(
                f"{func.__name__}_failed",
                func_name=func.__name__,
                elapsed_seconds=time.time() - start_time,
                error_type=type(e).__name__,
                error_message=str(e)
            )

        if asyncio.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs) -> Any:
                logger = get_scoped_logger(scope)
                start_time = _start(logger, args, kwargs)
                try:
                    result = await func(*args, **kwargs)
                except Exception as e:
                    _failure(logger, start_time, e)
                    raise
                _success(logger, start_time, result)
                return result

            return async_wrapper

        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            logger = get_scoped_logger(scope)
            start_time = _start(logger, args, kwargs)
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                _failure(logger, start_time, e)
                raise
            _success(logger, start_time, result)
            return result

        return wrapper
    return decorator


class ContextualLogger:
    """Helper class for managing contextual logging within a scope."""

    def __init__(self, scope: str):
        self.scope = scope
        self.logger = get_scoped_logger(scope)

    def bind(self, **kwargs) -> "ContextualLogger":
        """Return a new ContextualLogger with extra bound fields."""
        bound = ContextualLogger(self.scope)
        bound.logger = self.logger.bind(**kwargs)
        return bound

    def info(self, event_name: str, **kwargs):
        """Log info message with scope."""
        self.logger.info(event_name, **kwargs)

    def debug(self, event_name: str, **kwargs):
        """Log debug message with scope."""
        self.logger.debug(event_name, **kwargs)

    def warning(self, event_name: str, **kwargs):
        """Log warning message with scope."""
        self.logger.warning(event_name, **kwargs)

    def error(self, event_name: str, **kwargs):
        """Log error message with scope."""
        self.logger.error(event_name, **kwargs)

    def critical(self, event_name: str, **kwargs):
        """Log critical message with scope."""
        self.logger.critical(event_name, **kwargs)
