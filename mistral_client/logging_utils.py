"""
Centralized logging and error handling utilities for the Mistral client.

This module standardizes how client operations and stream decoders report
what they are doing:
- Structured logging with contextual information
- Classification of any failure into an HTTP-like status and category
- Conversion of arbitrary failures into MistralApiError
- Operation timing
"""

from __future__ import annotations

import functools
import logging
import time
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from http import HTTPStatus
from typing import Any, ParamSpec, TypeVar

import httpx
import structlog
from pydantic import ValidationError

from .llm.exceptions import (
    DecodeError,
    InvalidStateError,
    MistralApiError,
    MistralValidationError,
    StreamTimeoutError,
    StreamTransportError,
)

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(colors=True),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

P = ParamSpec("P")
T = TypeVar("T")
AsyncCallable = Callable[P, Awaitable[T]]

logger = structlog.get_logger(__name__)


def configure_logging(logging_config: dict[str, Any]) -> None:
    """Apply the ``logging`` section of config.yaml to the stdlib root logger."""
    level_name = str(logging_config.get("level", "INFO")).upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        raise ValueError(f"Unknown logging level '{level_name}'")
    logging.basicConfig(
        level=level, format=logging_config.get("format", "%(message)s")
    )
    logging.getLogger().setLevel(level)


class ErrorClassifier:
    """Centralized error classification with structured logging."""

    @staticmethod
    def classify_error(error: Exception) -> tuple[int, str]:
        """
        Classify an error and return an HTTP-like status code and category.

        Args:
            error: The exception to classify

        Returns:
            Tuple of (status_code, error_category)
        """
        if isinstance(error, MistralValidationError):
            return error.status_code, "validation_error"
        if isinstance(error, MistralApiError):
            return error.status_code, "api_error"
        if isinstance(error, ValidationError):
            return HTTPStatus.BAD_REQUEST, "validation_error"
        # TimeoutError is an OSError, so timeouts are checked first
        if isinstance(
            error, StreamTimeoutError | httpx.TimeoutException | TimeoutError
        ):
            return HTTPStatus.REQUEST_TIMEOUT, "timeout_error"
        if isinstance(
            error,
            StreamTransportError | httpx.TransportError | ConnectionError | OSError,
        ):
            return HTTPStatus.INTERNAL_SERVER_ERROR, "connection_error"
        if isinstance(error, DecodeError):
            return HTTPStatus.BAD_GATEWAY, "decode_error"
        if isinstance(error, InvalidStateError):
            return HTTPStatus.INTERNAL_SERVER_ERROR, "state_error"
        if isinstance(error, ValueError | TypeError):
            return HTTPStatus.BAD_REQUEST, "parameter_error"
        return HTTPStatus.INTERNAL_SERVER_ERROR, "unknown_error"

    @staticmethod
    def create_api_error(
        error: Exception,
        operation: str,
        context: dict[str, Any] | None = None,
        custom_message: str | None = None,
    ) -> MistralApiError:
        """
        Create a MistralApiError for a failed operation with structured logging.

        Args:
            error: Original exception
            operation: Description of the operation that failed
            context: Additional context for logging and error data
            custom_message: Override the default error message

        Returns:
            MistralApiError carrying the classified status and category
        """
        if isinstance(error, MistralApiError):
            return error

        status_code, error_category = ErrorClassifier.classify_error(error)
        context = context or {}
        message = custom_message or f"{operation} failed: {error!s}"

        logger.error(
            "Operation failed",
            operation=operation,
            error_type=type(error).__name__,
            error_category=error_category,
            status_code=int(status_code),
            error_message=str(error),
            **context,
        )

        return MistralApiError(
            message,
            status_code=status_code,
            error_type=error_category,
            response_data={
                "operation": operation,
                "original_error_type": type(error).__name__,
                **context,
            },
        )


def _elapsed_ms(started: float | None) -> dict[str, Any]:
    if started is None:
        return {}
    return {"duration_ms": round((time.perf_counter() - started) * 1000, 2)}


def _failure_fields(error: Exception, started: float | None) -> dict[str, Any]:
    status_code, error_category = ErrorClassifier.classify_error(error)
    return {
        "error_type": type(error).__name__,
        "error_category": error_category,
        "status_code": int(status_code),
        "error_message": str(error),
        **_elapsed_ms(started),
    }


def _request_fields(args: tuple[Any, ...]) -> dict[str, Any]:
    """Pick the model name off the request passed to a client method."""
    for arg in args[1:2]:
        model = getattr(arg, "model", None)
        if isinstance(model, str) and model:
            return {"model": model}
    return {}


def log_operation(
    operation: str,
    *,
    log_args: bool = False,
    log_result: bool = False,
    log_timing: bool = True,
    context: dict[str, Any] | None = None,
) -> Callable[[AsyncCallable[P, T]], AsyncCallable[P, T]]:
    """
    Decorator for logging async client operations.

    The model of the request passed as the first argument after ``self`` is
    bound to every record. Failures are logged with their classification and
    re-raised unchanged.

    Args:
        operation: Name of the operation being performed
        log_args: Whether to log call arguments
        log_result: Whether to log the return value
        log_timing: Whether to log execution timing
        context: Additional context to include in logs
    """
    def decorator(func: AsyncCallable[P, T]) -> AsyncCallable[P, T]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            op_logger = logger.bind(
                operation=operation,
                function=func.__name__,
                **_request_fields(args),
                **(context or {}),
            )
            if log_args:
                op_logger.debug("Operation started", args=args[1:], kwargs=kwargs)
            else:
                op_logger.debug("Operation started")

            started = time.perf_counter() if log_timing else None
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                op_logger.error("Operation failed", **_failure_fields(e, started))
                raise

            done_fields = _elapsed_ms(started)
            if log_result:
                done_fields["result"] = result
            op_logger.info("Operation completed successfully", **done_fields)
            return result

        return wrapper
    return decorator


@asynccontextmanager
async def operation_context(
    operation: str,
    *,
    context: dict[str, Any] | None = None,
    log_timing: bool = True,
):
    """
    Async context manager logging the start, outcome and duration of a block.

    Yields:
        Bound logger for the operation
    """
    op_logger = logger.bind(operation=operation, **(context or {}))
    op_logger.debug("Operation started")
    started = time.perf_counter() if log_timing else None

    try:
        yield op_logger
    except Exception as e:
        op_logger.error("Operation failed", **_failure_fields(e, started))
        raise

    op_logger.info("Operation completed successfully", **_elapsed_ms(started))


class ContextualLogger:
    """Logger that carries a fixed context, such as a stream id, on every record."""

    def __init__(self, base_context: dict[str, Any] | None = None):
        self.base_context = base_context or {}
        self._logger = logger.bind(**self.base_context)

    def bind(self, **context: Any) -> ContextualLogger:
        """Create a new logger with additional context."""
        return ContextualLogger({**self.base_context, **context})

    def debug(self, message: str, **context: Any) -> None:
        self._logger.debug(message, **context)

    def info(self, message: str, **context: Any) -> None:
        self._logger.info(message, **context)

    def warning(self, message: str, **context: Any) -> None:
        self._logger.warning(message, **context)

    def error(self, message: str, **context: Any) -> None:
        self._logger.error(message, **context)
