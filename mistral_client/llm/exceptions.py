"""
Error hierarchy for Mistral API operations.

This module provides error handling with rich context:
- HTTP status and API error type/code information
- Retry guidance derived from status codes and error types
- Streaming transport, timeout and decode failures
- Programming errors for misuse of the stream decoder
"""

from __future__ import annotations

from http import HTTPStatus

RETRYABLE_STATUS_CODES = frozenset({
    HTTPStatus.TOO_MANY_REQUESTS,
    HTTPStatus.INTERNAL_SERVER_ERROR,
    HTTPStatus.BAD_GATEWAY,
    HTTPStatus.SERVICE_UNAVAILABLE,
    HTTPStatus.GATEWAY_TIMEOUT,
})

RETRYABLE_ERROR_TYPES = frozenset({"rate_limit_error", "server_error", "timeout"})

# Seconds to wait before retrying, by API error type and then by status
ERROR_TYPE_RETRY_DELAYS = {
    "rate_limit_error": 60,
    "server_error": 5,
    "timeout": 10,
}

STATUS_RETRY_DELAYS = {
    HTTPStatus.TOO_MANY_REQUESTS: 60,
    HTTPStatus.SERVICE_UNAVAILABLE: 30,
    HTTPStatus.GATEWAY_TIMEOUT: 10,
    HTTPStatus.INTERNAL_SERVER_ERROR: 5,
    HTTPStatus.BAD_GATEWAY: 10,
}


class MistralError(Exception):
    """Base error for everything raised by this package."""


class MistralApiError(MistralError):
    """Error returned by, or while talking to, the Mistral API."""

    def __init__(
        self,
        message: str,
        status_code: int = HTTPStatus.INTERNAL_SERVER_ERROR,
        error_type: str | None = None,
        error_code: str | None = None,
        response_data: dict | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = int(status_code)
        self.error_type = error_type
        self.error_code = error_code
        self.response_data = response_data or {}

    @property
    def is_retryable(self) -> bool:
        """Whether the same request may succeed if sent again later."""
        return (
            self.status_code in RETRYABLE_STATUS_CODES
            or self.error_type in RETRYABLE_ERROR_TYPES
        )

    @property
    def retry_delay_seconds(self) -> int | None:
        """Recommended delay before a retry, if any."""
        if self.error_type in ERROR_TYPE_RETRY_DELAYS:
            return ERROR_TYPE_RETRY_DELAYS[self.error_type]
        return STATUS_RETRY_DELAYS.get(self.status_code)


class MistralValidationError(MistralApiError):
    """Client-side request validation failed."""

    def __init__(self, errors: list[str] | str):
        if isinstance(errors, str):
            errors = [errors]
        super().__init__(
            f"Request validation failed: {'; '.join(errors)}",
            status_code=HTTPStatus.BAD_REQUEST,
            error_type="validation_error",
        )
        self.validation_errors = list(errors)


class MistralAuthenticationError(MistralApiError):
    """Authentication with the API failed."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("error_type", "authentication_error")
        super().__init__(message, status_code=HTTPStatus.UNAUTHORIZED, **kwargs)


class MistralRateLimitError(MistralApiError):
    """Rate limit error with retry information."""

    def __init__(
        self,
        message: str,
        retry_after: float | None = None,
        **kwargs,
    ):
        kwargs.setdefault("error_type", "rate_limit_error")
        kwargs.setdefault("error_code", "rate_limit_exceeded")
        super().__init__(message, status_code=HTTPStatus.TOO_MANY_REQUESTS, **kwargs)
        self.retry_after = retry_after

    @property
    def retry_delay_seconds(self) -> int | None:
        if self.retry_after is not None:
            return int(self.retry_after)
        return super().retry_delay_seconds


class MistralModelNotFoundError(MistralApiError):
    """The requested model does not exist."""

    def __init__(self, model_id: str, **kwargs):
        kwargs.setdefault("error_type", "model_not_found")
        kwargs.setdefault("error_code", "model_not_found")
        super().__init__(
            f"Model '{model_id}' not found. "
            "Please check the model name and try again.",
            status_code=HTTPStatus.NOT_FOUND,
            **kwargs,
        )
        self.model_id = model_id


class StreamingError(MistralError):
    """Streaming-specific errors."""


class StreamTransportError(StreamingError):
    """The underlying connection failed while a stream was being read."""


class StreamTimeoutError(StreamTransportError):
    """No data arrived from the transport within the read timeout."""

    def __init__(self, message: str, timeout: float | None = None):
        super().__init__(message)
        self.timeout = timeout


class DecodeError(StreamingError):
    """A single frame could not be decoded into a stream event."""

    def __init__(self, message: str, frame: str = ""):
        super().__init__(message)
        self.frame = frame


class InvalidStateError(StreamingError):
    """The decoder was used in a way its state does not allow."""


class StreamCancelledError(InvalidStateError):
    """Decoding was requested after the stream had been cancelled."""
