"""
HTTP client for the Mistral API.

Builds requests, normalizes responses and error payloads into MistralResponse
or typed exceptions, and exposes chat and transcription streams through the
streaming decoder.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator
from contextlib import aclosing, asynccontextmanager
from http import HTTPStatus
from typing import Any

import httpx
from pydantic import ValidationError

from .config import ClientOptions, Configuration
from .llm.caching import ChatCompletionCache, MemoryChatCompletionCache
from .llm.exceptions import (
    MistralApiError,
    MistralAuthenticationError,
    MistralModelNotFoundError,
    MistralRateLimitError,
    MistralValidationError,
    StreamingError,
)
from .llm.models import (
    AudioTranscriptionRequest,
    ChatCompletionRequest,
    ChatCompletionResponse,
    DetailErrorResponse,
    MistralResponse,
    ModelErrorResponse,
    TranscriptionResponse,
    ValidationResult,
    extract_all_text,
)
from .llm.streaming import (
    AccumulatorState,
    StreamEvent,
    decode_stream,
    decode_stream_collect,
)
from .llm.streaming.decoder import EventCallback
from .logging_utils import ErrorClassifier, configure_logging, log_operation, logger

CHAT_COMPLETIONS_PATH = "/chat/completions"
TRANSCRIPTIONS_PATH = "/audio/transcriptions"
EVENT_STREAM_CONTENT_TYPES = ("text/event-stream", "stream")


def parse_error(status_code: int, body: str) -> MistralResponse:
    """
    Normalize an error body, trying known shapes in a fixed order.

    1. ``{"detail": [{"msg": ...}]}`` validation errors
    2. ``{"message": ..., "type": ..., "code": ...}`` model errors
    3. the raw body
    """
    try:
        detail_error = DetailErrorResponse.model_validate_json(body)
    except ValidationError:
        detail_error = None
    if detail_error is not None and detail_error.detail:
        return MistralResponse(
            status_code=status_code,
            message=detail_error.first_message(),
            error_type=detail_error.detail[0].type or None,
        )

    try:
        model_error = ModelErrorResponse.model_validate_json(body)
    except ValidationError:
        model_error = None
    if model_error is not None and model_error.model_fields_set & {"message", "type"}:
        return MistralResponse(
            status_code=status_code,
            message=model_error.user_friendly_message(),
            error_type=model_error.type or None,
            error_code=model_error.code,
        )

    return MistralResponse(
        status_code=status_code,
        message=f"Unknown error format (Status: {status_code}): {body}",
    )


def parse_response(status_code: int, body: str) -> MistralResponse:
    """Parse a chat completion body into a MistralResponse, success or not."""
    if HTTPStatus.OK <= status_code < HTTPStatus.MULTIPLE_CHOICES:
        try:
            completion = ChatCompletionResponse.model_validate_json(body)
        except ValidationError:
            completion = None
        if completion is not None and completion.choices:
            message = completion.choices[0].message
            return MistralResponse(
                status_code=status_code,
                message=message.text if message else "",
                is_success=True,
                model=completion.model,
                usage=completion.usage,
            )

    return parse_error(status_code, body)


def error_from_response(
    response: MistralResponse,
    headers: httpx.Headers | None = None,
    model: str | None = None,
) -> MistralApiError:
    """Build the most specific exception for an unsuccessful response."""
    kwargs: dict[str, Any] = {}
    if response.error_type:
        kwargs["error_type"] = response.error_type
    if response.error_code:
        kwargs["error_code"] = response.error_code

    if response.status_code == HTTPStatus.UNAUTHORIZED:
        return MistralAuthenticationError(response.message, **kwargs)

    if response.status_code == HTTPStatus.TOO_MANY_REQUESTS:
        retry_after = None
        if headers is not None and headers.get("retry-after"):
            try:
                retry_after = float(headers["retry-after"])
            except ValueError:
                retry_after = None
        return MistralRateLimitError(response.message, retry_after=retry_after, **kwargs)

    if (
        response.status_code == HTTPStatus.NOT_FOUND
        and response.error_type == "model_not_found"
        and model
    ):
        return MistralModelNotFoundError(model, **kwargs)

    return MistralApiError(
        response.message,
        status_code=response.status_code,
        error_type=response.error_type,
        error_code=response.error_code,
    )


class MistralClient:
    """
    Async HTTP client for the Mistral API.

    An injected ``http_client`` is used as-is and never modified or closed.
    When it has no base URL or authorization header of its own, the values
    from ``options`` are sent with each request instead.

    A ``cache`` (or ``options.enable_caching``) makes ``chat_completion``
    answer repeated requests from memory.
    """

    def __init__(
        self,
        options: ClientOptions,
        http_client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        cache: ChatCompletionCache | None = None,
    ) -> None:
        options.validate()
        self.options = options

        if cache is None and options.enable_caching:
            cache = MemoryChatCompletionCache(options.cache_expiration_minutes)
        self.cache = cache

        if http_client is None:
            self.client = httpx.AsyncClient(
                base_url=options.base_url,
                headers={"Authorization": f"Bearer {options.api_key}"},
                timeout=options.timeout_seconds,
                transport=transport,
            )
            self._owns_client = True
        else:
            self.client = http_client
            self._owns_client = False

    @classmethod
    def from_config(cls, config: Configuration | None = None) -> MistralClient:
        """Create a client from config.yaml and the environment."""
        config = config or Configuration()
        configure_logging(config.get_logging_config())
        return cls(config.get_client_options())

    def validate_request(self, request: ChatCompletionRequest) -> ValidationResult:
        """Validate a chat completion request without sending it."""
        if request is None:
            return ValidationResult.failure("Request cannot be null.")

        errors = []

        if not request.model or not request.model.strip():
            errors.append("Model is required.")

        if not request.messages:
            errors.append("At least one message is required.")
        else:
            for i, message in enumerate(request.messages):
                if not message.role or not message.role.strip():
                    errors.append(f"Message at index {i}: Role is required.")
                elif not message.is_valid():
                    errors.append(
                        f"Message at index {i}: Invalid role '{message.role}'. "
                        "Valid roles are: system, user, assistant, tool."
                    )

                if not extract_all_text(message.content).strip():
                    errors.append(f"Message at index {i}: Content is required.")

        if request.temperature is not None and not 0.0 <= request.temperature <= 2.0:
            errors.append(
                f"Temperature must be between 0.0 and 2.0. Got: {request.temperature}"
            )

        if request.top_p is not None and not 0.0 <= request.top_p <= 1.0:
            errors.append(f"TopP must be between 0.0 and 1.0. Got: {request.top_p}")

        if request.max_tokens is not None and request.max_tokens <= 0:
            errors.append(
                f"MaxTokens must be greater than 0. Got: {request.max_tokens}"
            )

        if errors:
            return ValidationResult.failure(*errors)
        return ValidationResult.success()

    def _check_request(self, request: ChatCompletionRequest) -> None:
        if not self.options.validate_requests:
            return
        result = self.validate_request(request)
        if not result.is_valid:
            raise MistralValidationError(result.errors)

    @log_operation("chat_completion")
    async def chat_completion(self, request: ChatCompletionRequest) -> MistralResponse:
        """Send a chat completion request.

        Returns:
            MistralResponse with the first choice's text, or error details.

        Raises:
            MistralApiError: On any failure when ``throw_on_error`` is enabled.
        """
        if self.options.validate_requests:
            result = self.validate_request(request)
            if not result.is_valid:
                if self.options.throw_on_error:
                    raise MistralValidationError(result.errors)
                return MistralResponse(
                    status_code=HTTPStatus.BAD_REQUEST,
                    message=f"Validation failed: {'; '.join(result.errors)}",
                )

        if self.cache is not None:
            cached = await self.cache.get(request)
            if cached is not None:
                logger.debug("Chat completion served from cache", model=request.model)
                return cached

        try:
            response = await self.client.post(
                **self._request_options(CHAT_COMPLETIONS_PATH),
                json=request.to_payload(stream=False),
            )
        except httpx.HTTPError as e:
            status_code, error_category = ErrorClassifier.classify_error(e)
            if error_category == "timeout_error":
                message = f"Request timeout: {e}"
            else:
                message = f"HTTP request failed: {e}"
            if self.options.throw_on_error:
                raise ErrorClassifier.create_api_error(
                    e, "chat_completion", custom_message=message
                ) from e
            logger.error("Chat completion request failed", error_message=message)
            return MistralResponse(
                status_code=status_code, message=message, error_type=error_category
            )

        result = parse_response(response.status_code, response.text)
        if not result.is_success and self.options.throw_on_error:
            raise error_from_response(result, response.headers, request.model)
        if result.is_success and self.cache is not None:
            await self.cache.set(request, result)
        return result

    async def chat_completion_stream(
        self,
        request: ChatCompletionRequest,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> AsyncGenerator[StreamEvent]:
        """Stream a chat completion as ChatDelta events."""
        self._check_request(request)
        async with self._open_stream(
            CHAT_COMPLETIONS_PATH,
            "chat_completion_stream",
            model=request.model,
            json=request.to_payload(stream=True),
        ) as response:
            async with aclosing(
                decode_stream(response.aiter_bytes(), **self._decoder_options(cancel_event))
            ) as events:
                async for event in events:
                    yield event

    @log_operation("chat_completion_stream_collect")
    async def chat_completion_stream_collect(
        self,
        request: ChatCompletionRequest,
        on_event: EventCallback | None = None,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> AccumulatorState:
        """Stream a chat completion and return the accumulated result."""
        self._check_request(request)
        async with self._open_stream(
            CHAT_COMPLETIONS_PATH,
            "chat_completion_stream",
            model=request.model,
            json=request.to_payload(stream=True),
        ) as response:
            return await decode_stream_collect(
                response.aiter_bytes(), on_event, **self._decoder_options(cancel_event)
            )

    @log_operation("transcribe")
    async def transcribe(self, request: AudioTranscriptionRequest) -> TranscriptionResponse:
        """Transcribe audio in one request.

        Raises:
            MistralApiError: If the API answers with an error status.
        """
        try:
            response = await self.client.post(
                **self._request_options(TRANSCRIPTIONS_PATH),
                files=self._transcription_form(request, stream=False),
            )
        except httpx.HTTPError as e:
            raise ErrorClassifier.create_api_error(e, "transcribe") from e

        if not response.is_success:
            raise error_from_response(
                parse_error(response.status_code, response.text),
                response.headers,
                request.model,
            )
        return TranscriptionResponse.model_validate_json(response.content)

    async def transcribe_stream(
        self,
        request: AudioTranscriptionRequest,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> AsyncGenerator[StreamEvent]:
        """Stream a transcription as text, language, segment and done events."""
        async with self._open_stream(
            TRANSCRIPTIONS_PATH,
            "transcribe_stream",
            model=request.model,
            files=self._transcription_form(request, stream=True),
        ) as response:
            async with aclosing(
                decode_stream(response.aiter_bytes(), **self._decoder_options(cancel_event))
            ) as events:
                async for event in events:
                    yield event

    @log_operation("transcribe_stream_collect")
    async def transcribe_stream_collect(
        self,
        request: AudioTranscriptionRequest,
        on_event: EventCallback | None = None,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> AccumulatorState:
        """Stream a transcription and return the accumulated result."""
        async with self._open_stream(
            TRANSCRIPTIONS_PATH,
            "transcribe_stream",
            model=request.model,
            files=self._transcription_form(request, stream=True),
        ) as response:
            return await decode_stream_collect(
                response.aiter_bytes(), on_event, **self._decoder_options(cancel_event)
            )

    @staticmethod
    def _transcription_form(
        request: AudioTranscriptionRequest, *, stream: bool
    ) -> list[tuple[str, Any]]:
        # Plain fields are sent as multipart parts without a file name
        parts: list[tuple[str, Any]] = [
            (name, (None, value)) for name, value in request.to_form(stream=stream)
        ]
        if request.audio is not None:
            parts.append(("file", (request.file_name, request.audio)))
        return parts

    def _decoder_options(self, cancel_event: asyncio.Event | None) -> dict[str, Any]:
        return {
            "enable_recovery": self.options.enable_streaming_recovery,
            "read_timeout": self.options.streaming_read_timeout,
            "cancel_event": cancel_event,
        }

    def _request_options(self, path: str) -> dict[str, Any]:
        # Injected clients keep their own base URL and headers
        if str(self.client.base_url):
            options: dict[str, Any] = {"url": path}
        else:
            options = {"url": self.options.base_url.rstrip("/") + path}
        if "authorization" not in self.client.headers:
            options["headers"] = {"Authorization": f"Bearer {self.options.api_key}"}
        return options

    @asynccontextmanager
    async def _open_stream(
        self,
        path: str,
        operation: str,
        *,
        model: str | None = None,
        **kwargs: Any,
    ):
        """POST with streaming enabled and yield the response once it is usable."""
        try:
            async with self.client.stream(
                "POST", **self._request_options(path), **kwargs
            ) as response:
                if not response.is_success:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    raise error_from_response(
                        parse_error(response.status_code, body),
                        response.headers,
                        model,
                    )

                content_type = response.headers.get("content-type", "")
                if not any(t in content_type for t in EVENT_STREAM_CONTENT_TYPES):
                    raise StreamingError(
                        f"Expected streaming response, got content-type: {content_type}"
                    )

                yield response
        except httpx.HTTPError as e:
            raise ErrorClassifier.create_api_error(e, operation) from e

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> MistralClient:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
