"""
Mistral API models and errors.

This package provides:
- Type-safe pydantic request/response models
- Error hierarchy with retry guidance
- Streaming decoder (``mistral_client.llm.streaming``)
"""

from __future__ import annotations

from .exceptions import (
    DecodeError,
    InvalidStateError,
    MistralApiError,
    MistralAuthenticationError,
    MistralError,
    MistralModelNotFoundError,
    MistralRateLimitError,
    MistralValidationError,
    StreamCancelledError,
    StreamingError,
    StreamTimeoutError,
    StreamTransportError,
)
from .models import (
    AUDIO_MODELS,
    MESSAGE_ROLES,
    MODELS,
    AudioTranscriptionRequest,
    ChatCompletionRequest,
    ChatCompletionResponse,
    Message,
    MistralResponse,
    TextChunk,
    ThinkChunk,
    TranscriptionResponse,
    UsageInfo,
    ValidationResult,
)

__all__ = [
    "AUDIO_MODELS",
    "MESSAGE_ROLES",
    "MODELS",
    "AudioTranscriptionRequest",
    "ChatCompletionRequest",
    "ChatCompletionResponse",
    "DecodeError",
    "InvalidStateError",
    "Message",
    "MistralApiError",
    "MistralAuthenticationError",
    "MistralError",
    "MistralModelNotFoundError",
    "MistralRateLimitError",
    "MistralResponse",
    "MistralValidationError",
    "StreamCancelledError",
    "StreamTimeoutError",
    "StreamTransportError",
    "StreamingError",
    "TextChunk",
    "ThinkChunk",
    "TranscriptionResponse",
    "UsageInfo",
    "ValidationResult",
]
