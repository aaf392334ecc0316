"""
Core request/response models for the Mistral API.

This module provides the pydantic models used on the wire:
- Chat completion requests with fluent helpers
- Message content as plain text or structured chunks
- Response, usage and error payload shapes
- Audio transcription requests and responses
- Model name constants
"""

from __future__ import annotations

import re
from typing import Annotated, Any, Literal
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator

MODELS = {
    "large": "mistral-large-latest",
    "medium": "mistral-medium-latest",
    "small": "mistral-small-latest",
    "tiny": "mistral-tiny",
    "nemo": "open-mistral-nemo",
    "saba": "mistral-saba-latest",
    "ministral_3b": "ministral-3b-latest",
    "ministral_8b": "ministral-8b-latest",
    "codestral": "codestral-latest",
    "pixtral": "pixtral-12b-2409",
    "pixtral_large": "pixtral-large-latest",
    "magistral_small": "magistral-small-latest",
    "magistral_medium": "magistral-medium-latest",
    "embed": "mistral-embed",
    "moderation": "mistral-moderation-latest",
}

AUDIO_MODELS = {
    "voxtral_mini": "voxtral-mini-latest",
    "voxtral_mini_2507": "voxtral-mini-2507",
    "voxtral_mini_2602": "voxtral-mini-2602",
    "voxtral_small": "voxtral-small-latest",
}

MESSAGE_ROLES = ("system", "user", "assistant", "tool")

MAX_FILE_NAME_LENGTH = 255
INVALID_FILE_NAME_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')


class TextChunk(BaseModel):
    """Plain answer text inside structured message content."""
    type: Literal["text"] = "text"
    text: str = ""


class ThinkChunk(BaseModel):
    """Reasoning trace emitted by reasoning models."""
    type: Literal["thinking"] = "thinking"
    closed: bool = True
    thinking: list[ContentChunk] = Field(default_factory=list)

    @field_validator("thinking", mode="before")
    @classmethod
    def _drop_unknown_chunks(cls, value: Any) -> Any:
        return known_chunks_only(value)


ContentChunk = Annotated[TextChunk | ThinkChunk, Field(discriminator="type")]
ThinkChunk.model_rebuild()

# Either a plain string or a list of typed chunks; pydantic picks the variant
MessageContent = str | list[ContentChunk]

KNOWN_CHUNK_TYPES = frozenset({"text", "thinking"})


def known_chunks_only(value: Any) -> Any:
    """Drop chunk kinds this client does not model (image_url, reference...)."""
    if not isinstance(value, list):
        return value
    return [
        item for item in value
        if not isinstance(item, dict) or item.get("type") in KNOWN_CHUNK_TYPES
    ]


def extract_all_text(content: MessageContent | None) -> str:
    """Concatenate answer and reasoning text, in order."""
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    parts = []
    for chunk in content:
        if isinstance(chunk, TextChunk):
            parts.append(chunk.text)
        elif isinstance(chunk, ThinkChunk):
            parts.append(extract_all_text(chunk.thinking))
    return "".join(parts)


def extract_answer_text(content: MessageContent | None) -> str:
    """Concatenate answer text only, skipping reasoning chunks."""
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    return "".join(chunk.text for chunk in content if isinstance(chunk, TextChunk))


def extract_thinking_text(content: MessageContent | None) -> str:
    """Concatenate reasoning text only."""
    if content is None or isinstance(content, str):
        return ""
    return "".join(
        extract_all_text(chunk.thinking)
        for chunk in content
        if isinstance(chunk, ThinkChunk)
    )


class Message(BaseModel):
    """Chat message."""
    role: str
    content: MessageContent | None = None
    name: str | None = None
    tool_call_id: str | None = None

    @field_validator("content", mode="before")
    @classmethod
    def _drop_unknown_chunks(cls, value: Any) -> Any:
        return known_chunks_only(value)

    @property
    def text(self) -> str:
        return extract_answer_text(self.content)

    def is_valid(self) -> bool:
        return self.role in MESSAGE_ROLES

    @classmethod
    def system(cls, content: str) -> Message:
        return cls(role="system", content=content)

    @classmethod
    def user(cls, content: str) -> Message:
        return cls(role="user", content=content)

    @classmethod
    def assistant(cls, content: str) -> Message:
        return cls(role="assistant", content=content)


class JsonSchema(BaseModel):
    name: str
    schema_definition: dict[str, Any] = Field(alias="schema")
    description: str | None = None
    strict: bool = False

    model_config = ConfigDict(populate_by_name=True)


class ResponseFormat(BaseModel):
    type: Literal["text", "json_object", "json_schema"] = "text"
    json_schema: JsonSchema | None = None


class ChatCompletionRequest(BaseModel):
    """Chat completion request payload."""
    model: str
    messages: list[Message] = Field(default_factory=list)
    temperature: float | None = None
    top_p: float | None = None
    max_tokens: int | None = None
    n: int | None = None
    stop: str | list[str] | None = None
    frequency_penalty: float | None = None
    presence_penalty: float | None = None
    response_format: ResponseFormat | None = None
    safe_prompt: bool = False
    random_seed: int | None = None
    stream: bool = False
    prompt_mode: Literal["reasoning"] | None = None

    def with_stop(self, stop: str) -> ChatCompletionRequest:
        self.stop = stop
        return self

    def with_stops(self, *stops: str) -> ChatCompletionRequest:
        self.stop = list(stops)
        return self

    def as_json(self) -> ChatCompletionRequest:
        self.response_format = ResponseFormat(type="json_object")
        return self

    def as_json_schema(self, schema: JsonSchema) -> ChatCompletionRequest:
        self.response_format = ResponseFormat(type="json_schema", json_schema=schema)
        return self

    def to_payload(self, *, stream: bool | None = None) -> dict[str, Any]:
        """Serialize for the wire, leaving out unset optional fields."""
        payload = self.model_dump(mode="json", exclude_none=True, by_alias=True)
        if stream is not None:
            payload["stream"] = stream
        return payload


class UsageInfo(BaseModel):
    """Token usage statistics."""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    prompt_audio_seconds: int | None = None


class ChatChoice(BaseModel):
    index: int = 0
    message: Message | None = None
    finish_reason: str | None = None


class ChatCompletionResponse(BaseModel):
    id: str = ""
    object: str = ""
    created: int = 0
    model: str = ""
    choices: list[ChatChoice] = Field(default_factory=list)
    usage: UsageInfo | None = None


class MistralResponse(BaseModel):
    """Normalized outcome of a non-streaming request, success or failure."""
    status_code: int
    message: str = ""
    is_success: bool = False
    model: str | None = None
    usage: UsageInfo | None = None
    error_type: str | None = None
    error_code: str | None = None


class ValidationResult(BaseModel):
    is_valid: bool
    errors: list[str] = Field(default_factory=list)

    @classmethod
    def success(cls) -> ValidationResult:
        return cls(is_valid=True)

    @classmethod
    def failure(cls, *errors: str) -> ValidationResult:
        return cls(is_valid=False, errors=list(errors))


class ErrorDetail(BaseModel):
    type: str = ""
    msg: str | None = None
    loc: list[Any] | None = None
    input: Any = None
    ctx: dict[str, Any] | None = None


class DetailErrorResponse(BaseModel):
    """Validation-style error body: ``{"detail": [{"msg": ...}]}``."""
    detail: list[ErrorDetail]

    def first_message(self) -> str:
        return self.detail[0].msg or "Unknown error" if self.detail else "Unknown error"

    def all_messages(self) -> str:
        if not self.detail:
            return "Unknown error"
        return "; ".join(d.msg or "Unknown error" for d in self.detail)


FRIENDLY_ERROR_MESSAGES = {
    "invalid_request_error": "The request was invalid or malformed.",
    "authentication_error": "Authentication failed. Please check your API key.",
    "rate_limit_error": "Rate limit exceeded. Please try again later.",
    "server_error": "An internal server error occurred. Please try again.",
    "model_not_found": "The specified model was not found.",
    "insufficient_quota": "Insufficient quota for the requested operation.",
}


class ModelErrorResponse(BaseModel):
    """Model-style error body: ``{"message": ..., "type": ..., "code": ...}``."""
    object: str = ""
    message: str = ""
    type: str = ""
    param: Any = None
    code: str | None = None
    details: str | None = None
    status: int | None = None

    def user_friendly_message(self) -> str:
        if self.message.strip():
            return self.message
        return FRIENDLY_ERROR_MESSAGES.get(self.type, "An unexpected error occurred.")


class TranscriptionSegment(BaseModel):
    text: str = ""
    start: float = 0.0
    end: float = 0.0
    score: float | None = None
    speaker_id: str | None = None
    type: str = "transcription_segment"


class TranscriptionResponse(BaseModel):
    model: str = ""
    text: str = ""
    language: str | None = None
    segments: list[TranscriptionSegment] = Field(default_factory=list)
    usage: UsageInfo | None = None


class AudioTranscriptionRequest(BaseModel):
    """
    Audio transcription request.

    Exactly one audio source is set: raw bytes, an uploaded file id, or a URL.
    """
    model: str = AUDIO_MODELS["voxtral_mini"]
    language: str | None = None
    temperature: float | None = None
    diarize: bool | None = None
    context_bias: list[str] | None = None
    timestamp_granularities: list[Literal["segment", "word"]] | None = None
    file_id: str | None = None
    file_url: str | None = None
    file_name: str | None = None
    audio: bytes | None = Field(default=None, repr=False)

    @classmethod
    def from_bytes(
        cls, audio: bytes, file_name: str, model: str = AUDIO_MODELS["voxtral_mini"]
    ) -> AudioTranscriptionRequest:
        if not audio:
            raise ValueError("Audio content must not be empty.")
        if not file_name or not file_name.strip():
            raise ValueError("File name is required.")
        if INVALID_FILE_NAME_CHARS.search(file_name):
            raise ValueError("File name contains invalid characters.")
        if len(file_name) > MAX_FILE_NAME_LENGTH:
            raise ValueError(
                f"File name must not exceed {MAX_FILE_NAME_LENGTH} characters."
            )
        return cls(audio=audio, file_name=file_name, model=model)

    @classmethod
    def from_file_id(
        cls, file_id: str, model: str = AUDIO_MODELS["voxtral_mini"]
    ) -> AudioTranscriptionRequest:
        if not file_id or not file_id.strip():
            raise ValueError("File id is required.")
        return cls(file_id=file_id, model=model)

    @classmethod
    def from_file_url(
        cls, file_url: str, model: str = AUDIO_MODELS["voxtral_mini"]
    ) -> AudioTranscriptionRequest:
        parsed = urlparse(file_url or "")
        if parsed.scheme.lower() not in ("http", "https") or not parsed.netloc:
            raise ValueError("File URL must use http or https protocol.")
        return cls(file_url=file_url, model=model)

    def to_form(self, *, stream: bool) -> list[tuple[str, str]]:
        """Multipart form fields, repeated keys for list values."""
        fields: list[tuple[str, str]] = [("model", self.model)]
        if self.file_id:
            fields.append(("file_id", self.file_id))
        if self.file_url:
            fields.append(("file_url", self.file_url))
        if self.language:
            fields.append(("language", self.language))
        if self.temperature is not None:
            fields.append(("temperature", str(self.temperature)))
        if self.diarize is not None:
            fields.append(("diarize", "true" if self.diarize else "false"))
        for bias in self.context_bias or []:
            fields.append(("context_bias", bias))
        for granularity in self.timestamp_granularities or []:
            fields.append(("timestamp_granularities", granularity))
        fields.append(("stream", "true" if stream else "false"))
        return fields
