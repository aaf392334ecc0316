"""
Streaming event models and accumulator state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from ..models import (
    MessageContent,
    TranscriptionSegment,
    UsageInfo,
    extract_answer_text,
    known_chunks_only,
)

DONE_SENTINEL = "[DONE]"
HEARTBEAT_PAYLOADS = frozenset({"", "ping", "heartbeat"})


class StreamState(Enum):
    """Lifecycle of an accumulated stream result."""
    OPEN = "open"
    CLOSED = "closed"


class TextDelta(BaseModel):
    """Incremental transcription text."""
    type: Literal["transcription.text.delta"] = "transcription.text.delta"
    text: str = ""


class Language(BaseModel):
    """Language detected for the audio being transcribed."""
    type: Literal["transcription.language"] = "transcription.language"
    code: str = Field(default="", alias="audio_language")

    model_config = ConfigDict(populate_by_name=True)


class SegmentDelta(BaseModel):
    """Timestamped transcription segment."""
    type: Literal["transcription.segment"] = "transcription.segment"
    text: str = ""
    start: float = 0.0
    end: float = 0.0
    speaker_id: str | None = None


class Done(BaseModel):
    """Terminal event carrying the server-declared totals."""
    type: Literal["transcription.done"] = "transcription.done"
    text: str | None = None
    model: str = ""
    language: str | None = None
    segments: list[TranscriptionSegment] = Field(default_factory=list)
    usage: UsageInfo | None = None
    finish_reason: str | None = None


class DeltaMessage(BaseModel):
    """New content since the previous chunk."""
    role: str | None = None
    content: MessageContent | None = None

    @field_validator("content", mode="before")
    @classmethod
    def _drop_unknown_chunks(cls, value: Any) -> Any:
        return known_chunks_only(value)


class StreamingChoice(BaseModel):
    index: int = 0
    delta: DeltaMessage | None = None
    finish_reason: str | None = None


class ChatCompletionChunk(BaseModel):
    """Wire shape of one streamed chat completion chunk."""
    id: str = ""
    object: str = "chat.completion.chunk"
    model: str = ""
    created: int = 0
    choices: list[StreamingChoice] = Field(default_factory=list)
    usage: UsageInfo | None = None

    def content_text(self) -> str:
        if not self.choices or self.choices[0].delta is None:
            return ""
        return extract_answer_text(self.choices[0].delta.content)

    @property
    def is_complete(self) -> bool:
        return bool(self.choices) and self.choices[0].finish_reason is not None


class ChatDelta(BaseModel):
    """One chat completion chunk, reduced to its first choice."""
    type: Literal["chat.completion.chunk"] = "chat.completion.chunk"
    id: str = ""
    model: str = ""
    text: str = ""
    role: str | None = None
    finish_reason: str | None = None
    usage: UsageInfo | None = None

    @classmethod
    def from_chunk(cls, chunk: ChatCompletionChunk) -> ChatDelta:
        first = chunk.choices[0] if chunk.choices else None
        return cls(
            id=chunk.id,
            model=chunk.model,
            text=chunk.content_text(),
            role=first.delta.role if first and first.delta else None,
            finish_reason=first.finish_reason if first else None,
            usage=chunk.usage,
        )


StreamEvent = Annotated[
    TextDelta | Language | SegmentDelta | Done | ChatDelta,
    Field(discriminator="type"),
]

stream_event_adapter: TypeAdapter[StreamEvent] = TypeAdapter(StreamEvent)

EVENT_TYPES = frozenset({
    "transcription.text.delta",
    "transcription.language",
    "transcription.segment",
    "transcription.done",
    "chat.completion.chunk",
})


@dataclass(frozen=True)
class AccumulatorState:
    """
    Fold target for a stream of events.

    Instances are immutable; every fold returns a new state. Once ``state``
    is CLOSED no further events may be folded in.
    """
    events: tuple[StreamEvent, ...] = ()
    text: str = ""
    side_events: tuple[Language | SegmentDelta, ...] = ()
    usage: UsageInfo | None = None
    finish_reason: str | None = None
    language: str | None = None
    state: StreamState = StreamState.OPEN

    # Chat stream metadata
    id: str = ""
    model: str = ""

    @property
    def is_complete(self) -> bool:
        return self.state is StreamState.CLOSED

    @property
    def segments(self) -> list[SegmentDelta]:
        return [e for e in self.side_events if isinstance(e, SegmentDelta)]

    @property
    def event_count(self) -> int:
        return len(self.events)


@dataclass
class ParserStats:
    """Counters kept by the event parser."""
    total_frames: int = 0
    event_frames: int = 0
    skipped_frames: int = 0
    unknown_frames: int = 0
    error_frames: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "total_frames": self.total_frames,
            "event_frames": self.event_frames,
            "skipped_frames": self.skipped_frames,
            "unknown_frames": self.unknown_frames,
            "error_frames": self.error_frames,
        }


@dataclass(frozen=True)
class ParsedFrame:
    """Outcome of parsing one raw frame."""
    event: StreamEvent | None = None
    end_of_stream: bool = False
    error: str | None = None
    raw_data: str = field(default="", repr=False)
