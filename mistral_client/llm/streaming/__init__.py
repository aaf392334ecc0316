"""
Streaming support for Mistral API responses.

This package contains:
- SSE frame splitting with timeout and cancellation handling
- Event parsing into a tagged union of stream events
- Event accumulation into a single result
"""

from __future__ import annotations

from .accumulator import ChunkAccumulator, close, fold
from .decoder import StreamDecoder, decode_stream, decode_stream_collect
from .models import (
    AccumulatorState,
    ChatCompletionChunk,
    ChatDelta,
    Done,
    Language,
    SegmentDelta,
    StreamEvent,
    StreamState,
    TextDelta,
)
from .parser import EventParser, FrameSplitter

__all__ = [
    "AccumulatorState",
    "ChatCompletionChunk",
    "ChatDelta",
    "ChunkAccumulator",
    "Done",
    "EventParser",
    "FrameSplitter",
    "Language",
    "SegmentDelta",
    "StreamDecoder",
    "StreamEvent",
    "StreamState",
    "TextDelta",
    "close",
    "decode_stream",
    "decode_stream_collect",
    "fold",
]
