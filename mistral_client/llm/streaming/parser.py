"""
SSE frame splitting and event parsing with per-frame error recovery.
"""

from __future__ import annotations

import asyncio
import codecs
import json
from collections.abc import AsyncGenerator, AsyncIterable, AsyncIterator
from typing import Any

import httpx
import structlog
from pydantic import ValidationError

from ..exceptions import (
    DecodeError,
    StreamTimeoutError,
    StreamTransportError,
)
from .models import (
    DONE_SENTINEL,
    EVENT_TYPES,
    HEARTBEAT_PAYLOADS,
    ChatCompletionChunk,
    ChatDelta,
    ParsedFrame,
    ParserStats,
    stream_event_adapter,
)

logger = structlog.get_logger(__name__)

SSE_FIELDS = frozenset({"data", "event", "id", "retry"})
CHAT_CHUNK_TYPE = "chat.completion.chunk"

_END = object()


class FrameSplitter:
    """
    Splits a byte, text or line source into blank-line delimited frames.

    Cancellation is checked before every read and before each buffered frame
    is handed out, never while a frame is being assembled. ``read_timeout``
    bounds each individual read.
    """

    def __init__(
        self,
        read_timeout: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ):
        self.read_timeout = read_timeout
        self.cancel_event = cancel_event
        self.cancelled = False

    async def split(
        self, source: AsyncIterable[bytes | str]
    ) -> AsyncGenerator[str]:
        """Yield frames from a source of raw byte or text chunks."""
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        iterator = aiter(source)
        buffer = ""
        pending_cr = ""

        while True:
            chunk = await self._read(iterator)
            if chunk is _END:
                break

            text = chunk if isinstance(chunk, str) else decoder.decode(chunk)
            text = pending_cr + text
            pending_cr = ""
            # A CR at the end of a read may be the first half of a CRLF
            if text.endswith("\r"):
                text, pending_cr = text[:-1], "\r"
            buffer += text.replace("\r\n", "\n").replace("\r", "\n")

            while "\n\n" in buffer:
                frame, buffer = buffer.split("\n\n", 1)
                if not frame.strip():
                    continue
                if self._check_cancelled():
                    return
                yield frame

        if self.cancelled:
            return

        buffer += decoder.decode(b"", final=True) + pending_cr.replace("\r", "\n")
        for frame in buffer.split("\n\n"):
            if not frame.strip():
                continue
            if self._check_cancelled():
                return
            yield frame

    async def split_lines(self, lines: AsyncIterable[str]) -> AsyncGenerator[str]:
        """Yield frames from a source that already yields single lines."""
        iterator = aiter(lines)
        frame_lines: list[str] = []

        while True:
            line = await self._read(iterator)
            if line is _END:
                break

            line = line.rstrip("\r\n")
            if line.strip():
                frame_lines.append(line)
            elif frame_lines:
                if self._check_cancelled():
                    return
                yield "\n".join(frame_lines)
                frame_lines = []

        if frame_lines and not self._check_cancelled():
            yield "\n".join(frame_lines)

    def _check_cancelled(self) -> bool:
        if self.cancel_event is not None and self.cancel_event.is_set():
            if not self.cancelled:
                logger.debug("Stream cancelled")
            self.cancelled = True
        return self.cancelled

    async def _read(self, iterator: AsyncIterator[Any]) -> Any:
        if self._check_cancelled():
            return _END

        try:
            if self.read_timeout is None:
                return await anext(iterator)
            return await asyncio.wait_for(anext(iterator), self.read_timeout)
        except StopAsyncIteration:
            return _END
        except TimeoutError as e:
            raise StreamTimeoutError(
                f"No stream data received within {self.read_timeout}s",
                timeout=self.read_timeout,
            ) from e
        except httpx.TimeoutException as e:
            raise StreamTimeoutError(
                f"Stream timeout: {e}", timeout=self.read_timeout
            ) from e
        except (httpx.TransportError, httpx.StreamError) as e:
            raise StreamTransportError(f"Stream error: {e}") from e


class EventParser:
    """
    Parses single frames into typed stream events.

    With ``enable_recovery`` a frame that cannot be decoded is logged and
    skipped; without it a ``DecodeError`` is raised.
    """

    def __init__(self, enable_recovery: bool = True):
        self.enable_recovery = enable_recovery
        self.stats = ParserStats()

    def parse_frame(self, frame: str) -> ParsedFrame:
        """
        Parse one raw frame.

        Returns a ParsedFrame holding either an event, the end-of-stream
        marker, or nothing when the frame is skipped.
        """
        self.stats.total_frames += 1

        payload, event_name = self._extract_payload(frame)
        if payload is None:
            self.stats.skipped_frames += 1
            return ParsedFrame()

        stripped = payload.strip()
        if stripped == DONE_SENTINEL:
            return ParsedFrame(end_of_stream=True, raw_data=stripped)

        if stripped in HEARTBEAT_PAYLOADS:
            self.stats.skipped_frames += 1
            return ParsedFrame(raw_data=payload)

        try:
            data = json.loads(payload)
        except json.JSONDecodeError as e:
            return self._failure(f"JSON decode error: {e}", payload)

        if not isinstance(data, dict):
            return self._failure(
                f"Expected a JSON object, got {type(data).__name__}", payload
            )

        event_type = self._discriminator(data, event_name)
        if event_type not in EVENT_TYPES:
            self.stats.unknown_frames += 1
            logger.debug("Skipping unknown stream event", event_type=event_type)
            return ParsedFrame(raw_data=payload)

        try:
            if event_type == CHAT_CHUNK_TYPE:
                event = ChatDelta.from_chunk(ChatCompletionChunk.model_validate(data))
            else:
                event = stream_event_adapter.validate_python(
                    {**data, "type": event_type}
                )
        except ValidationError as e:
            return self._failure(
                f"Invalid '{event_type}' payload: {e.error_count()} error(s)", payload
            )

        self.stats.event_frames += 1
        return ParsedFrame(event=event, raw_data=payload)

    @staticmethod
    def _extract_payload(frame: str) -> tuple[str | None, str | None]:
        """Collect ``data:`` lines, or the bare frame when it has no SSE fields."""
        data_lines: list[str] = []
        bare_lines: list[str] = []
        event_name = None

        for line in frame.split("\n"):
            if not line.strip() or line.startswith(":"):
                continue

            field_name, sep, value = line.partition(":")
            if sep and field_name in SSE_FIELDS:
                if value.startswith(" "):
                    value = value[1:]
                if field_name == "data":
                    data_lines.append(value)
                elif field_name == "event":
                    event_name = value.strip()
                continue

            bare_lines.append(line)

        if data_lines:
            return "\n".join(data_lines), event_name
        if bare_lines:
            return "\n".join(bare_lines), event_name
        return None, event_name

    @staticmethod
    def _discriminator(data: dict[str, Any], event_name: str | None) -> str | None:
        # Payload type wins, then the chat chunk object tag, then the SSE event name
        if isinstance(data.get("type"), str):
            return data["type"]
        if data.get("object") == CHAT_CHUNK_TYPE or "choices" in data:
            return CHAT_CHUNK_TYPE
        return event_name

    def _failure(self, error: str, payload: str) -> ParsedFrame:
        self.stats.error_frames += 1
        if not self.enable_recovery:
            raise DecodeError(f"SSE parse error: {error}", frame=payload)

        logger.warning("Skipping undecodable stream frame", error=error)
        return ParsedFrame(error=error, raw_data=payload)

    def get_stats(self) -> dict[str, int]:
        """Get parsing statistics for monitoring."""
        return self.stats.as_dict()

    def reset_stats(self) -> None:
        """Reset statistics counters."""
        self.stats = ParserStats()
