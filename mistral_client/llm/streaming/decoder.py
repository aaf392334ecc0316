"""
Stream decoding entry points wiring splitter, parser and accumulator together.
"""

from __future__ import annotations

import asyncio
import inspect
import uuid
from collections.abc import AsyncGenerator, AsyncIterable, Awaitable, Callable
from typing import Any

from ...logging_utils import ContextualLogger
from ..exceptions import InvalidStateError, StreamCancelledError
from .accumulator import ChunkAccumulator
from .models import AccumulatorState, Done, StreamEvent
from .parser import EventParser, FrameSplitter

EventCallback = Callable[[StreamEvent], Awaitable[Any] | Any]


class StreamDecoder:
    """
    Decodes one event stream. Each instance owns its own splitter and
    parser and can be consumed once.
    """

    def __init__(
        self,
        *,
        enable_recovery: bool = True,
        read_timeout: float | None = None,
        cancel_event: asyncio.Event | None = None,
        line_mode: bool = False,
    ):
        self.parser = EventParser(enable_recovery=enable_recovery)
        self.splitter = FrameSplitter(
            read_timeout=read_timeout, cancel_event=cancel_event
        )
        self.cancel_event = cancel_event
        self.line_mode = line_mode
        self.sentinel_seen = False
        self.done_seen = False
        self._started = False
        self._log = ContextualLogger({"stream_id": uuid.uuid4().hex[:8]})

    @property
    def cancelled(self) -> bool:
        return self.splitter.cancelled

    async def events(
        self, source: AsyncIterable[bytes | str]
    ) -> AsyncGenerator[StreamEvent]:
        """Yield typed events until a terminal event, the sentinel, or transport end."""
        if self._started:
            raise InvalidStateError("A StreamDecoder can only decode one stream")
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise StreamCancelledError("Cannot decode a stream after cancellation")
        self._started = True

        frames = (
            self.splitter.split_lines(source)
            if self.line_mode
            else self.splitter.split(source)
        )
        self._log.debug("Stream decoding started", line_mode=self.line_mode)

        try:
            async for frame in frames:
                parsed = self.parser.parse_frame(frame)
                if parsed.end_of_stream:
                    self.sentinel_seen = True
                    break
                if parsed.event is None:
                    continue

                yield parsed.event

                if isinstance(parsed.event, Done):
                    self.done_seen = True
                    break
        finally:
            await frames.aclose()
            self._log_outcome()

    def _log_outcome(self) -> None:
        stats = self.parser.get_stats()
        if self.done_seen or self.sentinel_seen:
            self._log.debug("Stream decoding finished", **stats)
        elif self.cancelled:
            self._log.info("Stream decoding cancelled", **stats)
        else:
            self._log.warning("Stream ended without a terminal event", **stats)


def decode_stream(
    source: AsyncIterable[bytes | str], **options: Any
) -> AsyncGenerator[StreamEvent]:
    """
    Lazily decode ``source`` into stream events.

    Options are passed to StreamDecoder: ``enable_recovery``, ``read_timeout``,
    ``cancel_event`` and ``line_mode``.
    """
    return StreamDecoder(**options).events(source)


async def decode_stream_collect(
    source: AsyncIterable[bytes | str],
    on_event: EventCallback | None = None,
    **options: Any,
) -> AccumulatorState:
    """
    Decode ``source`` and fold every event into one result.

    ``on_event`` is called after each event is folded; coroutine functions
    are awaited. The result stays OPEN when the transport ended (or the
    stream was cancelled) before a terminal event or the sentinel.
    """
    decoder = StreamDecoder(**options)
    accumulator = ChunkAccumulator()

    events = decoder.events(source)
    try:
        async for event in events:
            accumulator.process_event(event)
            if on_event is not None:
                result = on_event(event)
                if inspect.isawaitable(result):
                    await result
    finally:
        await events.aclose()

    if decoder.sentinel_seen:
        accumulator.close()
    return accumulator.state
