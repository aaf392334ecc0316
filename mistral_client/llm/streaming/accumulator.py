"""
Folding stream events into a single accumulated result.
"""

from __future__ import annotations

from dataclasses import replace

from ..exceptions import InvalidStateError
from .models import (
    AccumulatorState,
    ChatDelta,
    Done,
    Language,
    SegmentDelta,
    StreamEvent,
    StreamState,
    TextDelta,
)

DEFAULT_FINISH_REASON = "stop"


def fold(state: AccumulatorState, event: StreamEvent) -> AccumulatorState:
    """
    Return a new state with ``event`` applied.

    Raises:
        InvalidStateError: If ``state`` is already closed.
    """
    if state.state is StreamState.CLOSED:
        raise InvalidStateError(
            f"Cannot fold '{event.type}' into a closed stream result"
        )

    events = (*state.events, event)

    if isinstance(event, TextDelta):
        return replace(state, events=events, text=state.text + event.text)

    if isinstance(event, ChatDelta):
        return replace(
            state,
            events=events,
            text=state.text + event.text,
            id=event.id or state.id,
            model=event.model or state.model,
            usage=event.usage or state.usage,
            finish_reason=event.finish_reason or state.finish_reason,
        )

    if isinstance(event, Language):
        return replace(
            state,
            events=events,
            side_events=(*state.side_events, event),
            language=event.code or state.language,
        )

    if isinstance(event, SegmentDelta):
        return replace(
            state, events=events, side_events=(*state.side_events, event)
        )

    if isinstance(event, Done):
        # The server-declared total replaces whatever was concatenated
        return replace(
            state,
            events=events,
            text=event.text if event.text is not None else state.text,
            usage=event.usage or state.usage,
            finish_reason=event.finish_reason or DEFAULT_FINISH_REASON,
            language=event.language or state.language,
            model=event.model or state.model,
            state=StreamState.CLOSED,
        )

    raise TypeError(f"Unsupported stream event: {type(event).__name__}")


def close(state: AccumulatorState) -> AccumulatorState:
    """Mark a state closed without a terminal event. Closed states are returned as-is."""
    if state.state is StreamState.CLOSED:
        return state
    return replace(state, state=StreamState.CLOSED)


class ChunkAccumulator:
    """Stateful holder around ``fold`` for callers consuming events one by one."""

    def __init__(self):
        self.state = AccumulatorState()

    def process_event(self, event: StreamEvent) -> AccumulatorState:
        self.state = fold(self.state, event)
        return self.state

    def close(self) -> AccumulatorState:
        self.state = close(self.state)
        return self.state

    @property
    def is_closed(self) -> bool:
        return self.state.is_complete

    def reset(self) -> None:
        """Reset accumulator state for a new stream."""
        self.state = AccumulatorState()
