"""
Fragment event model.

A turn is delivered to the client as an ordered stream of ``FragmentEvent``
objects.  Every content event carries ``index``, the position of the
addressed fragment in the in-flight assistant message's ``parts``.

On the wire each event is one Server-Sent Event::

    data: {"type": "text-delta", "index": 0, "delta": "Hel"}\\n\\n

and the stream ends with ``data: [DONE]``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Iterable


# ---------------------------------------------------------------------------
# Base event
# ---------------------------------------------------------------------------


@dataclass
class FragmentEvent:
    """
    A single event in a turn's output stream.

    Attributes
    ----------
    event_type:
        One of the ``EVENT_*`` constants below.  Consumers must tolerate
        types they do not know.
    payload:
        Event-specific data as a JSON-compatible dict.
    """

    event_type: str
    payload: dict[str, Any] = field(default_factory=dict)

    @property
    def index(self) -> int | None:
        idx = self.payload.get("index")
        return idx if isinstance(idx, int) and idx >= 0 else None

    @property
    def call_id(self) -> str | None:
        return self.payload.get("call_id")

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        """Flatten to ``{"type": ..., **payload}``."""
        return {"type": self.event_type, **self.payload}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FragmentEvent:
        """Reconstruct an event from a dict produced by ``to_dict``."""
        data = dict(data)  # shallow copy so we don't mutate the caller's dict
        event_type = str(data.pop("type", ""))
        return cls(event_type=event_type, payload=data)


# ---------------------------------------------------------------------------
# Core event types
# ---------------------------------------------------------------------------

EVENT_START = "start"
EVENT_TEXT_DELTA = "text-delta"
EVENT_REASONING_DELTA = "reasoning-delta"
EVENT_TOOL_INPUT_START = "tool-input-start"
EVENT_TOOL_INPUT_AVAILABLE = "tool-input-available"
EVENT_TOOL_OUTPUT_AVAILABLE = "tool-output-available"
EVENT_TOOL_OUTPUT_ERROR = "tool-output-error"
EVENT_FINISH = "finish"
EVENT_ERROR = "error"

FINISH_STOP = "stop"
FINISH_TOOL_CALLS = "tool-calls"

SSE_DONE = "[DONE]"


# ---------------------------------------------------------------------------
# Factory helpers
# ---------------------------------------------------------------------------


def start_event(message_id: str) -> FragmentEvent:
    """Create a ``start`` event opening the assistant message *message_id*."""
    return FragmentEvent(EVENT_START, {"message_id": message_id})


def text_delta_event(index: int, delta: str) -> FragmentEvent:
    return FragmentEvent(EVENT_TEXT_DELTA, {"index": index, "delta": delta})


def reasoning_delta_event(index: int, delta: str) -> FragmentEvent:
    return FragmentEvent(EVENT_REASONING_DELTA, {"index": index, "delta": delta})


def tool_input_start_event(index: int, call_id: str, tool_name: str) -> FragmentEvent:
    """Create a tool call fragment in state ``input-streaming``."""
    return FragmentEvent(
        EVENT_TOOL_INPUT_START,
        {"index": index, "call_id": call_id, "tool_name": tool_name},
    )


def tool_input_available_event(
    index: int, call_id: str, tool_name: str, input: dict[str, Any]
) -> FragmentEvent:
    return FragmentEvent(
        EVENT_TOOL_INPUT_AVAILABLE,
        {"index": index, "call_id": call_id, "tool_name": tool_name, "input": input},
    )


def tool_output_available_event(index: int, call_id: str, output: Any) -> FragmentEvent:
    return FragmentEvent(
        EVENT_TOOL_OUTPUT_AVAILABLE,
        {"index": index, "call_id": call_id, "output": output},
    )


def tool_output_error_event(index: int, call_id: str, error_text: str) -> FragmentEvent:
    return FragmentEvent(
        EVENT_TOOL_OUTPUT_ERROR,
        {"index": index, "call_id": call_id, "error_text": error_text},
    )


def finish_event(finish_reason: str = FINISH_STOP) -> FragmentEvent:
    return FragmentEvent(EVENT_FINISH, {"finish_reason": finish_reason})


def error_event(error_text: str) -> FragmentEvent:
    """Create a terminal ``error`` event.  *error_text* must be client-safe."""
    return FragmentEvent(EVENT_ERROR, {"error_text": error_text})


# ---------------------------------------------------------------------------
# SSE framing
# ---------------------------------------------------------------------------


def encode_sse(event: FragmentEvent) -> str:
    return f"data: {json.dumps(event.to_dict(), default=str)}\n\n"


def encode_sse_done() -> str:
    return f"data: {SSE_DONE}\n\n"


def parse_sse_line(line: str) -> FragmentEvent | str | None:
    """
    Parse one SSE line.

    Returns a ``FragmentEvent``, the ``SSE_DONE`` sentinel, or ``None`` for
    blank lines, comments, and undecodable payloads.
    """
    line = line.rstrip("\r")
    if not line.startswith("data:"):
        return None
    data_str = line[len("data:"):].strip()
    if data_str == SSE_DONE:
        return SSE_DONE
    try:
        data = json.loads(data_str)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None
    return FragmentEvent.from_dict(data)


def iter_sse_events(lines: Iterable[str]) -> Iterable[FragmentEvent]:
    """Decode events from an iterable of SSE lines, stopping at ``[DONE]``."""
    for line in lines:
        parsed = parse_sse_line(line)
        if parsed == SSE_DONE:
            return
        if isinstance(parsed, FragmentEvent):
            yield parsed


async def aiter_sse_events(lines: AsyncIterator[str]) -> AsyncIterator[FragmentEvent]:
    """Async counterpart of ``iter_sse_events``."""
    async for line in lines:
        parsed = parse_sse_line(line)
        if parsed == SSE_DONE:
            return
        if isinstance(parsed, FragmentEvent):
            yield parsed
