"""
Model-facing types.

``ModelMessage`` is the history format the model sees; it is built from the
conversation by ``toolchat.protocol.convert`` and serialized to the OpenAI
chat-completions wire shape by ``to_wire``.  ``StreamChunk`` is what a
provider yields while a completion streams.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

ROLE_SYSTEM = "system"
ROLE_TOOL = "tool"


@dataclass
class ToolCall:
    """
    A finished tool call requested by the model.

    When the streamed argument text was not valid JSON, *parse_error* says
    why and *arguments* is empty; such a call is reported, never invoked.
    """

    id: str
    name: str
    arguments: dict
    parse_error: str | None = None

    def to_wire(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": json.dumps(self.arguments)},
        }


@dataclass
class ModelMessage:
    role: str
    content: str
    tool_calls: list[ToolCall] | None = None
    tool_call_id: str | None = None

    def to_wire(self) -> dict[str, Any]:
        out: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.tool_calls:
            out["tool_calls"] = [tc.to_wire() for tc in self.tool_calls]
        if self.tool_call_id:
            out["tool_call_id"] = self.tool_call_id
        return out


@dataclass
class RawToolDelta:
    """
    One streamed piece of a tool call.

    Deltas for the same call share *call_index*; the first usually carries
    the *id*.  ``done=True`` marks the call's arguments as complete.
    """

    call_index: int
    id: str | None = None
    name_delta: str = ""
    args_delta: str = ""
    done: bool = False


@dataclass
class StreamChunk:
    delta: str = ""
    reasoning_delta: str = ""
    tool_deltas: list[RawToolDelta] | None = None
    finish_reason: str | None = None
    done: bool = False
