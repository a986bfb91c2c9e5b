"""
Streamed tool-call assembly.

Providers stream a tool call as a run of ``RawToolDelta`` pieces sharing a
``call_index``: the id and name usually come first, then the argument JSON
in arbitrary slices, then a ``done`` marker.  ``ToolCallAssembler`` buffers
those pieces per index.  The orchestrator uses ``pending`` to announce a call
as soon as its name is known, and gets a finished ``ToolCall`` back from
``feed`` once the call closes.

Argument text that does not decode to a JSON object still produces a
``ToolCall``; it carries ``parse_error`` so the failure can be reported on
that call alone.
"""

from __future__ import annotations

import json
from dataclasses import dataclass

from toolchat.llm.types import RawToolDelta, ToolCall


@dataclass
class _Buffer:
    index: int
    id: str | None = None
    name: str = ""
    args: str = ""

    @property
    def call_id(self) -> str:
        return self.id or f"call_{self.index}"

    def add(self, delta: RawToolDelta) -> None:
        if delta.id and self.id is None:
            self.id = delta.id
        self.name += delta.name_delta
        self.args += delta.args_delta


class ToolCallAssembler:
    def __init__(self) -> None:
        self._open: dict[int, _Buffer] = {}
        self.errors: list[str] = []

    def feed(self, delta: RawToolDelta) -> ToolCall | None:
        """Add *delta*; return the finished call when this delta closes it."""
        buf = self._open.get(delta.call_index)
        if buf is None:
            buf = self._open[delta.call_index] = _Buffer(index=delta.call_index)
        buf.add(delta)
        if delta.done:
            return self._close(delta.call_index)
        return None

    def pending(self, index: int) -> tuple[str, str] | None:
        """``(call_id, name)`` of an open call once its name has arrived."""
        buf = self._open.get(index)
        if buf is None or not buf.name.strip():
            return None
        return buf.call_id, buf.name.strip()

    def flush(self) -> list[ToolCall]:
        """Close every call still open, in index order (end of stream)."""
        return [call for _, call in self.flush_indexed()]

    def flush_indexed(self) -> list[tuple[int, ToolCall]]:
        """Like ``flush`` but paired with each call's stream index."""
        return [(index, self._close(index)) for index in sorted(self._open)]

    def reset(self) -> None:
        self._open.clear()
        self.errors.clear()

    def _close(self, index: int) -> ToolCall:
        buf = self._open.pop(index)
        name = buf.name.strip()

        try:
            arguments = json.loads(buf.args or "{}")
        except ValueError as exc:
            self.errors.append(f"tool_call_json_parse_failed idx={index} err={exc}")
            return ToolCall(buf.call_id, name, {}, parse_error=f"Invalid JSON arguments: {exc}")

        if not isinstance(arguments, dict):
            self.errors.append(f"tool_call_args_not_object idx={index}")
            return ToolCall(
                buf.call_id, name, {}, parse_error="Tool arguments must be a JSON object"
            )
        return ToolCall(buf.call_id, name, arguments)
