"""Rich-based rendering of the assembled conversation."""

from __future__ import annotations

import json
from typing import Any

from rich.console import Group, RenderableType
from rich.syntax import Syntax
from rich.text import Text

from toolchat.client.assembler import STATUS_ERROR, ConversationAssembler
from toolchat.protocol.fragments import (
    ROLE_USER,
    Fragment,
    Message,
    ReasoningFragment,
    TextFragment,
    ToolCallFragment,
    ToolCallState,
    state_label,
)

STATE_COLORS = {
    ToolCallState.INPUT_STREAMING: "yellow",
    ToolCallState.INPUT_AVAILABLE: "cyan",
    ToolCallState.OUTPUT_AVAILABLE: "green",
    ToolCallState.OUTPUT_ERROR: "red",
}


class ToolCallPanels:
    """Expanded/collapsed state of tool-call panels, keyed by ``call_id``."""

    def __init__(self) -> None:
        self._expanded: dict[str, bool] = {}

    def toggle(self, call_id: str) -> bool:
        self._expanded[call_id] = not self._expanded.get(call_id, False)
        return self._expanded[call_id]

    def is_expanded(self, call_id: str) -> bool:
        return self._expanded.get(call_id, False)


def _json_block(value: Any) -> Syntax:
    return Syntax(json.dumps(value, indent=2, default=str), "json", theme="monokai")


class ConversationView:
    """Turns an assembler's state into renderables; holds only view state."""

    def __init__(self, panels: ToolCallPanels | None = None) -> None:
        self.panels = panels or ToolCallPanels()

    def render(self, assembler: ConversationAssembler, since: int = 0) -> Group:
        """Render messages from position *since* onward plus the status line."""
        items: list[RenderableType] = []
        for msg in assembler.messages[since:]:
            items.extend(self.render_message(msg))
        if assembler.is_reasoning:
            items.append(Text("Thinking...", style="dim italic"))
        if assembler.status == STATUS_ERROR:
            items.append(Text(assembler.error_text or "", style="bold red"))
        return Group(*items)

    def render_message(self, msg: Message) -> list[RenderableType]:
        heading = "User" if msg.role == ROLE_USER else "AI"
        items: list[RenderableType] = [Text(heading, style="bold")]
        items.extend(self.render_part(part) for part in msg.parts)
        return items

    def render_part(self, part: Fragment) -> RenderableType:
        if isinstance(part, TextFragment):
            return Text(part.text)
        if isinstance(part, ReasoningFragment):
            # Presence only; the text is never shown.
            return Text("")
        if isinstance(part, ToolCallFragment):
            return self.render_tool_call(part)
        return Text("")

    def render_tool_call(self, call: ToolCallFragment) -> RenderableType:
        header = Text.assemble(
            ("Tool: ", "bold"),
            call.tool_name or "tool",
            "  ",
            (state_label(call.state), STATE_COLORS.get(call.state, "dim")),
        )
        if not self.panels.is_expanded(call.call_id):
            return header

        body: list[RenderableType] = [header]
        if call.state_text:
            body.append(Text(f"State: {call.state_text}", style="dim"))
        if call.input is not None:
            body.append(Text("Input", style="dim"))
            body.append(_json_block(call.input))
        if call.state is ToolCallState.OUTPUT_AVAILABLE:
            body.append(Text("Output", style="dim"))
            body.append(_json_block(call.output))
        if call.state is ToolCallState.OUTPUT_ERROR:
            body.append(Text(call.error_text or "", style="red"))
        return Group(*body)
