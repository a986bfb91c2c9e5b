"""Conversion from the client conversation to model-facing history."""

from __future__ import annotations

import json
from typing import Any, Iterable

from toolchat.llm.types import ROLE_TOOL, ModelMessage, ToolCall
from toolchat.protocol.fragments import (
    ROLE_ASSISTANT,
    ROLE_USER,
    Message,
    TextFragment,
    ToolCallFragment,
    ToolCallState,
)


def tool_result_content(fragment: ToolCallFragment) -> str:
    """Render a terminal tool call's result as the text fed back to the model."""
    if fragment.state is ToolCallState.OUTPUT_ERROR:
        return f"Error: {fragment.error_text}"
    return output_to_text(fragment.output)


def output_to_text(output: Any) -> str:
    if isinstance(output, str):
        return output
    return json.dumps(output, default=str)


def to_model_messages(messages: Iterable[Message]) -> list[ModelMessage]:
    """
    Convert conversation messages into the model's role/content history.

    Reasoning is dropped.  An assistant message is split into steps: text
    followed by the tool calls it made, then one ``tool`` message per call
    with its result.  Calls that never reached a terminal state have no
    result to report and are left out.
    """
    history: list[ModelMessage] = []
    for msg in messages:
        if msg.role == ROLE_USER:
            history.append(ModelMessage(role="user", content=msg.text))
        elif msg.role == ROLE_ASSISTANT:
            history.extend(_assistant_steps(msg))
    return history


def _assistant_steps(msg: Message) -> list[ModelMessage]:
    out: list[ModelMessage] = []
    text_parts: list[str] = []
    calls: list[ToolCallFragment] = []

    def flush() -> None:
        if not text_parts and not calls:
            return
        out.append(
            ModelMessage(
                role="assistant",
                content="".join(text_parts),
                tool_calls=[
                    ToolCall(id=c.call_id, name=c.tool_name, arguments=c.input or {})
                    for c in calls
                ]
                or None,
            )
        )
        for c in calls:
            out.append(
                ModelMessage(
                    role=ROLE_TOOL,
                    content=tool_result_content(c),
                    tool_call_id=c.call_id,
                )
            )
        text_parts.clear()
        calls.clear()

    for part in msg.parts:
        if isinstance(part, TextFragment):
            if calls:
                flush()
            text_parts.append(part.text)
        elif isinstance(part, ToolCallFragment) and part.is_terminal:
            calls.append(part)
    flush()
    return out
