"""Automatic follow-up turns once every tool call of the last answer has a result."""

from __future__ import annotations

import logging

from toolchat.client.assembler import STATUS_READY, ConversationAssembler
from toolchat.protocol.fragments import (
    ROLE_ASSISTANT,
    Conversation,
    TextFragment,
    ToolCallFragment,
)

logger = logging.getLogger(__name__)


def last_assistant_message_is_complete_with_tool_calls(conversation: Conversation) -> bool:
    """
    True when the conversation ends with a settled assistant message whose
    tool calls are all terminal and that has not answered with text since
    its last tool call.
    """
    last = conversation.last
    if last is None or last.role != ROLE_ASSISTANT or not last.frozen:
        return False

    calls = last.tool_calls()
    if not calls or not all(c.is_terminal for c in calls):
        return False

    last_call = max(i for i, p in enumerate(last.parts) if isinstance(p, ToolCallFragment))
    return not any(
        isinstance(p, TextFragment) and p.text.strip()
        for p in last.parts[last_call + 1:]
    )


class AutoContinuationPolicy:
    """
    Decides whether a settled turn should trigger the next one by itself.

    Fires at most once per assistant message and at most *max_consecutive*
    times between two user messages.
    """

    def __init__(self, max_consecutive: int = 3) -> None:
        self.max_consecutive = max_consecutive
        self._handled: set[str] = set()
        self._consecutive = 0

    def reset(self) -> None:
        """Call whenever the user sends a message."""
        self._consecutive = 0

    def should_continue(self, assembler: ConversationAssembler) -> bool:
        if assembler.status != STATUS_READY:
            return False
        if not last_assistant_message_is_complete_with_tool_calls(assembler.conversation):
            return False

        message_id = assembler.conversation.last.id
        if message_id in self._handled:
            return False
        self._handled.add(message_id)

        if self._consecutive >= self.max_consecutive:
            logger.warning(
                "Auto-continuation cap of %d reached; waiting for user input",
                self.max_consecutive,
            )
            return False
        self._consecutive += 1
        return True
