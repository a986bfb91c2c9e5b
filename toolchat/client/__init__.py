"""Client side: conversation assembly, auto-continuation, rendering."""

from toolchat.client.assembler import (
    STATUS_ERROR,
    STATUS_READY,
    STATUS_STREAMING,
    STATUS_SUBMITTED,
    ConversationAssembler,
)
from toolchat.client.client import ChatClient
from toolchat.client.continuation import (
    AutoContinuationPolicy,
    last_assistant_message_is_complete_with_tool_calls,
)
from toolchat.client.view import ConversationView, ToolCallPanels

__all__ = [
    "AutoContinuationPolicy",
    "ChatClient",
    "ConversationAssembler",
    "ConversationView",
    "STATUS_ERROR",
    "STATUS_READY",
    "STATUS_STREAMING",
    "STATUS_SUBMITTED",
    "ToolCallPanels",
    "last_assistant_message_is_complete_with_tool_calls",
]
