"""Conversation data model and fragment-event wire format."""

from toolchat.protocol.events import (
    EVENT_ERROR,
    EVENT_FINISH,
    EVENT_REASONING_DELTA,
    EVENT_START,
    EVENT_TEXT_DELTA,
    EVENT_TOOL_INPUT_AVAILABLE,
    EVENT_TOOL_INPUT_START,
    EVENT_TOOL_OUTPUT_AVAILABLE,
    EVENT_TOOL_OUTPUT_ERROR,
    FragmentEvent,
    encode_sse,
    encode_sse_done,
    iter_sse_events,
)
from toolchat.protocol.fragments import (
    Conversation,
    Fragment,
    FrozenMessageError,
    InvalidTransitionError,
    Message,
    ReasoningFragment,
    TextFragment,
    ToolCallFragment,
    ToolCallState,
    UnknownFragment,
    state_label,
)

__all__ = [
    "Conversation",
    "Fragment",
    "FragmentEvent",
    "FrozenMessageError",
    "InvalidTransitionError",
    "Message",
    "ReasoningFragment",
    "TextFragment",
    "ToolCallFragment",
    "ToolCallState",
    "UnknownFragment",
    "encode_sse",
    "encode_sse_done",
    "iter_sse_events",
    "state_label",
    # Event type constants
    "EVENT_ERROR",
    "EVENT_FINISH",
    "EVENT_REASONING_DELTA",
    "EVENT_START",
    "EVENT_TEXT_DELTA",
    "EVENT_TOOL_INPUT_AVAILABLE",
    "EVENT_TOOL_INPUT_START",
    "EVENT_TOOL_OUTPUT_AVAILABLE",
    "EVENT_TOOL_OUTPUT_ERROR",
]
