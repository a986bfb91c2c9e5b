"""Model capability: chat-completion providers, routing, tool-call assembly."""

from toolchat.llm.router import LLMRouter
from toolchat.llm.tool_call_assembler import ToolCallAssembler
from toolchat.llm.types import ModelMessage, RawToolDelta, StreamChunk, ToolCall

__all__ = [
    "LLMRouter",
    "ModelMessage",
    "RawToolDelta",
    "StreamChunk",
    "ToolCall",
    "ToolCallAssembler",
]
