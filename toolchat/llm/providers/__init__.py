"""LLM provider implementations."""

from toolchat.llm.providers.base import Provider
from toolchat.llm.providers.openai_compat import OpenAICompatProvider

__all__ = ["OpenAICompatProvider", "Provider"]
