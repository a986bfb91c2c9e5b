"""System prompt builder."""

from __future__ import annotations


def build_system_prompt(base: str | None = None) -> str:
    """
    Build the system prompt for the orchestrator.

    *base* replaces the default assistant description when given (the
    ``chat.system_prompt`` config value).
    """
    return "\n\n".join([base or DEFAULT_PROMPT, TOOL_USE_SECTION])


DEFAULT_PROMPT = (
    "You are a helpful assistant specialized in answering questions about "
    "NFTs and crypto tokens. You can use the tools provided to you to get "
    "the information you need."
)

TOOL_USE_SECTION = """## Tool Use

- Prefer calling a tool over guessing market data, prices, or holdings.
- You may call several tools at once when the calls are independent.
- If a tool returns an error, say so briefly and answer with what you have."""
