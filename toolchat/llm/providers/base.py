"""Model provider interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import AsyncIterator

from toolchat.llm.types import ModelMessage, StreamChunk


class Provider(ABC):
    """
    One chat-completion endpoint.

    ``stream`` is implemented as an async generator.  It yields text,
    reasoning and tool-call deltas as they arrive and ends with a chunk whose
    ``done`` flag is set.  Failures propagate as exceptions; the router turns
    them into ``ModelStreamError``.
    """

    @property
    @abstractmethod
    def name(self) -> str: ...

    @abstractmethod
    def stream(
        self,
        history: list[ModelMessage],
        tools: list[dict] | None = None,
        tool_choice: str = "auto",
        timeout: float = 30.0,
    ) -> AsyncIterator[StreamChunk]: ...
