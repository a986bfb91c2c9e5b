"""
Model capability.

``LLMRouter`` holds the registered chat-completion providers and streams
from the active one.  Whatever goes wrong upstream (HTTP status, dropped
connection, a provider bug) leaves ``stream`` as ``ModelStreamError``, the
single failure type the orchestrator has to handle.
"""

from __future__ import annotations

import logging
from typing import AsyncIterator

from toolchat.llm.providers.base import Provider
from toolchat.llm.types import ModelMessage, StreamChunk
from toolchat.types import ModelStreamError

logger = logging.getLogger(__name__)


class LLMRouter:
    def __init__(self) -> None:
        self._providers: dict[str, Provider] = {}
        self._active: str | None = None

    def register_provider(self, name: str, provider: Provider) -> None:
        """Add *provider* under *name*; the first one registered becomes active."""
        self._providers[name] = provider
        if self._active is None:
            self._active = name

    @property
    def active_name(self) -> str | None:
        return self._active

    @property
    def active_provider(self) -> Provider:
        if self._active is None:
            raise ModelStreamError("No model provider is configured")
        return self._providers[self._active]

    async def stream(
        self,
        history: list[ModelMessage],
        tools: list[dict] | None = None,
        tool_choice: str = "auto",
        timeout: float = 30.0,
    ) -> AsyncIterator[StreamChunk]:
        """
        Stream one completion over *history* with *tools* offered.

        Raises ``ModelStreamError`` when the completion cannot be started or
        breaks off part-way.
        """
        provider = self.active_provider
        try:
            async for chunk in provider.stream(
                history, tools=tools, tool_choice=tool_choice, timeout=timeout
            ):
                yield chunk
        except ModelStreamError:
            raise
        except Exception as exc:
            logger.warning("Provider %s failed mid-stream: %s", self._active, exc)
            raise ModelStreamError(f"Model stream failed: {exc}", exc) from exc
