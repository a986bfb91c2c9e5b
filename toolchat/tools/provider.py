"""
Tool-provider connection interface.

A connection is opened once per turn, asked for its tool definitions, used
for any number of invocations, and closed exactly once.  ``open_connection``
is the scope guard every caller goes through.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator

from toolchat.types import ToolProviderConnectionError, ToolResult

logger = logging.getLogger(__name__)


def normalize_schema(schema: dict | None) -> dict:
    s = dict(schema or {})
    s.setdefault("type", "object")
    s.setdefault("properties", {})
    return s


@dataclass
class ToolDefinition:
    name: str
    description: str = ""
    input_schema: dict = field(default_factory=dict)

    def to_openai_schema(self) -> dict:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": normalize_schema(self.input_schema),
            },
        }


class ToolProviderConnection(ABC):
    @abstractmethod
    async def discover_tools(self) -> dict[str, ToolDefinition]: ...

    @abstractmethod
    async def invoke(self, name: str, args: dict[str, Any]) -> ToolResult:
        """
        Call tool *name*.

        Returns a ``ToolResult``; raises ``ToolInvocationError`` when the call
        could not be made at all.
        """
        ...

    @abstractmethod
    async def close(self) -> None: ...


class ToolProviderConnector(ABC):
    """Opens fresh, exclusively owned connections to one tool provider."""

    @abstractmethod
    async def open(self) -> ToolProviderConnection: ...


@asynccontextmanager
async def open_connection(
    connector: ToolProviderConnector,
) -> AsyncIterator[ToolProviderConnection]:
    """
    Open a connection for the duration of the ``async with`` block.

    Any failure to open is raised as ``ToolProviderConnectionError``.  Once
    opened, the connection is closed exactly once on every exit path,
    including cancellation and generator close.
    """
    try:
        conn = await connector.open()
    except ToolProviderConnectionError:
        raise
    except Exception as exc:
        raise ToolProviderConnectionError(
            f"Could not open tool provider connection: {exc}", exc
        ) from exc

    logger.debug("Tool provider connection opened")
    try:
        yield conn
    finally:
        # Shielded so a cancelled turn still finishes closing.
        try:
            await asyncio.shield(_close(conn))
        finally:
            logger.debug("Tool provider connection closed")


async def _close(conn: ToolProviderConnection) -> None:
    try:
        await conn.close()
    except Exception:
        logger.exception("Tool provider close failed")
