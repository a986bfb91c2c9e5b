from __future__ import annotations

from dataclasses import dataclass
from typing import Any


GENERIC_ERROR_TEXT = "Something went wrong."


@dataclass
class ToolResult:
    success: bool
    content: str
    data: Any = None
    error: str | None = None
    error_code: str | None = None


class ErrorCode:
    VALIDATION_ERROR = "validation_error"
    INVALID_ARGUMENTS = "invalid_arguments"
    TIMEOUT = "timeout"
    TOOL_EXCEPTION = "tool_exception"
    UNKNOWN_TOOL = "unknown_tool"


class ToolchatError(Exception):
    """Base exception; *cause* keeps the underlying failure for logging."""

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class ToolProviderConnectionError(ToolchatError):
    """Tool provider unreachable, unauthorized, or failed during discovery."""


class ToolInvocationError(ToolchatError):
    """A single tool call failed."""


class ModelStreamError(ToolchatError):
    """Upstream generation failed mid-turn."""


class ClientDisconnect(ToolchatError):
    """The consumer of a turn went away before the turn finished."""
