"""Tool-provider connections: interface, MCP client, argument validation."""

from toolchat.tools.mcp import McpConnection, McpConnector
from toolchat.tools.provider import (
    ToolDefinition,
    ToolProviderConnection,
    ToolProviderConnector,
    open_connection,
)
from toolchat.tools.validation import validate_arguments

__all__ = [
    "McpConnection",
    "McpConnector",
    "ToolDefinition",
    "ToolProviderConnection",
    "ToolProviderConnector",
    "open_connection",
    "validate_arguments",
]
