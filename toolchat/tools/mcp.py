"""MCP tool provider over HTTP.

Speaks JSON-RPC 2.0 to a remote MCP server using the Streamable HTTP
transport: every request is a POST to the server URL, and the reply is
either plain JSON or a single SSE-framed ``data:`` line.

Usage:
    connector = McpConnector("https://mcp.example.com/mcp", token="...")
    conn = await connector.open()
    tools = await conn.discover_tools()
    result = await conn.invoke("my_tool", {"arg": "value"})
    await conn.close()
"""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from toolchat.tools.provider import (
    ToolDefinition,
    ToolProviderConnection,
    ToolProviderConnector,
)
from toolchat.types import (
    ErrorCode,
    ToolInvocationError,
    ToolProviderConnectionError,
    ToolResult,
)

logger = logging.getLogger(__name__)

MCP_PROTOCOL_VERSION = "2025-03-26"
SESSION_HEADER = "Mcp-Session-Id"


class McpProtocolError(Exception):
    """The server answered with a JSON-RPC error or an unreadable body."""


def _parse_sse_body(text: str) -> dict[str, Any]:
    for line in text.split("\n"):
        line = line.strip()
        if line.startswith("data:"):
            json_str = line[5:].strip()
            if json_str:
                try:
                    return json.loads(json_str)
                except json.JSONDecodeError as e:
                    raise McpProtocolError(f"Failed to parse SSE JSON data: {e}") from e
    raise McpProtocolError(f"No data found in SSE response: {text[:200]}")


class McpConnection(ToolProviderConnection):
    """An initialized session with one MCP server."""

    def __init__(self, client: httpx.AsyncClient, url: str, timeout: float) -> None:
        self._client = client
        self._url = url
        self._timeout = timeout
        self._request_id = 0
        self._session_id: str | None = None
        self._tools: dict[str, ToolDefinition] | None = None

    def _next_request_id(self) -> int:
        self._request_id += 1
        return self._request_id

    def _headers(self) -> dict[str, str]:
        return {SESSION_HEADER: self._session_id} if self._session_id else {}

    async def _send_request(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """
        Send a JSON-RPC request and return its ``result``.

        Raises ``httpx`` errors for transport failures and
        ``McpProtocolError`` for JSON-RPC errors.
        """
        request: dict[str, Any] = {
            "jsonrpc": "2.0",
            "id": self._next_request_id(),
            "method": method,
        }
        if params is not None:
            request["params"] = params

        logger.debug("Sending MCP request: %s", method)
        response = await self._client.post(
            self._url,
            json=request,
            headers=self._headers(),
            timeout=timeout or self._timeout,
        )
        response.raise_for_status()

        session_id = response.headers.get(SESSION_HEADER)
        if session_id:
            self._session_id = session_id

        content_type = response.headers.get("content-type", "")
        if "text/event-stream" in content_type or response.text.startswith("event:"):
            data = _parse_sse_body(response.text)
        else:
            try:
                data = response.json()
            except ValueError as e:
                raise McpProtocolError(
                    f"MCP response is not JSON ({content_type or 'no content type'}): "
                    f"{response.text[:200]}"
                ) from e

        if not isinstance(data, dict):
            raise McpProtocolError(f"MCP response is not a JSON object: {type(data).__name__}")
        if "error" in data:
            error = data["error"] or {}
            raise McpProtocolError(
                f"MCP error {error.get('code', 'unknown')}: {error.get('message', 'Unknown error')}"
            )
        return data.get("result") or {}

    async def initialize(self) -> None:
        result = await self._send_request(
            "initialize",
            {
                "protocolVersion": MCP_PROTOCOL_VERSION,
                "capabilities": {},
                "clientInfo": {"name": "toolchat", "version": "0.1.0"},
            },
        )
        info = result.get("serverInfo", {})
        logger.info(
            "Connected to MCP server: %s v%s",
            info.get("name", "Unknown"),
            info.get("version", "0.0.0"),
        )
        try:
            await self._client.post(
                self._url,
                json={"jsonrpc": "2.0", "method": "notifications/initialized"},
                headers=self._headers(),
                timeout=5.0,
            )
        except httpx.HTTPError as e:
            logger.debug("Initialized notification failed (may be expected): %s", e)

    async def discover_tools(self) -> dict[str, ToolDefinition]:
        if self._tools is not None:
            return self._tools
        try:
            result = await self._send_request("tools/list")
        except (httpx.HTTPError, McpProtocolError) as e:
            raise ToolProviderConnectionError(f"Tool discovery failed: {e}", e) from e

        self._tools = {
            tool["name"]: ToolDefinition(
                name=tool["name"],
                description=tool.get("description", ""),
                input_schema=tool.get("inputSchema", {}),
            )
            for tool in result.get("tools", [])
            if tool.get("name")
        }
        return self._tools

    async def invoke(self, name: str, args: dict[str, Any]) -> ToolResult:
        try:
            result = await self._send_request(
                "tools/call", {"name": name, "arguments": args}
            )
        except httpx.TimeoutException as e:
            raise ToolInvocationError(f"Tool '{name}' timed out", e) from e
        except (httpx.HTTPError, McpProtocolError) as e:
            raise ToolInvocationError(f"Tool '{name}' failed: {e}", e) from e

        texts = [
            item.get("text", "")
            for item in result.get("content", [])
            if item.get("type", "text") == "text"
        ]
        content = "\n".join(t for t in texts if t)
        structured = result.get("structuredContent")

        if result.get("isError"):
            return ToolResult(
                success=False,
                content=content,
                error=content or f"Tool '{name}' reported an error",
                error_code=ErrorCode.TOOL_EXCEPTION,
            )
        return ToolResult(success=True, content=content, data=structured)

    async def close(self) -> None:
        if self._session_id:
            try:
                await self._client.delete(self._url, headers=self._headers(), timeout=5.0)
            except httpx.HTTPError as e:
                logger.debug("MCP session delete failed: %s", e)
        await self._client.aclose()


class McpConnector(ToolProviderConnector):
    """
    Opens MCP connections.

    Parameters
    ----------
    url:
        Full MCP endpoint URL, e.g. ``"https://mcp.opensea.io/mcp"``.
    token:
        Bearer token; pass ``""`` for unauthenticated servers.
    timeout:
        Per-request timeout in seconds.
    transport:
        Optional ``httpx`` transport, used by tests to stub the server.
    """

    def __init__(
        self,
        url: str,
        token: str = "",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = url
        self._token = token
        self._timeout = timeout
        self._transport = transport

    async def open(self) -> McpConnection:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json, text/event-stream",
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"

        client = httpx.AsyncClient(
            headers=headers, timeout=self._timeout, transport=self._transport
        )
        conn = McpConnection(client, self._url, self._timeout)
        try:
            await conn.initialize()
        except (httpx.HTTPError, McpProtocolError) as e:
            await client.aclose()
            raise ToolProviderConnectionError(
                f"Failed to connect to MCP server: {e}", e
            ) from e
        return conn
