"""
Streaming provider for OpenAI-compatible ``/chat/completions`` endpoints.

Besides OpenAI itself this covers the usual self-hosted servers (vLLM,
LM Studio, Ollama's OpenAI route).  Reasoning text is taken from
``reasoning_content`` or ``reasoning`` on each delta, whichever the server
sends.
"""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator

import httpx

from toolchat.llm.providers.base import Provider
from toolchat.llm.types import ModelMessage, RawToolDelta, StreamChunk

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = frozenset({429, 500, 502, 503, 504})


class _OpenCalls:
    """
    Tracks which tool-call indices are still receiving argument text.

    OpenAI streams calls one index after another, so the first delta for a
    new index closes everything opened before it.
    """

    def __init__(self) -> None:
        self._indices: list[int] = []

    def touch(self, index: int) -> list[RawToolDelta]:
        if index in self._indices:
            return []
        closing = self.close_all()
        self._indices.append(index)
        return closing

    def close_all(self) -> list[RawToolDelta]:
        closing = [RawToolDelta(call_index=i, done=True) for i in self._indices]
        self._indices.clear()
        return closing


def _chunk_from_payload(data: dict[str, Any], open_calls: _OpenCalls) -> StreamChunk | None:
    choices = data.get("choices")
    if not choices:
        return None

    choice = choices[0]
    delta = choice.get("delta") or {}
    finish_reason = choice.get("finish_reason")

    reasoning = delta.get("reasoning_content") or delta.get("reasoning") or ""
    if not isinstance(reasoning, str):
        reasoning = ""

    tool_deltas: list[RawToolDelta] = []
    for raw in delta.get("tool_calls") or []:
        index = raw.get("index", 0)
        tool_deltas.extend(open_calls.touch(index))
        function = raw.get("function") or {}
        tool_deltas.append(RawToolDelta(
            call_index=index,
            id=raw.get("id"),
            name_delta=function.get("name") or "",
            args_delta=function.get("arguments") or "",
        ))
    if finish_reason is not None:
        tool_deltas.extend(open_calls.close_all())

    return StreamChunk(
        delta=delta.get("content") or "",
        reasoning_delta=reasoning,
        tool_deltas=tool_deltas or None,
        finish_reason=finish_reason,
    )


class OpenAICompatProvider(Provider):
    """
    Parameters
    ----------
    url:
        API base URL, e.g. ``"https://api.openai.com/v1"``.
    model:
        Model identifier sent with every request.
    api_key:
        Bearer token; ``""`` for unauthenticated local servers.
    timeout:
        Default request timeout in seconds.
    max_retries:
        Extra attempts on 429/5xx answers and transport errors.  Retries
        only happen before anything has been yielded.
    transport:
        Optional ``httpx`` transport, used by tests to stub the endpoint.
    """

    def __init__(
        self,
        url: str = "https://api.openai.com/v1",
        model: str = "gpt-5-mini",
        api_key: str = "",
        timeout: float = 120.0,
        max_retries: int = 2,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._endpoint = url.rstrip("/") + "/chat/completions"
        self._model = model
        self._api_key = api_key
        self._timeout = timeout
        self._max_retries = max_retries
        self._transport = transport

    @property
    def name(self) -> str:
        return "openai-compat"

    @property
    def model(self) -> str:
        return self._model

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "text/event-stream"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _body(
        self,
        history: list[ModelMessage],
        tools: list[dict] | None,
        tool_choice: str,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {
            "model": self._model,
            "messages": [m.to_wire() for m in history],
            "stream": True,
        }
        if tools:
            body["tools"] = tools
            body["tool_choice"] = tool_choice
        return body

    async def stream(
        self,
        history: list[ModelMessage],
        tools: list[dict] | None = None,
        tool_choice: str = "auto",
        timeout: float = 30.0,
    ) -> AsyncIterator[StreamChunk]:
        body = self._body(history, tools, tool_choice)
        logger.info(
            "Completion request: model=%s messages=%d tools=%d",
            self._model, len(history), len(tools or []),
        )

        attempt = 0
        started = False
        while True:
            attempt += 1
            try:
                async with httpx.AsyncClient(
                    timeout=timeout or self._timeout, transport=self._transport
                ) as client:
                    async with client.stream(
                        "POST", self._endpoint, json=body, headers=self._headers()
                    ) as response:
                        if (
                            response.status_code in RETRYABLE_STATUS
                            and attempt <= self._max_retries
                        ):
                            await response.aread()
                            logger.warning(
                                "Completion answered HTTP %d; retrying (%d/%d)",
                                response.status_code, attempt, self._max_retries,
                            )
                            continue
                        response.raise_for_status()
                        async for chunk in self._read_events(response):
                            started = True
                            yield chunk
                        return
            except httpx.TransportError as exc:
                if started or attempt > self._max_retries:
                    raise
                logger.warning("Completion transport error: %s; retrying", exc)

    async def _read_events(self, response: httpx.Response) -> AsyncIterator[StreamChunk]:
        open_calls = _OpenCalls()
        async for line in response.aiter_lines():
            line = line.rstrip("\r")
            if not line.startswith("data:"):
                continue
            payload = line[len("data:"):].strip()
            if payload == "[DONE]":
                break
            try:
                data = json.loads(payload)
            except json.JSONDecodeError:
                logger.warning("Skipping undecodable completion event: %s", payload[:200])
                continue
            chunk = _chunk_from_payload(data, open_calls)
            if chunk is not None:
                yield chunk

        yield StreamChunk(tool_deltas=open_calls.close_all() or None, done=True)
