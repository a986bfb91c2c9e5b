"""
HTTP surface: ``POST /api/chat`` streams one assistant turn as server-sent
fragment events; ``GET /health`` reports the configured model.

The first event is pulled from the orchestrator before the response starts so
that a tool provider that cannot be reached turns into a plain HTTP 502
instead of a half-open stream.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, AsyncIterator, Literal

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field

from toolchat import __version__
from toolchat.config import ToolchatConfig, find_config_path, load_config
from toolchat.llm.providers.openai_compat import OpenAICompatProvider
from toolchat.llm.router import LLMRouter
from toolchat.orchestrator.core import TurnOrchestrator
from toolchat.prompts.system import build_system_prompt
from toolchat.protocol.events import FragmentEvent, encode_sse, encode_sse_done, error_event
from toolchat.protocol.fragments import Message
from toolchat.tools.mcp import McpConnector
from toolchat.tools.provider import ToolProviderConnector
from toolchat.types import GENERIC_ERROR_TEXT, ClientDisconnect, ToolProviderConnectionError

logger = logging.getLogger(__name__)


class MessageModel(BaseModel):
    id: str | None = None
    role: Literal["user", "assistant"]
    parts: list[dict[str, Any]] = Field(default_factory=list)


class ChatRequest(BaseModel):
    messages: list[MessageModel] = Field(min_length=1)


def build_router(cfg: ToolchatConfig) -> LLMRouter:
    router = LLMRouter()
    router.register_provider(
        cfg.llm.name,
        OpenAICompatProvider(
            url=cfg.llm.api_base,
            model=cfg.llm.model,
            api_key=cfg.api_key(),
            timeout=float(cfg.llm.timeout_seconds),
            max_retries=cfg.llm.max_retries,
        ),
    )
    return router


def build_connector(cfg: ToolchatConfig) -> McpConnector:
    return McpConnector(
        cfg.tool_provider.url,
        token=cfg.tool_provider_token(),
        timeout=cfg.tool_provider.timeout_seconds,
    )


def create_app(
    config: ToolchatConfig | None = None,
    connector: ToolProviderConnector | None = None,
    router: LLMRouter | None = None,
) -> FastAPI:
    """
    Wire the chat endpoint.

    *connector* and *router* default to the MCP connector and OpenAI-compatible
    provider described by *config*; tests pass in mocks.
    """
    cfg = config or load_config(find_config_path())
    router = router or build_router(cfg)
    orchestrator = TurnOrchestrator(
        connector or build_connector(cfg),
        router,
        system_prompt=build_system_prompt(cfg.chat.system_prompt or None),
        max_steps=cfg.chat.max_steps,
        tool_timeout=cfg.chat.tool_timeout_seconds,
        model_timeout=float(cfg.llm.timeout_seconds),
    )
    max_duration = cfg.server.max_duration_seconds

    app = FastAPI(title="toolchat", version=__version__)
    app.state.config = cfg
    app.state.orchestrator = orchestrator

    @app.get("/health")
    def health() -> dict[str, Any]:
        return {
            "status": "ok",
            "provider": router.active_name,
            "model": cfg.llm.model,
        }

    @app.post("/api/chat")
    async def chat(body: ChatRequest, request: Request):
        messages = [Message.from_dict(m.model_dump()) for m in body.messages]
        deadline = time.monotonic() + max_duration
        turn = orchestrator.run(messages)

        try:
            first = await asyncio.wait_for(turn.__anext__(), timeout=max_duration)
        except ToolProviderConnectionError as exc:
            logger.warning("Tool provider unavailable: %s", exc)
            await turn.aclose()
            return JSONResponse({"error": GENERIC_ERROR_TEXT}, status_code=502)
        except asyncio.TimeoutError:
            logger.warning("Turn produced nothing within %.1fs", max_duration)
            await turn.aclose()
            return JSONResponse({"error": GENERIC_ERROR_TEXT}, status_code=504)
        except StopAsyncIteration:
            first = None

        return StreamingResponse(
            _event_stream(turn, first, deadline, request),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    return app


async def _event_stream(
    turn: AsyncIterator[FragmentEvent],
    first: FragmentEvent | None,
    deadline: float,
    request: Request,
) -> AsyncIterator[str]:
    """
    Relay *turn* as SSE until it ends, the deadline passes, or the client
    goes away.  *turn* is closed on every path before the stream ends.
    """
    failed = False
    try:
        if first is not None:
            yield encode_sse(first)
        while True:
            if await request.is_disconnected():
                raise ClientDisconnect("Client went away mid-turn")
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise asyncio.TimeoutError
            try:
                event = await asyncio.wait_for(turn.__anext__(), timeout=remaining)
            except StopAsyncIteration:
                break
            yield encode_sse(event)
    except ClientDisconnect:
        logger.info("Client disconnected; closing turn")
        return
    except asyncio.TimeoutError:
        logger.warning("Turn exceeded its time limit; stream terminated")
        failed = True
    except Exception:
        logger.exception("Turn failed mid-stream")
        failed = True
    finally:
        await turn.aclose()

    if failed:
        yield encode_sse(error_event(GENERIC_ERROR_TEXT))
    yield encode_sse_done()
