"""Tests for the FastAPI chat endpoint."""

from __future__ import annotations

import time

from fastapi.testclient import TestClient

from tests.mock_providers import FailingProvider, ScriptedProvider, text_chunks, tool_call_chunks
from tests.mock_tools import TOKEN_PRICE, MockConnector, hanging_handler
from toolchat.config import ToolchatConfig
from toolchat.llm.router import LLMRouter
from toolchat.llm.types import StreamChunk
from toolchat.protocol.events import iter_sse_events
from toolchat.protocol.fragments import Message
from toolchat.server.app import _event_stream, create_app
from toolchat.types import GENERIC_ERROR_TEXT

USER_MESSAGE = {"id": "u1", "role": "user", "parts": [{"type": "text", "text": "ETH price?"}]}


def _router(provider) -> LLMRouter:
    router = LLMRouter()
    router.register_provider("test", provider)
    return router


def _client(provider, connector=None, **overrides) -> TestClient:
    cfg = ToolchatConfig()
    for key, value in overrides.items():
        section, name = key.split("__")
        setattr(getattr(cfg, section), name, value)
    app = create_app(cfg, connector=connector or MockConnector(), router=_router(provider))
    return TestClient(app)


def _events(body: str):
    return list(iter_sse_events(body.splitlines()))


class TestChatEndpoint:
    def test_streams_turn_as_sse(self):
        provider = ScriptedProvider([
            tool_call_chunks("get_token_price", {"symbol": "ETH"}, call_id="c1"),
            text_chunks("ETH is $3000."),
        ])
        connector = MockConnector()
        with _client(provider, connector) as client:
            response = client.post("/api/chat", json={"messages": [USER_MESSAGE]})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["cache-control"] == "no-cache"
        assert response.text.rstrip().endswith("data: [DONE]")

        types = [e.event_type for e in _events(response.text)]
        assert types == [
            "start",
            "tool-input-start",
            "tool-input-available",
            "tool-output-available",
            "text-delta",
            "text-delta",
            "text-delta",
            "finish",
        ]
        assert connector.open_count == 1
        assert connector.close_count == 1

    def test_history_with_tool_calls_is_accepted(self):
        provider = ScriptedProvider([text_chunks("Done.")])
        history = [
            USER_MESSAGE,
            {
                "id": "a1",
                "role": "assistant",
                "parts": [{
                    "type": "tool-call",
                    "call_id": "c1",
                    "tool_name": "get_token_price",
                    "state": "output-available",
                    "input": {"symbol": "ETH"},
                    "output": {"usd": 3000},
                }],
            },
        ]
        with _client(provider) as client:
            response = client.post("/api/chat", json={"messages": history})

        assert response.status_code == 200
        sent = provider.history[0]
        assert [m.role for m in sent] == ["system", "user", "assistant", "tool"]

    def test_empty_messages_rejected(self):
        with _client(ScriptedProvider([text_chunks("hi")])) as client:
            response = client.post("/api/chat", json={"messages": []})
        assert response.status_code == 422

    def test_unknown_role_rejected(self):
        with _client(ScriptedProvider([text_chunks("hi")])) as client:
            response = client.post(
                "/api/chat",
                json={"messages": [{"role": "system", "parts": []}]},
            )
        assert response.status_code == 422

    def test_unreachable_tool_provider_is_502(self):
        connector = MockConnector(fail_open=True)
        with _client(ScriptedProvider([text_chunks("hi")]), connector) as client:
            response = client.post("/api/chat", json={"messages": [USER_MESSAGE]})

        assert response.status_code == 502
        assert response.json() == {"error": GENERIC_ERROR_TEXT}

    def test_model_failure_is_error_event(self):
        provider = FailingProvider(chunks=[StreamChunk(delta="Partial")])
        connector = MockConnector()
        with _client(provider, connector) as client:
            response = client.post("/api/chat", json={"messages": [USER_MESSAGE]})

        assert response.status_code == 200
        events = _events(response.text)
        assert [e.event_type for e in events] == ["start", "text-delta", "error"]
        assert events[-1].payload["error_text"] == GENERIC_ERROR_TEXT
        assert "upstream exploded" not in response.text
        assert connector.close_count == 1

    def test_deadline_ends_stream_and_closes_connection(self):
        provider = ScriptedProvider([
            tool_call_chunks("get_token_price", {"symbol": "ETH"}, call_id="c1"),
        ])
        connector = MockConnector(
            definitions=[TOKEN_PRICE],
            handlers={TOKEN_PRICE.name: hanging_handler},
        )
        with _client(provider, connector, server__max_duration_seconds=0.3) as client:
            response = client.post("/api/chat", json={"messages": [USER_MESSAGE]})

        assert response.status_code == 200
        events = _events(response.text)
        assert [e.event_type for e in events] == [
            "start", "tool-input-start", "tool-input-available", "error",
        ]
        assert response.text.rstrip().endswith("data: [DONE]")
        assert connector.close_count == 1


class DisconnectingRequest:
    """Stands in for the Starlette request; reports a disconnect after *polls* checks."""

    def __init__(self, polls: int) -> None:
        self.polls = polls

    async def is_disconnected(self) -> bool:
        self.polls -= 1
        return self.polls < 0


class TestClientDisconnect:
    async def test_disconnect_mid_turn_closes_tool_provider(self):
        provider = ScriptedProvider([tool_call_chunks("get_token_price", {"symbol": "ETH"})])
        connector = MockConnector(
            definitions=[TOKEN_PRICE],
            handlers={TOKEN_PRICE.name: hanging_handler},
        )
        app = create_app(ToolchatConfig(), connector=connector, router=_router(provider))
        turn = app.state.orchestrator.run([Message.from_dict(USER_MESSAGE)])
        first = await turn.__anext__()

        frames = [
            frame
            async for frame in _event_stream(
                turn, first, time.monotonic() + 10, DisconnectingRequest(polls=2)
            )
        ]

        events = _events("".join(frames))
        assert [e.event_type for e in events] == [
            "start", "tool-input-start", "tool-input-available",
        ]
        assert "[DONE]" not in "".join(frames)
        assert connector.open_count == 1
        assert connector.close_count == 1


class TestHealth:
    def test_reports_model(self):
        with _client(ScriptedProvider([text_chunks("hi")])) as client:
            response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "provider": "test", "model": "gpt-5-mini"}
