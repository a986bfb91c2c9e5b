"""Tests for the typer command line."""

from __future__ import annotations

import io

from rich.console import Console
from typer.testing import CliRunner

from tests.mock_tools import MockConnector
from toolchat import __version__
from toolchat.cli.app import app
from toolchat.cli.chat import ChatHandler
from toolchat.client.client import ChatClient
from toolchat.prompts.examples import EXAMPLE_PROMPTS
from toolchat.protocol.events import (
    finish_event,
    start_event,
    tool_input_available_event,
    tool_input_start_event,
    tool_output_available_event,
)

runner = CliRunner()


class TestCommands:
    def test_version(self):
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_config_show_uses_file(self, tmp_path):
        path = tmp_path / "toolchat.yaml"
        path.write_text("llm:\n  model: gpt-4o-mini\n", encoding="utf-8")
        result = runner.invoke(app, ["--config", str(path), "config", "show"])
        assert result.exit_code == 0
        assert "gpt-4o-mini" in result.output

    def test_config_validate(self, tmp_path):
        path = tmp_path / "toolchat.yaml"
        path.write_text("chat:\n  max_steps: 4\n", encoding="utf-8")
        result = runner.invoke(app, ["--config", str(path), "config", "validate"])
        assert result.exit_code == 0
        assert "Config is valid." in result.output
        assert "Max steps per turn: 4" in result.output

    def test_config_validate_reports_bad_values(self, tmp_path):
        path = tmp_path / "toolchat.yaml"
        path.write_text("llm: 5\nserver:\n  port: eighty\n", encoding="utf-8")
        result = runner.invoke(app, ["--config", str(path), "config", "validate"])
        assert result.exit_code == 1
        assert "Config validation failed" in result.output
        assert "llm: expected a mapping, got int" in result.output
        assert "server.port: expected int, got str" in result.output


class TestToolsCommands:
    def test_tools_list(self, monkeypatch):
        monkeypatch.setattr("toolchat.server.app.build_connector", lambda cfg: MockConnector())
        result = runner.invoke(app, ["tools", "list"])
        assert result.exit_code == 0
        assert "get_token_price" in result.output
        assert "get_trending_collections" in result.output

    def test_tools_info(self, monkeypatch):
        monkeypatch.setattr("toolchat.server.app.build_connector", lambda cfg: MockConnector())
        result = runner.invoke(app, ["tools", "info", "get_token_price"])
        assert result.exit_code == 0
        assert '"symbol"' in result.output

    def test_tools_info_unknown(self, monkeypatch):
        monkeypatch.setattr("toolchat.server.app.build_connector", lambda cfg: MockConnector())
        result = runner.invoke(app, ["tools", "info", "nope"])
        assert result.exit_code == 1
        assert "Tool not found" in result.output

    def test_unreachable_provider_exits_nonzero(self, monkeypatch):
        monkeypatch.setattr(
            "toolchat.server.app.build_connector",
            lambda cfg: MockConnector(fail_open=True),
        )
        result = runner.invoke(app, ["tools", "list"])
        assert result.exit_code == 1
        assert "Tool provider unavailable" in result.output


class TestChatHandler:
    def _handler(self):
        client = ChatClient("http://testserver/api/chat")
        asm = client.assembler
        asm.add_user_message("ETH price?")
        asm.apply_all([
            start_event("m1"),
            tool_input_start_event(0, "c1", "get_token_price"),
            tool_input_available_event(0, "c1", "get_token_price", {"symbol": "ETH"}),
            tool_output_available_event(0, "c1", {"usd": 3000}),
            finish_event(),
        ])
        console = Console(file=io.StringIO(), width=100, color_system=None)
        return ChatHandler(client, console=console), console

    async def test_toggle_expands_tool_call(self):
        handler, console = self._handler()
        assert await handler.handle_command("/toggle 1")
        assert handler.view.panels.is_expanded("c1")
        assert '"usd": 3000' in console.file.getvalue()

    async def test_toggle_out_of_range(self):
        handler, console = self._handler()
        assert await handler.handle_command("/toggle 7")
        assert "no tool call" in console.file.getvalue()

    async def test_quit_and_unknown_command(self):
        handler, _ = self._handler()
        assert await handler.handle_command("/frobnicate") is False
        assert await handler.handle_command("/quit")
        assert handler._running is False

    async def test_examples_lists_numbered_questions(self):
        handler, console = self._handler()
        assert await handler.handle_command("/examples")
        out = console.file.getvalue()
        assert "Quick actions" in out
        assert "Which NFT collections are trending in the last 24h?" in out
        assert "12" in out

    async def test_examples_n_sends_that_question(self, monkeypatch):
        handler, _ = self._handler()
        sent = []

        async def record(text):
            sent.append(text)

        monkeypatch.setattr(handler, "handle_input", record)
        assert await handler.handle_command("/examples 5")
        assert sent == [EXAMPLE_PROMPTS[4]]
        assert sent[0] == "Show top tokens by 24h volume on Ethereum."

    async def test_examples_out_of_range(self, monkeypatch):
        handler, console = self._handler()
        sent = []

        async def record(text):
            sent.append(text)

        monkeypatch.setattr(handler, "handle_input", record)
        for arg in ("0", "13", "two"):
            assert await handler.handle_command(f"/examples {arg}")
        assert sent == []
        assert console.file.getvalue().count("no example") == 3
