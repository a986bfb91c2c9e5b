"""
Main CLI application for toolchat.

Usage:
    toolchat serve [--host HOST] [--port PORT] [--profile NAME]
    toolchat chat [--api-url URL] [--profile NAME]
    toolchat tools list|info
    toolchat config show|validate
    toolchat version
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer
import yaml
from rich.console import Console
from rich.logging import RichHandler

from toolchat import __version__
from toolchat.config import ConfigError, ToolchatConfig, find_config_path, load_config

app = typer.Typer(name="toolchat", help="toolchat - streaming chat with tool calls")
tools_app = typer.Typer(help="Tool provider inspection")
config_app = typer.Typer(help="Configuration management")

app.add_typer(tools_app, name="tools")
app.add_typer(config_app, name="config")

console = Console()

_state: dict[str, Optional[str]] = {"config": None, "profile": None}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _load(cli_overrides: dict | None = None) -> ToolchatConfig:
    config_path = _state["config"] or find_config_path()
    return load_config(config_path, profile=_state["profile"], cli_overrides=cli_overrides)


def _overrides(**pairs) -> dict:
    """Keep only the CLI flags the user actually passed."""
    return {k: v for k, v in pairs.items() if v is not None}


async def _discover(cfg: ToolchatConfig):
    from toolchat.server.app import build_connector
    from toolchat.tools.provider import open_connection

    async with open_connection(build_connector(cfg)) as conn:
        tools = await conn.discover_tools()
    return sorted(tools.values(), key=lambda t: t.name)


@app.callback()
def main_callback(
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to a YAML config file"),
    profile: Optional[str] = typer.Option(None, help="Config profile name"),
    log_level: str = typer.Option("WARNING", "--log-level", help="Logging level"),
):
    """Global options."""
    _state["config"] = str(config) if config else None
    _state["profile"] = profile
    logging.basicConfig(
        level=log_level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
    )


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@app.command()
def serve(
    host: Optional[str] = typer.Option(None, help="Bind address"),
    port: Optional[int] = typer.Option(None, help="Bind port"),
    max_duration: Optional[float] = typer.Option(None, help="Max seconds per turn"),
):
    """Run the chat HTTP server."""
    import uvicorn

    from toolchat.server.app import create_app

    cfg = _load(_overrides(**{
        "server.host": host,
        "server.port": port,
        "server.max_duration_seconds": max_duration,
    }))
    if not cfg.api_key():
        console.print(f"[yellow]Warning:[/yellow] {cfg.llm.api_key_env} is not set.")
    if not cfg.tool_provider_token():
        console.print(f"[yellow]Warning:[/yellow] {cfg.tool_provider.token_env} is not set.")

    console.print(f"Serving on http://{cfg.server.host}:{cfg.server.port}  ({cfg.llm.model})")
    uvicorn.run(create_app(cfg), host=cfg.server.host, port=cfg.server.port, log_level="warning")


@app.command()
def chat(
    api_url: Optional[str] = typer.Option(None, help="Chat endpoint URL"),
    max_auto: Optional[int] = typer.Option(None, help="Max automatic follow-up turns"),
):
    """Start an interactive chat session against a running server."""
    from toolchat.cli.chat import ChatHandler
    from toolchat.client.client import ChatClient
    from toolchat.client.continuation import AutoContinuationPolicy

    cfg = _load(_overrides(**{
        "chat.api_url": api_url,
        "chat.max_auto_continuations": max_auto,
    }))
    client = ChatClient(
        cfg.chat.api_url,
        policy=AutoContinuationPolicy(max_consecutive=cfg.chat.max_auto_continuations),
        timeout=cfg.server.max_duration_seconds + 30.0,
    )
    handler = ChatHandler(client, console=console)
    asyncio.run(handler.run_loop())


@tools_app.command("list")
def tools_list():
    """List the tools the configured provider offers."""
    from toolchat.cli.output import OutputFormatter
    from toolchat.types import ToolchatError

    cfg = _load()
    try:
        tools = asyncio.run(_discover(cfg))
    except ToolchatError as e:
        console.print(f"[red]Tool provider unavailable:[/red] {e}")
        raise typer.Exit(1)

    OutputFormatter(console).format_tool_list(tools)


@tools_app.command("info")
def tools_info(tool_name: str = typer.Argument(..., help="Tool name")):
    """Show tool details and schema."""
    from toolchat.cli.output import OutputFormatter
    from toolchat.types import ToolchatError

    cfg = _load()
    try:
        tools = asyncio.run(_discover(cfg))
    except ToolchatError as e:
        console.print(f"[red]Tool provider unavailable:[/red] {e}")
        raise typer.Exit(1)

    tool = next((t for t in tools if t.name == tool_name), None)
    if tool is None:
        console.print(f"[red]Tool not found:[/red] {tool_name}")
        raise typer.Exit(1)

    OutputFormatter(console).format_tool_info(tool)


@config_app.command("show")
def config_show():
    """Show effective config."""
    from toolchat.cli.output import OutputFormatter

    OutputFormatter(console).format_config(_load().to_dict())


@config_app.command("validate")
def config_validate():
    """Validate config and report values of the wrong shape or type."""
    config_path = _state["config"] or find_config_path()
    try:
        cfg = _load()
    except ConfigError as e:
        console.print("[red]Config validation failed:[/red]")
        for issue in e.issues:
            console.print(f"  - {issue}")
        raise typer.Exit(1)
    except (ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Config validation failed:[/red] {e}")
        raise typer.Exit(1)

    console.print("[green]Config is valid.[/green]")
    if config_path:
        console.print(f"  Loaded from: {config_path}")
    else:
        console.print("  [dim]No config file found, using defaults.[/dim]")
    console.print(f"  LLM provider: {cfg.llm.name} ({cfg.llm.model})")
    console.print(f"  Tool provider: {cfg.tool_provider.url}")
    console.print(f"  Max steps per turn: {cfg.chat.max_steps}")
    console.print(f"  Max automatic follow-ups: {cfg.chat.max_auto_continuations}")


@app.command()
def version():
    """Show version."""
    console.print(f"toolchat v{__version__}")


def main():
    app()


if __name__ == "__main__":
    main()
