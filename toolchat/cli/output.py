"""Output formatting utilities for the CLI."""

from __future__ import annotations

import json

from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from toolchat.tools.provider import ToolDefinition, normalize_schema


class OutputFormatter:
    """Rich-based output formatting for the toolchat CLI."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def format_tool_list(self, tools: list[ToolDefinition]) -> None:
        if not tools:
            self.console.print("[dim]The tool provider offers no tools.[/dim]")
            return

        table = Table(title="Available Tools", show_lines=True)
        table.add_column("Name", style="cyan", no_wrap=True)
        table.add_column("Required", no_wrap=True)
        table.add_column("Description")

        for t in tools:
            required = normalize_schema(t.input_schema).get("required") or []
            table.add_row(t.name, ", ".join(required) or "-", t.description)

        self.console.print(table)

    def format_tool_info(self, tool: ToolDefinition) -> None:
        self.console.print(Panel(
            f"[bold]{tool.name}[/bold]\n\n{tool.description}",
            title=f"Tool: {tool.name}",
        ))
        schema_json = json.dumps(normalize_schema(tool.input_schema), indent=2)
        self.console.print(Syntax(schema_json, "json", theme="monokai"))

    def format_config(self, config: dict) -> None:
        config_json = json.dumps(config, indent=2, default=str)
        self.console.print(Syntax(config_json, "json", theme="monokai"))

    def format_examples(self, groups: list[tuple[str, list[str]]]) -> None:
        table = Table(title="Try asking", show_header=False, box=None)
        table.add_column("N", style="cyan", justify="right", no_wrap=True)
        table.add_column("Question")

        n = 0
        for title, questions in groups:
            table.add_row("", f"[bold]{title}[/bold]")
            for q in questions:
                n += 1
                table.add_row(str(n), q)

        self.console.print(table)
