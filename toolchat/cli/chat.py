"""Interactive chat session handler."""

from __future__ import annotations

import asyncio

from rich.console import Console
from rich.live import Live

from toolchat.cli.output import OutputFormatter
from toolchat.client.client import ChatClient
from toolchat.client.view import ConversationView
from toolchat.prompts.examples import EXAMPLE_GROUPS, EXAMPLE_PROMPTS
from toolchat.protocol.fragments import ToolCallFragment


def _nth(items: list, arg: str):
    """The 1-based *arg*-th item, or None when *arg* is not a valid position."""
    if not arg.strip().isdigit():
        return None
    n = int(arg)
    return items[n - 1] if 1 <= n <= len(items) else None


class ChatHandler:
    """
    Manages the interactive chat loop.

    Renders the conversation live while a turn streams, and handles inline
    commands such as expanding tool-call panels.
    """

    def __init__(
        self,
        client: ChatClient,
        console: Console | None = None,
        view: ConversationView | None = None,
    ) -> None:
        self.client = client
        self.console = console or Console()
        self.view = view or ConversationView()
        self._running = True

    def tool_calls(self) -> list[ToolCallFragment]:
        """Every tool call in the conversation, oldest first."""
        return [tc for msg in self.client.assembler.messages for tc in msg.tool_calls()]

    async def handle_command(self, command: str) -> bool:
        """
        Handle inline commands. Returns True if the command was handled.
        """
        parts = command.strip().split(None, 1)
        cmd = parts[0].lower()
        arg = parts[1] if len(parts) > 1 else ""

        if cmd == "/quit":
            self._running = False
            self.console.print("[dim]Goodbye.[/dim]")
            return True

        if cmd == "/tools":
            calls = self.tool_calls()
            if not calls:
                self.console.print("  [dim]No tool calls yet.[/dim]")
            for n, tc in enumerate(calls, 1):
                self.console.print(f"  {n}. ", end="")
                self.console.print(self.view.render_tool_call(tc))
            return True

        if cmd == "/toggle":
            calls = self.tool_calls()
            tc = _nth(calls, arg)
            if tc is None:
                self.console.print(f"  [red]Error:[/red] no tool call {arg!r}; see /tools")
                return True
            self.view.panels.toggle(tc.call_id)
            self.console.print(self.view.render_tool_call(tc))
            return True

        if cmd == "/examples":
            if not arg:
                OutputFormatter(self.console).format_examples(EXAMPLE_GROUPS)
                return True
            question = _nth(EXAMPLE_PROMPTS, arg)
            if question is None:
                self.console.print(f"  [red]Error:[/red] no example {arg!r}; see /examples")
                return True
            self.console.print(f"you> {question}")
            await self.handle_input(question)
            return True

        if cmd == "/history":
            self.console.print(self.view.render(self.client.assembler))
            return True

        if cmd == "/help":
            self.console.print(
                "  [bold]Commands:[/bold]\n"
                "  /quit      - Exit the chat\n"
                "  /history   - Show the whole conversation\n"
                "  /tools     - List tool calls made so far\n"
                "  /examples  - List example questions; /examples N asks one\n"
                "  /toggle N  - Expand or collapse tool call N\n"
                "  /help      - Show this help\n"
            )
            return True

        return False

    async def handle_input(self, user_input: str) -> None:
        """Send *user_input* and render the exchange while it streams."""
        assembler = self.client.assembler
        since = len(assembler.messages)

        with Live(console=self.console, refresh_per_second=12) as live:
            self.client.on_update = lambda a: live.update(self.view.render(a, since))
            try:
                await self.client.send_message(user_input)
            finally:
                self.client.on_update = None
            live.update(self.view.render(assembler, since))

    async def run_loop(self) -> None:
        """Main interactive loop."""
        self.console.print(
            "[bold]toolchat[/bold] - NFT and token assistant\n"
            "[dim]Type /help for commands, /quit to exit.[/dim]\n"
        )
        if not self.client.assembler.messages:
            OutputFormatter(self.console).format_examples(EXAMPLE_GROUPS)
            self.console.print("[dim]Ask one with /examples N.[/dim]\n")

        while self._running:
            try:
                user_input = await asyncio.get_running_loop().run_in_executor(
                    None, lambda: input("you> ").strip()
                )
            except (EOFError, KeyboardInterrupt):
                self.console.print("\n[dim]Goodbye.[/dim]")
                break

            if not user_input:
                continue

            if user_input.startswith("/"):
                handled = await self.handle_command(user_input)
                if handled:
                    continue

            await self.handle_input(user_input)
