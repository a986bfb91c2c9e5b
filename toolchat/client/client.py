"""
HTTP chat client.

Posts the conversation to the chat endpoint, folds the streamed fragment
events into a ``ConversationAssembler``, and sends follow-up turns on its
own when the auto-continuation policy says so.
"""

from __future__ import annotations

import logging
from typing import Callable

import httpx

from toolchat.client.assembler import ConversationAssembler
from toolchat.client.continuation import AutoContinuationPolicy
from toolchat.protocol.events import aiter_sse_events

logger = logging.getLogger(__name__)


class ChatClient:
    """
    Parameters
    ----------
    api_url:
        Full URL of the chat endpoint, e.g. ``"http://127.0.0.1:8000/api/chat"``.
    assembler:
        Conversation state; a fresh one is created when omitted.
    policy:
        Auto-continuation policy; defaults to three consecutive follow-ups.
    on_update:
        Called after every applied event, e.g. to refresh a live display.
    timeout:
        HTTP timeout in seconds.
    transport:
        Optional ``httpx`` transport (tests use ``httpx.ASGITransport``).
    """

    def __init__(
        self,
        api_url: str,
        assembler: ConversationAssembler | None = None,
        policy: AutoContinuationPolicy | None = None,
        on_update: Callable[[ConversationAssembler], None] | None = None,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_url = api_url
        self.assembler = assembler or ConversationAssembler()
        self.policy = policy or AutoContinuationPolicy()
        self.on_update = on_update
        self.timeout = timeout
        self.transport = transport
        self.turns_sent = 0

    async def send_message(self, text: str) -> None:
        """Send a user message and run turns until no follow-up is due."""
        self.policy.reset()
        self.assembler.add_user_message(text)
        self._notify()
        await self._run_turns()

    async def _run_turns(self) -> None:
        while True:
            await self._stream_turn()
            if not self.policy.should_continue(self.assembler):
                return
            logger.info("All tool calls settled; sending follow-up turn")
            self.assembler.begin_turn()
            self._notify()

    async def _stream_turn(self) -> None:
        body = {"messages": self.assembler.conversation.to_list()}
        self.turns_sent += 1
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self.transport
            ) as client:
                async with client.stream(
                    "POST",
                    self.api_url,
                    json=body,
                    headers={"Accept": "text/event-stream"},
                ) as response:
                    if response.status_code != 200:
                        await response.aread()
                        logger.warning("Chat request failed: HTTP %d", response.status_code)
                        self.assembler.fail()
                        self._notify()
                        return
                    async for event in aiter_sse_events(response.aiter_lines()):
                        self.assembler.apply(event)
                        self._notify()
        except httpx.HTTPError as exc:
            logger.warning("Chat stream broke: %s", exc)
            self.assembler.fail()
            self._notify()
            return

        self.assembler.end_of_stream()
        self._notify()

    def _notify(self) -> None:
        if self.on_update is not None:
            self.on_update(self.assembler)
