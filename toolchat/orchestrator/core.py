"""
Turn orchestrator -- runs one assistant turn and emits its fragment events.

The orchestrator:
1. Opens a tool-provider connection scoped to the turn
2. Discovers the provider's tools
3. Streams the model with the conversation history and tool schemas
4. Forwards text and reasoning deltas as indexed fragment events
5. Drives each tool call through input-streaming -> input-available ->
   output-available | output-error, invoking calls concurrently
6. Feeds results back to the model and streams again until a step makes no
   tool calls or ``max_steps`` is reached
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Iterable

from toolchat.llm.router import LLMRouter
from toolchat.llm.tool_call_assembler import ToolCallAssembler
from toolchat.llm.types import ROLE_SYSTEM, ROLE_TOOL, ModelMessage, ToolCall
from toolchat.protocol.convert import output_to_text, to_model_messages
from toolchat.protocol.events import (
    FINISH_STOP,
    FINISH_TOOL_CALLS,
    FragmentEvent,
    error_event,
    finish_event,
    reasoning_delta_event,
    start_event,
    text_delta_event,
    tool_input_available_event,
    tool_input_start_event,
    tool_output_available_event,
    tool_output_error_event,
)
from toolchat.protocol.fragments import Message, new_message_id
from toolchat.tools.provider import (
    ToolDefinition,
    ToolProviderConnection,
    ToolProviderConnector,
    open_connection,
)
from toolchat.tools.validation import validate_arguments
from toolchat.types import (
    GENERIC_ERROR_TEXT,
    ErrorCode,
    ModelStreamError,
    ToolInvocationError,
    ToolProviderConnectionError,
    ToolResult,
)

logger = logging.getLogger(__name__)


class _PartCursor:
    """Hands out ``parts`` indices for the in-flight assistant message."""

    def __init__(self) -> None:
        self._next = 0
        self._open_kind: str | None = None
        self._open_index = -1

    def claim(self) -> int:
        """Reserve a fresh index and close any open text/reasoning run."""
        idx = self._next
        self._next += 1
        self._open_kind = None
        return idx

    def index_for(self, kind: str) -> int:
        """Index of the open run of *kind*, opening a new one on a change of kind."""
        if self._open_kind != kind:
            idx = self.claim()
            self._open_kind = kind
            self._open_index = idx
        return self._open_index


@dataclass
class _Step:
    """Bookkeeping for one model stream within the turn."""

    text_parts: list[str] = field(default_factory=list)
    # stream call index -> (conversation-unique call id, part index)
    announced: dict[int, tuple[str, int]] = field(default_factory=dict)
    calls: list[ToolCall] = field(default_factory=list)
    results: dict[str, ToolResult] = field(default_factory=dict)
    tasks: list[asyncio.Task] = field(default_factory=list)
    finish_reason: str | None = None


class TurnOrchestrator:
    """
    Runs exactly one assistant turn.

    Parameters
    ----------
    connector : ToolProviderConnector
        Opens the tool-provider connection owned by the turn.
    router : LLMRouter
        Model capability.
    system_prompt : str
        Prepended to the model history when non-empty.
    max_steps : int
        Max model streams per turn.  A turn that hits the cap ends with
        ``finish_reason="tool-calls"`` and leaves the follow-up to the client.
    tool_timeout : float
        Max seconds for a single tool invocation.
    model_timeout : float
        Per-request timeout handed to the model provider.
    """

    def __init__(
        self,
        connector: ToolProviderConnector,
        router: LLMRouter,
        system_prompt: str = "",
        max_steps: int = 5,
        tool_timeout: float = 30.0,
        model_timeout: float = 120.0,
    ) -> None:
        self.connector = connector
        self.router = router
        self.system_prompt = system_prompt
        self.max_steps = max_steps
        self.tool_timeout = tool_timeout
        self.model_timeout = model_timeout

    async def run(self, messages: Iterable[Message]) -> AsyncIterator[FragmentEvent]:
        """
        Run one turn over *messages* and yield its fragment events.

        Raises ``ToolProviderConnectionError`` before any event when the tool
        provider cannot be opened or queried.  A model failure yields a
        terminal ``error`` event instead.  The tool-provider connection is
        closed exactly once however the turn ends, including when the
        consumer closes this generator early.
        """
        messages = list(messages)
        if not messages:
            raise ValueError("A turn needs at least one message")

        used_ids = {tc.call_id for m in messages for tc in m.tool_calls()}
        tasks: list[asyncio.Task] = []

        async with open_connection(self.connector) as conn:
            try:
                definitions = await conn.discover_tools()
            except ToolProviderConnectionError:
                raise
            except Exception as exc:
                raise ToolProviderConnectionError(
                    f"Tool discovery failed: {exc}", exc
                ) from exc

            logger.info(
                "Turn started: messages=%d tools=%d", len(messages), len(definitions)
            )

            history = to_model_messages(messages)
            if self.system_prompt:
                history = [ModelMessage(role=ROLE_SYSTEM, content=self.system_prompt)] + history
            tools_schema = [d.to_openai_schema() for d in definitions.values()]
            cursor = _PartCursor()

            try:
                yield start_event(new_message_id())

                for step_no in range(self.max_steps):
                    step = _Step()
                    try:
                        async for event in self._stream_step(
                            conn, definitions, history, tools_schema,
                            cursor, step, used_ids, tasks,
                        ):
                            yield event
                    except ModelStreamError:
                        logger.exception("Model stream failed in step %d", step_no)
                        yield error_event(GENERIC_ERROR_TEXT)
                        return

                    async for event in self._collect_results(step):
                        yield event

                    logger.info(
                        "Step %d finished: reason=%s calls=%d",
                        step_no, step.finish_reason, len(step.calls),
                    )
                    if step.finish_reason == "length":
                        logger.warning("Model output was truncated at the token limit")

                    if not step.calls:
                        yield finish_event(FINISH_STOP)
                        return

                    history.extend(self._step_messages(step))

                logger.warning(
                    "Turn reached max_steps=%d with unanswered tool results",
                    self.max_steps,
                )
                yield finish_event(FINISH_TOOL_CALLS)
            finally:
                for task in tasks:
                    if not task.done():
                        task.cancel()

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def _stream_step(
        self,
        conn: ToolProviderConnection,
        definitions: dict[str, ToolDefinition],
        history: list[ModelMessage],
        tools_schema: list[dict],
        cursor: _PartCursor,
        step: _Step,
        used_ids: set[str],
        tasks: list[asyncio.Task],
    ) -> AsyncIterator[FragmentEvent]:
        assembler = ToolCallAssembler()

        async for chunk in self.router.stream(
            history,
            tools=tools_schema or None,
            tool_choice="auto",
            timeout=self.model_timeout,
        ):
            if chunk.reasoning_delta:
                yield reasoning_delta_event(
                    cursor.index_for("reasoning"), chunk.reasoning_delta
                )
            if chunk.finish_reason:
                step.finish_reason = chunk.finish_reason
            if chunk.delta:
                step.text_parts.append(chunk.delta)
                yield text_delta_event(cursor.index_for("text"), chunk.delta)

            for td in chunk.tool_deltas or []:
                finished = assembler.feed(td)
                if finished is not None:
                    for event in self._finalize_call(
                        td.call_index, finished, conn, definitions,
                        cursor, step, used_ids, tasks,
                    ):
                        yield event
                elif td.args_delta:
                    pending = assembler.pending(td.call_index)
                    if pending is not None and td.call_index not in step.announced:
                        yield self._announce(
                            td.call_index, pending[0], pending[1], cursor, step, used_ids
                        )

        for call_index, tc in assembler.flush_indexed():
            for event in self._finalize_call(
                call_index, tc, conn, definitions, cursor, step, used_ids, tasks
            ):
                yield event

        if assembler.errors:
            logger.warning("Tool-call assembly errors: %s", assembler.errors)

    def _announce(
        self,
        call_index: int,
        raw_id: str,
        name: str,
        cursor: _PartCursor,
        step: _Step,
        used_ids: set[str],
    ) -> FragmentEvent:
        call_id = raw_id
        if call_id in used_ids:
            call_id = f"{raw_id}_{uuid.uuid4().hex[:8]}"
        used_ids.add(call_id)
        index = cursor.claim()
        step.announced[call_index] = (call_id, index)
        return tool_input_start_event(index, call_id, name)

    def _finalize_call(
        self,
        call_index: int,
        tc: ToolCall,
        conn: ToolProviderConnection,
        definitions: dict[str, ToolDefinition],
        cursor: _PartCursor,
        step: _Step,
        used_ids: set[str],
        tasks: list[asyncio.Task],
    ) -> list[FragmentEvent]:
        events: list[FragmentEvent] = []
        if call_index not in step.announced:
            events.append(self._announce(call_index, tc.id, tc.name, cursor, step, used_ids))
        call_id, index = step.announced[call_index]
        call = ToolCall(id=call_id, name=tc.name, arguments=tc.arguments)
        step.calls.append(call)

        if tc.parse_error:
            step.results[call_id] = ToolResult(
                success=False,
                content=tc.parse_error,
                error=tc.parse_error,
                error_code=ErrorCode.INVALID_ARGUMENTS,
            )
            events.append(tool_output_error_event(index, call_id, tc.parse_error))
            return events

        events.append(tool_input_available_event(index, call_id, tc.name, tc.arguments))
        task = asyncio.create_task(self._invoke(conn, definitions, call))
        step.tasks.append(task)
        tasks.append(task)
        return events

    async def _collect_results(self, step: _Step) -> AsyncIterator[FragmentEvent]:
        """Yield output events in completion order, each for its own call."""
        indices = {cid: idx for cid, idx in step.announced.values()}
        for next_done in asyncio.as_completed(step.tasks):
            call_id, result = await next_done
            step.results[call_id] = result
            index = indices[call_id]
            if result.success:
                yield tool_output_available_event(index, call_id, _output_payload(result))
            else:
                yield tool_output_error_event(index, call_id, _error_text(result))

    def _step_messages(self, step: _Step) -> list[ModelMessage]:
        """History entries that hand this step's tool results back to the model."""
        out = [
            ModelMessage(
                role="assistant",
                content="".join(step.text_parts),
                tool_calls=list(step.calls),
            )
        ]
        for call in step.calls:
            result = step.results[call.id]
            if result.success:
                content = output_to_text(_output_payload(result))
            else:
                content = f"Error: {_error_text(result)}"
            out.append(ModelMessage(role=ROLE_TOOL, content=content, tool_call_id=call.id))
        return out

    # ------------------------------------------------------------------
    # Tool invocation
    # ------------------------------------------------------------------

    async def _invoke(
        self,
        conn: ToolProviderConnection,
        definitions: dict[str, ToolDefinition],
        call: ToolCall,
    ) -> tuple[str, ToolResult]:
        """
        Invoke one tool call; every failure is captured into the result.

        Steps:
        1. Definition lookup
        2. Argument validation
        3. Invocation with timeout
        """
        definition = definitions.get(call.name)
        if definition is None:
            return call.id, ToolResult(
                success=False,
                content=f"Unknown tool: {call.name}",
                error=f"Unknown tool: {call.name}",
                error_code=ErrorCode.UNKNOWN_TOOL,
            )

        error_msg = validate_arguments(definition, call.arguments)
        if error_msg is not None:
            return call.id, ToolResult(
                success=False,
                content=f"Validation error: {error_msg}",
                error=f"Validation error: {error_msg}",
                error_code=ErrorCode.VALIDATION_ERROR,
            )

        start = time.monotonic()
        try:
            result = await asyncio.wait_for(
                conn.invoke(call.name, call.arguments),
                timeout=self.tool_timeout,
            )
        except asyncio.TimeoutError:
            result = ToolResult(
                success=False,
                content=f"Tool timed out after {self.tool_timeout}s",
                error=f"Timeout after {self.tool_timeout}s",
                error_code=ErrorCode.TIMEOUT,
            )
        except ToolInvocationError as e:
            result = ToolResult(
                success=False,
                content=str(e),
                error=str(e),
                error_code=ErrorCode.TOOL_EXCEPTION,
            )
        except Exception as e:
            logger.exception("Tool %s raised", call.name)
            result = ToolResult(
                success=False,
                content=f"Tool exception: {e}",
                error=f"Tool exception: {e}",
                error_code=ErrorCode.TOOL_EXCEPTION,
            )

        duration_ms = int((time.monotonic() - start) * 1000)
        logger.info(
            "Tool %s call_id=%s success=%s duration_ms=%d",
            call.name, call.id, result.success, duration_ms,
        )
        return call.id, result


def _output_payload(result: ToolResult) -> Any:
    return result.data if result.data is not None else result.content


def _error_text(result: ToolResult) -> str:
    return result.error or result.content or "Tool call failed"
