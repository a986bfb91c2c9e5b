"""
Client-side conversation state, kept purely as a fold over fragment events.

``ConversationAssembler.apply`` is the only way assistant content enters the
conversation.  The fold tolerates any interleaving of text, reasoning and
concurrent tool calls, unknown event types, and events that arrive after the
turn has settled (those are ignored).
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable

from toolchat.protocol.events import (
    EVENT_ERROR,
    EVENT_FINISH,
    EVENT_REASONING_DELTA,
    EVENT_START,
    EVENT_TEXT_DELTA,
    EVENT_TOOL_INPUT_AVAILABLE,
    EVENT_TOOL_INPUT_START,
    EVENT_TOOL_OUTPUT_AVAILABLE,
    EVENT_TOOL_OUTPUT_ERROR,
    FragmentEvent,
)
from toolchat.protocol.fragments import (
    ROLE_ASSISTANT,
    ROLE_USER,
    Conversation,
    Fragment,
    InvalidTransitionError,
    Message,
    ReasoningFragment,
    TextFragment,
    ToolCallFragment,
    ToolCallState,
    UnknownFragment,
    new_message_id,
)
from toolchat.types import GENERIC_ERROR_TEXT

logger = logging.getLogger(__name__)

STATUS_READY = "ready"
STATUS_SUBMITTED = "submitted"
STATUS_STREAMING = "streaming"
STATUS_ERROR = "error"

SettleListener = Callable[["ConversationAssembler"], None]


class ConversationAssembler:
    """
    Folds a fragment-event stream into a ``Conversation``.

    Attributes
    ----------
    conversation:
        The growing, strictly ordered message list.
    status:
        ``ready``, ``submitted`` (request sent, nothing received),
        ``streaming`` or ``error``.
    error_text:
        Generic, client-safe failure text while ``status == "error"``.
    """

    def __init__(self, conversation: Conversation | None = None) -> None:
        self.conversation = conversation or Conversation()
        self.status = STATUS_READY
        self.error_text: str | None = None
        self._in_flight: Message | None = None
        self._settle_listeners: list[SettleListener] = []
        self._handlers: dict[str, Callable[[FragmentEvent], None]] = {
            EVENT_START: self._on_start,
            EVENT_TEXT_DELTA: self._on_text_delta,
            EVENT_REASONING_DELTA: self._on_reasoning_delta,
            EVENT_TOOL_INPUT_START: self._on_tool_input_start,
            EVENT_TOOL_INPUT_AVAILABLE: self._on_tool_input_available,
            EVENT_TOOL_OUTPUT_AVAILABLE: self._on_tool_output_available,
            EVENT_TOOL_OUTPUT_ERROR: self._on_tool_output_error,
            EVENT_FINISH: self._on_finish,
            EVENT_ERROR: self._on_error,
        }

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def messages(self) -> list[Message]:
        return self.conversation.messages

    @property
    def last_assistant(self) -> Message | None:
        return self.conversation.last_assistant()

    @property
    def in_flight(self) -> Message | None:
        return self._in_flight

    @property
    def is_reasoning(self) -> bool:
        """True while the latest assistant message holds reasoning and the turn is unsettled."""
        if self.status not in (STATUS_SUBMITTED, STATUS_STREAMING):
            return False
        last = self.last_assistant
        if last is None:
            return False
        return any(isinstance(p, ReasoningFragment) for p in last.parts)

    # ------------------------------------------------------------------
    # Turn lifecycle
    # ------------------------------------------------------------------

    def on_settle(self, listener: SettleListener) -> None:
        """Register *listener* to run every time the status becomes ``ready``."""
        self._settle_listeners.append(listener)

    def add_user_message(self, text: str) -> Message:
        msg = Message.create(ROLE_USER, text)
        msg.freeze()
        self.conversation.append(msg)
        self.begin_turn()
        return msg

    def begin_turn(self) -> None:
        """Mark a request as sent without adding content (automatic follow-up)."""
        self.status = STATUS_SUBMITTED
        self.error_text = None

    def end_of_stream(self) -> None:
        """The transport closed; settle a turn that never sent ``finish``."""
        if self.status in (STATUS_SUBMITTED, STATUS_STREAMING):
            self._settle()

    def fail(self) -> None:
        """Record a turn-level failure (transport error, non-200 response)."""
        self._close_in_flight()
        self.status = STATUS_ERROR
        self.error_text = GENERIC_ERROR_TEXT

    # ------------------------------------------------------------------
    # Fold
    # ------------------------------------------------------------------

    def apply(self, event: FragmentEvent) -> None:
        handler = self._handlers.get(event.event_type, self._on_unknown)
        handler(event)

    def apply_all(self, events: Iterable[FragmentEvent]) -> None:
        for event in events:
            self.apply(event)

    def _target(self, event: FragmentEvent) -> Message | None:
        if self._in_flight is None:
            logger.debug("Ignoring %s with no message in flight", event.event_type)
        return self._in_flight

    def _part_at(self, msg: Message, index: int, factory: Callable[[], Fragment]) -> Fragment:
        """Return the part at *index*, creating it when the slot is new or padding."""
        if index >= len(msg.parts):
            msg.ensure_index(index)
            msg.append_part(factory())
        else:
            msg.fill_placeholder(index, factory())
        return msg.parts[index]

    def _on_start(self, event: FragmentEvent) -> None:
        self._close_in_flight()
        msg = Message(
            id=str(event.payload.get("message_id") or new_message_id()),
            role=ROLE_ASSISTANT,
        )
        self.conversation.append(msg)
        self._in_flight = msg
        self.status = STATUS_STREAMING

    def _extend(self, event: FragmentEvent, cls: type) -> None:
        msg = self._target(event)
        index = event.index
        if msg is None or index is None:
            return
        part = self._part_at(msg, index, cls)
        if not isinstance(part, cls):
            logger.warning(
                "%s at index %d addresses a %s part", event.event_type, index, part.type
            )
            return
        part.extend(str(event.payload.get("delta") or ""))

    def _on_text_delta(self, event: FragmentEvent) -> None:
        self._extend(event, TextFragment)

    def _on_reasoning_delta(self, event: FragmentEvent) -> None:
        self._extend(event, ReasoningFragment)

    def _tool_call(self, event: FragmentEvent) -> ToolCallFragment | None:
        """Find the fragment for the event's ``call_id``, creating it on first sight."""
        call_id = event.call_id
        if not call_id:
            return None
        existing = self.conversation.find_tool_call(call_id)
        if existing is not None:
            return existing

        msg = self._target(event)
        index = event.index
        if msg is None or index is None:
            return None
        fragment = ToolCallFragment(
            call_id=call_id,
            tool_name=str(event.payload.get("tool_name") or ""),
        )
        part = self._part_at(msg, index, lambda: fragment)
        if part is not fragment:
            logger.warning("Tool call %s collides with a %s part", call_id, part.type)
            return None
        return fragment

    def _transition(self, event: FragmentEvent, state: ToolCallState, **payload) -> None:
        fragment = self._tool_call(event)
        if fragment is None:
            return
        if self._in_flight is None or not any(p is fragment for p in self._in_flight.parts):
            logger.debug("Ignoring %s for settled call %s", event.event_type, fragment.call_id)
            return
        try:
            fragment.transition(state, **payload)
        except InvalidTransitionError as exc:
            logger.warning("Dropping out-of-order tool event: %s", exc)

    def _on_tool_input_start(self, event: FragmentEvent) -> None:
        self._tool_call(event)

    def _on_tool_input_available(self, event: FragmentEvent) -> None:
        fragment = self._tool_call(event)
        if fragment is not None and not fragment.tool_name:
            fragment.tool_name = str(event.payload.get("tool_name") or "")
        self._transition(
            event, ToolCallState.INPUT_AVAILABLE, input=event.payload.get("input") or {}
        )

    def _on_tool_output_available(self, event: FragmentEvent) -> None:
        self._transition(
            event, ToolCallState.OUTPUT_AVAILABLE, output=event.payload.get("output")
        )

    def _on_tool_output_error(self, event: FragmentEvent) -> None:
        self._transition(
            event,
            ToolCallState.OUTPUT_ERROR,
            error_text=str(event.payload.get("error_text") or "Tool call failed"),
        )

    def _on_finish(self, event: FragmentEvent) -> None:
        self._settle()

    def _on_error(self, event: FragmentEvent) -> None:
        self.fail()

    def _on_unknown(self, event: FragmentEvent) -> None:
        """Keep position with an empty placeholder; otherwise the event is inert."""
        msg = self._target(event)
        index = event.index
        if msg is None or index is None or index < len(msg.parts):
            return
        msg.ensure_index(index)
        msg.append_part(UnknownFragment(raw=event.to_dict()))

    def _close_in_flight(self) -> None:
        if self._in_flight is not None:
            self._in_flight.freeze()
            self._in_flight = None

    def _settle(self) -> None:
        self._close_in_flight()
        self.status = STATUS_READY
        for listener in list(self._settle_listeners):
            listener(self)
