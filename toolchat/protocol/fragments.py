"""
Conversation data model.

A conversation is an ordered list of messages; each message is an ordered
list of typed fragments.  Fragment order is render and replay order, so
fragments are only ever appended or extended in place, never reordered.

Tool calls carry their own small state machine::

    input-streaming -> input-available -> output-available | output-error

Transitions only move forward.  Skipping a state is allowed (arguments that
never parse go straight to ``output-error``), revisiting one is not.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Iterator, Union


class InvalidTransitionError(ValueError):
    """A tool-call fragment was asked to move backwards or out of a terminal state."""


class FrozenMessageError(RuntimeError):
    """A completed message was mutated."""


# ---------------------------------------------------------------------------
# Tool-call state machine
# ---------------------------------------------------------------------------


class ToolCallState(str, Enum):
    INPUT_STREAMING = "input-streaming"
    INPUT_AVAILABLE = "input-available"
    OUTPUT_AVAILABLE = "output-available"
    OUTPUT_ERROR = "output-error"

    @property
    def rank(self) -> int:
        return _RANKS[self]

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES

    @classmethod
    def parse(cls, value: Any) -> ToolCallState | None:
        """Return the matching state, or ``None`` for absent/unknown values."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return None


_RANKS = {
    ToolCallState.INPUT_STREAMING: 0,
    ToolCallState.INPUT_AVAILABLE: 1,
    ToolCallState.OUTPUT_AVAILABLE: 2,
    ToolCallState.OUTPUT_ERROR: 2,
}

TERMINAL_STATES = frozenset(
    {ToolCallState.OUTPUT_AVAILABLE, ToolCallState.OUTPUT_ERROR}
)

_STATE_LABELS = {
    ToolCallState.INPUT_STREAMING.value: "Running",
    ToolCallState.INPUT_AVAILABLE.value: "Pending",
    ToolCallState.OUTPUT_AVAILABLE.value: "Done",
    ToolCallState.OUTPUT_ERROR.value: "Error",
}


def state_label(state: ToolCallState | str | None) -> str:
    """Display label for a tool-call state; unknown or absent states render blank."""
    if state is None:
        return ""
    key = state.value if isinstance(state, ToolCallState) else str(state)
    return _STATE_LABELS.get(key, "")


# ---------------------------------------------------------------------------
# Fragments
# ---------------------------------------------------------------------------


@dataclass
class TextFragment:
    text: str = ""

    type: ClassVar[str] = "text"

    def extend(self, delta: str) -> None:
        self.text += delta

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "text": self.text}


@dataclass
class ReasoningFragment:
    """Model "thinking" content.  Its presence is surfaced, its text never is."""

    text: str = ""

    type: ClassVar[str] = "reasoning"

    def extend(self, delta: str) -> None:
        self.text += delta

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "text": self.text}


@dataclass
class ToolCallFragment:
    """
    One invocation of one tool.

    Mutated in place as the call progresses; ``call_id`` is unique across
    the whole conversation.  ``state`` is ``None`` when a peer sent a state
    this model does not know; ``raw_state`` then keeps what was sent.
    """

    call_id: str
    tool_name: str
    state: ToolCallState | None = ToolCallState.INPUT_STREAMING
    input: Any = None
    output: Any = None
    error_text: str | None = None
    raw_state: str | None = None

    type: ClassVar[str] = "tool-call"

    @property
    def is_terminal(self) -> bool:
        return self.state is not None and self.state.is_terminal

    @property
    def state_text(self) -> str:
        """The wire value of the state, known or not; ``""`` when absent."""
        if self.state is not None:
            return self.state.value
        return self.raw_state or ""

    def transition(
        self,
        new_state: ToolCallState,
        *,
        input: Any = None,
        output: Any = None,
        error_text: str | None = None,
    ) -> None:
        """
        Move to *new_state*, attaching the payload that state requires.

        Raises ``InvalidTransitionError`` for a backward move, a repeat, or
        any move out of a terminal state.
        """
        if self.state is not None:
            if self.state.is_terminal:
                raise InvalidTransitionError(
                    f"{self.call_id}: {self.state.value} is terminal"
                )
            if new_state.rank <= self.state.rank:
                raise InvalidTransitionError(
                    f"{self.call_id}: {self.state.value} -> {new_state.value}"
                )
        if new_state is ToolCallState.OUTPUT_ERROR and not error_text:
            raise InvalidTransitionError(
                f"{self.call_id}: output-error requires error_text"
            )

        if input is not None:
            self.input = input
        if new_state is ToolCallState.OUTPUT_AVAILABLE:
            self.output = output
        if new_state is ToolCallState.OUTPUT_ERROR:
            self.error_text = error_text
        self.state = new_state
        self.raw_state = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "type": self.type,
            "call_id": self.call_id,
            "tool_name": self.tool_name,
            "state": self.state_text or None,
            "input": self.input,
        }
        if self.output is not None:
            d["output"] = self.output
        if self.error_text is not None:
            d["error_text"] = self.error_text
        return d


@dataclass
class UnknownFragment:
    """Placeholder for a variant this model does not know; keeps its position."""

    raw: dict[str, Any] = field(default_factory=dict)

    type: ClassVar[str] = "unknown"

    def to_dict(self) -> dict[str, Any]:
        return dict(self.raw) if self.raw else {"type": self.type}


Fragment = Union[TextFragment, ReasoningFragment, ToolCallFragment, UnknownFragment]


def fragment_from_dict(data: dict[str, Any]) -> Fragment:
    """Rebuild a fragment; unrecognised variants become ``UnknownFragment``."""
    ftype = data.get("type")
    if ftype == TextFragment.type:
        return TextFragment(text=str(data.get("text") or ""))
    if ftype == ReasoningFragment.type:
        return ReasoningFragment(text=str(data.get("text") or ""))
    if ftype == ToolCallFragment.type and data.get("call_id"):
        raw_state = data.get("state")
        state = ToolCallState.parse(raw_state)
        return ToolCallFragment(
            call_id=str(data["call_id"]),
            tool_name=str(data.get("tool_name") or ""),
            state=state,
            input=data.get("input"),
            output=data.get("output"),
            error_text=data.get("error_text"),
            raw_state=str(raw_state) if state is None and raw_state is not None else None,
        )
    return UnknownFragment(raw=dict(data))


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------

ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"
ROLES = (ROLE_USER, ROLE_ASSISTANT)


def new_message_id() -> str:
    return f"msg_{uuid.uuid4().hex}"


@dataclass
class Message:
    """
    One turn in the conversation.

    ``role`` cannot be reassigned.  ``parts`` only grows while the message is
    in flight; after ``freeze()`` any mutation through this API raises
    ``FrozenMessageError``.
    """

    id: str
    role: str
    parts: list[Fragment] = field(default_factory=list)
    frozen: bool = False

    def __post_init__(self) -> None:
        if self.role not in ROLES:
            raise ValueError(f"Unknown role: {self.role!r}")

    def __setattr__(self, name: str, value: Any) -> None:
        if name == "role" and "role" in self.__dict__:
            raise AttributeError("Message.role is immutable")
        super().__setattr__(name, value)

    @classmethod
    def create(cls, role: str, text: str | None = None) -> Message:
        msg = cls(id=new_message_id(), role=role)
        if text:
            msg.parts.append(TextFragment(text=text))
        return msg

    def _check_open(self) -> None:
        if self.frozen:
            raise FrozenMessageError(f"Message {self.id} is complete")

    def append_part(self, fragment: Fragment) -> int:
        """Append *fragment* and return its index."""
        self._check_open()
        self.parts.append(fragment)
        return len(self.parts) - 1

    def ensure_index(self, index: int) -> None:
        """Pad ``parts`` with placeholders so that *index* - 1 exists."""
        self._check_open()
        while len(self.parts) < index:
            self.parts.append(UnknownFragment())

    def fill_placeholder(self, index: int, fragment: Fragment) -> bool:
        """Put *fragment* at *index* if that slot is an empty padding placeholder."""
        self._check_open()
        current = self.parts[index]
        if isinstance(current, UnknownFragment) and not current.raw:
            self.parts[index] = fragment
            return True
        return False

    def freeze(self) -> None:
        self.frozen = True

    def tool_calls(self) -> list[ToolCallFragment]:
        return [p for p in self.parts if isinstance(p, ToolCallFragment)]

    @property
    def text(self) -> str:
        return "".join(p.text for p in self.parts if isinstance(p, TextFragment))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role,
            "parts": [p.to_dict() for p in self.parts],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], *, frozen: bool = True) -> Message:
        return cls(
            id=str(data.get("id") or new_message_id()),
            role=str(data.get("role")),
            parts=[fragment_from_dict(p) for p in data.get("parts") or []],
            frozen=frozen,
        )


# ---------------------------------------------------------------------------
# Conversation
# ---------------------------------------------------------------------------


@dataclass
class Conversation:
    """Append-only list of messages; only the last one may be in flight."""

    messages: list[Message] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(self.messages)

    @property
    def last(self) -> Message | None:
        return self.messages[-1] if self.messages else None

    def append(self, message: Message) -> None:
        last = self.last
        if last is not None and not last.frozen:
            raise ValueError(f"Message {last.id} is still in flight")
        self.messages.append(message)

    def last_assistant(self) -> Message | None:
        for msg in reversed(self.messages):
            if msg.role == ROLE_ASSISTANT:
                return msg
        return None

    def find_tool_call(self, call_id: str) -> ToolCallFragment | None:
        for msg in self.messages:
            for part in msg.parts:
                if isinstance(part, ToolCallFragment) and part.call_id == call_id:
                    return part
        return None

    def tool_call_ids(self) -> set[str]:
        return {tc.call_id for msg in self.messages for tc in msg.tool_calls()}

    def to_list(self) -> list[dict[str, Any]]:
        return [m.to_dict() for m in self.messages]

    @classmethod
    def from_list(cls, items: list[dict[str, Any]]) -> Conversation:
        return cls(messages=[Message.from_dict(item) for item in items])
