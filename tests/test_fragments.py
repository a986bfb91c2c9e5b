"""Tests for the conversation data model and the tool-call state machine."""

from __future__ import annotations

import pytest

from toolchat.protocol.fragments import (
    Conversation,
    FrozenMessageError,
    InvalidTransitionError,
    Message,
    ReasoningFragment,
    TextFragment,
    ToolCallFragment,
    ToolCallState,
    UnknownFragment,
    fragment_from_dict,
    state_label,
)

S = ToolCallState


def _call(state=S.INPUT_STREAMING) -> ToolCallFragment:
    return ToolCallFragment(call_id="call_1", tool_name="get_token_price", state=state)


class TestStateMachine:
    def test_full_success_path(self):
        tc = _call()
        tc.transition(S.INPUT_AVAILABLE, input={"symbol": "ETH"})
        tc.transition(S.OUTPUT_AVAILABLE, output={"usd": 3000})
        assert tc.state is S.OUTPUT_AVAILABLE
        assert tc.input == {"symbol": "ETH"}
        assert tc.output == {"usd": 3000}
        assert tc.is_terminal

    def test_error_path(self):
        tc = _call()
        tc.transition(S.INPUT_AVAILABLE, input={})
        tc.transition(S.OUTPUT_ERROR, error_text="upstream returned 500")
        assert tc.state is S.OUTPUT_ERROR
        assert tc.error_text == "upstream returned 500"

    def test_forward_skip_allowed(self):
        tc = _call()
        tc.transition(S.OUTPUT_ERROR, error_text="Invalid JSON arguments")
        assert tc.state is S.OUTPUT_ERROR

    @pytest.mark.parametrize(
        "start,target",
        [
            (S.INPUT_AVAILABLE, S.INPUT_STREAMING),
            (S.INPUT_AVAILABLE, S.INPUT_AVAILABLE),
            (S.OUTPUT_AVAILABLE, S.OUTPUT_ERROR),
            (S.OUTPUT_ERROR, S.OUTPUT_AVAILABLE),
            (S.OUTPUT_AVAILABLE, S.INPUT_AVAILABLE),
        ],
    )
    def test_backward_repeat_and_terminal_moves_rejected(self, start, target):
        tc = _call(start)
        with pytest.raises(InvalidTransitionError):
            tc.transition(target, output="x", error_text="x")
        assert tc.state is start

    def test_output_error_requires_text(self):
        tc = _call(S.INPUT_AVAILABLE)
        with pytest.raises(InvalidTransitionError):
            tc.transition(S.OUTPUT_ERROR, error_text="")
        assert tc.state is S.INPUT_AVAILABLE

    def test_unknown_state_can_move_forward(self):
        tc = _call(state=None)
        assert not tc.is_terminal
        tc.transition(S.OUTPUT_AVAILABLE, output=[])
        assert tc.state is S.OUTPUT_AVAILABLE

    def test_parse(self):
        assert S.parse("output-error") is S.OUTPUT_ERROR
        assert S.parse(S.INPUT_AVAILABLE) is S.INPUT_AVAILABLE
        assert S.parse("approval-requested") is None
        assert S.parse(None) is None

    def test_terminal_states_share_rank(self):
        assert S.OUTPUT_AVAILABLE.rank == S.OUTPUT_ERROR.rank
        assert S.INPUT_STREAMING.rank < S.INPUT_AVAILABLE.rank < S.OUTPUT_ERROR.rank


class TestStateLabel:
    @pytest.mark.parametrize(
        "state,label",
        [
            (S.INPUT_STREAMING, "Running"),
            (S.INPUT_AVAILABLE, "Pending"),
            (S.OUTPUT_AVAILABLE, "Done"),
            (S.OUTPUT_ERROR, "Error"),
            ("output-available", "Done"),
            ("approval-requested", ""),
            (None, ""),
        ],
    )
    def test_labels(self, state, label):
        assert state_label(state) == label


class TestMessage:
    def test_create_with_text(self):
        msg = Message.create("user", "What's trending on OpenSea?")
        assert msg.id.startswith("msg_")
        assert msg.text == "What's trending on OpenSea?"
        assert not msg.frozen

    def test_unknown_role_rejected(self):
        with pytest.raises(ValueError):
            Message(id="m", role="system")

    def test_role_is_immutable(self):
        msg = Message.create("assistant")
        with pytest.raises(AttributeError):
            msg.role = "user"

    def test_append_returns_index_and_keeps_order(self):
        msg = Message.create("assistant")
        assert msg.append_part(ReasoningFragment("hmm")) == 0
        assert msg.append_part(TextFragment("Let me look.")) == 1
        assert msg.append_part(_call()) == 2
        assert [p.type for p in msg.parts] == ["reasoning", "text", "tool-call"]

    def test_frozen_message_rejects_mutation(self):
        msg = Message.create("assistant", "done")
        msg.freeze()
        with pytest.raises(FrozenMessageError):
            msg.append_part(TextFragment("more"))
        with pytest.raises(FrozenMessageError):
            msg.ensure_index(4)

    def test_ensure_index_pads_with_placeholders(self):
        msg = Message.create("assistant")
        msg.ensure_index(2)
        assert len(msg.parts) == 2
        assert all(isinstance(p, UnknownFragment) for p in msg.parts)

    def test_fill_placeholder_only_replaces_padding(self):
        msg = Message.create("assistant")
        msg.ensure_index(1)
        assert msg.fill_placeholder(0, TextFragment("hi")) is True
        assert msg.fill_placeholder(0, TextFragment("again")) is False
        assert msg.text == "hi"

        msg.append_part(UnknownFragment(raw={"type": "source-url"}))
        assert msg.fill_placeholder(1, TextFragment("x")) is False

    def test_roundtrip_dict(self):
        msg = Message.create("assistant")
        msg.append_part(TextFragment("Checking."))
        tc = _call()
        tc.transition(S.OUTPUT_AVAILABLE, output={"usd": 3000})
        msg.append_part(tc)

        restored = Message.from_dict(msg.to_dict())
        assert restored.id == msg.id
        assert restored.frozen
        assert restored.to_dict() == msg.to_dict()


class TestFragmentFromDict:
    def test_unknown_variant_is_preserved(self):
        raw = {"type": "source-url", "url": "https://opensea.io"}
        frag = fragment_from_dict(raw)
        assert isinstance(frag, UnknownFragment)
        assert frag.to_dict() == raw

    def test_tool_call_without_state_is_kept(self):
        frag = fragment_from_dict({"type": "tool-call", "call_id": "c1", "tool_name": "t"})
        assert isinstance(frag, ToolCallFragment)
        assert frag.state is None

    def test_unrecognised_state_is_kept_raw(self):
        frag = fragment_from_dict(
            {"type": "tool-call", "call_id": "c1", "tool_name": "t", "state": "approval-requested"}
        )
        assert frag.state is None
        assert frag.state_text == "approval-requested"
        assert frag.to_dict()["state"] == "approval-requested"

        frag.transition(ToolCallState.INPUT_AVAILABLE, input={"a": 1})
        assert frag.raw_state is None
        assert frag.state_text == "input-available"

    def test_tool_call_without_id_is_unknown(self):
        frag = fragment_from_dict({"type": "tool-call", "tool_name": "t"})
        assert isinstance(frag, UnknownFragment)


class TestConversation:
    def test_append_requires_previous_complete(self):
        conv = Conversation()
        conv.append(Message.create("user", "hi"))
        with pytest.raises(ValueError):
            conv.append(Message.create("assistant"))

    def test_append_after_freeze(self):
        conv = Conversation()
        user = Message.create("user", "hi")
        conv.append(user)
        user.freeze()
        conv.append(Message.create("assistant"))
        assert len(conv) == 2
        assert conv.last_assistant() is conv.last

    def test_find_tool_call_across_messages(self):
        first = Message.create("assistant")
        first.append_part(ToolCallFragment(call_id="a", tool_name="t"))
        first.freeze()
        second = Message.create("assistant")
        second.append_part(ToolCallFragment(call_id="b", tool_name="t"))
        conv = Conversation([first, second])

        assert conv.find_tool_call("b") is second.parts[0]
        assert conv.find_tool_call("zzz") is None
        assert conv.tool_call_ids() == {"a", "b"}

    def test_list_roundtrip(self):
        conv = Conversation([Message.create("user", "hi")])
        restored = Conversation.from_list(conv.to_list())
        assert restored.to_list() == conv.to_list()
