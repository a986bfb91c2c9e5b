"""Tests for streamed tool-call assembly."""

from __future__ import annotations

import json

from toolchat.llm.tool_call_assembler import ToolCallAssembler
from toolchat.llm.types import RawToolDelta


def _feed_all(asm: ToolCallAssembler, *deltas: RawToolDelta):
    return [call for d in deltas if (call := asm.feed(d)) is not None]


class TestAssembly:
    def test_name_and_arguments_in_pieces(self):
        asm = ToolCallAssembler()
        assert asm.feed(RawToolDelta(0, id="call_1", name_delta="get_trending_")) is None
        assert asm.feed(RawToolDelta(0, name_delta="collections")) is None
        assert asm.feed(RawToolDelta(0, args_delta='{"timeframe": ')) is None
        assert asm.feed(RawToolDelta(0, args_delta='"ONE_DAY"}')) is None

        call = asm.feed(RawToolDelta(0, done=True))
        assert (call.id, call.name, call.arguments, call.parse_error) == (
            "call_1", "get_trending_collections", {"timeframe": "ONE_DAY"}, None,
        )
        assert asm.errors == []

    def test_everything_in_one_delta(self):
        call = ToolCallAssembler().feed(RawToolDelta(
            0, id="c", name_delta="get_token_price", args_delta='{"symbol": "ETH"}', done=True,
        ))
        assert call.arguments == {"symbol": "ETH"}

    def test_interleaved_calls(self):
        asm = ToolCallAssembler()
        symbols = ["ETH", "SOL", "BTC"]
        calls = _feed_all(
            asm,
            *[RawToolDelta(i, id=f"c{i}", name_delta="get_token_price") for i in range(3)],
            *[RawToolDelta(i, args_delta=json.dumps({"symbol": s})) for i, s in enumerate(symbols)],
            *[RawToolDelta(i, done=True) for i in (2, 0, 1)],
        )
        assert [(c.id, c.arguments["symbol"]) for c in calls] == [
            ("c2", "BTC"), ("c0", "ETH"), ("c1", "SOL"),
        ]

    def test_missing_or_empty_arguments_mean_empty_object(self):
        asm = ToolCallAssembler()
        assert asm.feed(RawToolDelta(0, id="a", name_delta="ping", done=True)).arguments == {}
        asm.feed(RawToolDelta(1, id="b", name_delta="ping", args_delta=""))
        assert asm.feed(RawToolDelta(1, done=True)).arguments == {}

    def test_first_id_wins_and_index_fallback(self):
        asm = ToolCallAssembler()
        asm.feed(RawToolDelta(0, id="first", name_delta="t"))
        assert asm.feed(RawToolDelta(0, id="second", args_delta="{}", done=True)).id == "first"
        assert asm.feed(RawToolDelta(7, name_delta="t", done=True)).id == "call_7"

    def test_name_is_stripped(self):
        asm = ToolCallAssembler()
        asm.feed(RawToolDelta(0, id="ws", name_delta="  get_token"))
        assert asm.feed(RawToolDelta(0, name_delta="_price \n", done=True)).name == "get_token_price"


class TestParseErrors:
    def test_invalid_json_is_reported_on_the_call(self):
        asm = ToolCallAssembler()
        calls = _feed_all(
            asm,
            RawToolDelta(0, id="bad", name_delta="get_trending_collections"),
            RawToolDelta(0, args_delta='{"timeframe": INVALID'),
            RawToolDelta(0, done=True),
        )
        assert calls[0].id == "bad"
        assert calls[0].arguments == {}
        assert calls[0].parse_error.startswith("Invalid JSON arguments")
        assert asm.errors[0].startswith("tool_call_json_parse_failed idx=0")

    def test_non_object_arguments(self):
        asm = ToolCallAssembler()
        call = asm.feed(RawToolDelta(0, id="arr", name_delta="t", args_delta="[1, 2]", done=True))
        assert call.parse_error == "Tool arguments must be a JSON object"
        assert asm.errors == ["tool_call_args_not_object idx=0"]

    def test_bad_call_does_not_affect_the_next(self):
        asm = ToolCallAssembler()
        bad = asm.feed(RawToolDelta(0, id="bad", name_delta="x", args_delta="{", done=True))
        good = asm.feed(RawToolDelta(1, id="ok", name_delta="y", args_delta='{"a": 1}', done=True))
        assert bad.parse_error
        assert good.parse_error is None
        assert good.arguments == {"a": 1}


class TestPending:
    def test_unknown_until_name_arrives(self):
        asm = ToolCallAssembler()
        asm.feed(RawToolDelta(0, id="c0"))
        assert asm.pending(0) is None
        assert asm.pending(3) is None

        asm.feed(RawToolDelta(0, name_delta="get_token_price"))
        assert asm.pending(0) == ("c0", "get_token_price")

    def test_id_fallback(self):
        asm = ToolCallAssembler()
        asm.feed(RawToolDelta(2, name_delta="get_token_price"))
        assert asm.pending(2) == ("call_2", "get_token_price")

    def test_closed_call_is_no_longer_pending(self):
        asm = ToolCallAssembler()
        asm.feed(RawToolDelta(0, id="c0", name_delta="x", args_delta="{}"))
        asm.feed(RawToolDelta(0, done=True))
        assert asm.pending(0) is None


class TestFlushAndReset:
    def test_flush_closes_open_calls_in_index_order(self):
        asm = ToolCallAssembler()
        asm.feed(RawToolDelta(1, id="b", name_delta="beta", args_delta='{"v": 2}'))
        asm.feed(RawToolDelta(0, id="a", name_delta="alpha", args_delta='{"v": 1}'))

        calls = asm.flush()
        assert [(c.name, c.arguments) for c in calls] == [("alpha", {"v": 1}), ("beta", {"v": 2})]
        assert asm.flush() == []

    def test_flush_indexed_pairs_calls_with_their_index(self):
        asm = ToolCallAssembler()
        asm.feed(RawToolDelta(3, id="same", name_delta="t", args_delta="{}"))
        asm.feed(RawToolDelta(1, id="same", name_delta="t", args_delta="{}"))
        assert [(i, c.id) for i, c in asm.flush_indexed()] == [(1, "same"), (3, "same")]

    def test_flush_reports_bad_json(self):
        asm = ToolCallAssembler()
        asm.feed(RawToolDelta(0, id="f", name_delta="bad", args_delta="NOPE"))
        [call] = asm.flush()
        assert call.parse_error
        assert len(asm.errors) == 1

    def test_reset(self):
        asm = ToolCallAssembler()
        asm.feed(RawToolDelta(0, id="x", name_delta="left_over"))
        asm.feed(RawToolDelta(1, id="y", name_delta="bad", args_delta="{", done=True))
        asm.reset()
        assert asm.errors == []
        assert asm.flush() == []
