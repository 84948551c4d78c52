from __future__ import annotations

from customllm.backends.deltas import (
    ContentDelta,
    FinishDelta,
    MessageAccumulator,
    RoleDelta,
    ToolCallDelta,
    parse_chunk,
)


def _chunk(delta: dict, finish_reason: str | None = None) -> dict:
    return {"choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}]}


def test_parse_chunk_produces_tagged_deltas() -> None:
    deltas = parse_chunk(_chunk({"role": "assistant", "content": "Hi"}, "stop"))

    assert deltas == [RoleDelta("assistant"), ContentDelta("Hi"), FinishDelta("stop")]


def test_parse_chunk_ignores_frames_without_choices() -> None:
    assert parse_chunk({"id": "x"}) == []
    assert parse_chunk({"choices": []}) == []


def test_content_fragments_reassemble() -> None:
    accumulator = MessageAccumulator()
    for piece in ["Hel", "lo, ", "world"]:
        accumulator.feed(_chunk({"content": piece}))

    message = accumulator.finalize()

    assert message.content == "Hello, world"
    assert message.finish_reason == "stop"
    assert message.tool_calls == []


def test_list_content_parts_are_flattened() -> None:
    accumulator = MessageAccumulator()
    accumulator.feed(_chunk({"content": [{"type": "text", "text": "part one"}, " and two"]}))

    assert accumulator.finalize().content == "part one and two"


def test_tool_call_fragments_merge_by_index() -> None:
    accumulator = MessageAccumulator()
    accumulator.feed(
        _chunk(
            {
                "tool_calls": [
                    {
                        "index": 0,
                        "id": "call_a",
                        "type": "function",
                        "function": {"name": "update_checklist", "arguments": '{"item_id": '},
                    }
                ]
            }
        )
    )
    accumulator.feed(_chunk({"tool_calls": [{"index": 0, "function": {"name": "_item_status"}}]}))
    accumulator.feed(_chunk({"tool_calls": [{"index": 0, "function": {"arguments": '"item-1"}'}}]}))
    accumulator.feed(
        _chunk({"tool_calls": [{"index": 1, "function": {"name": "ping", "arguments": "{}"}}]})
    )
    accumulator.feed(_chunk({}, "tool_calls"))

    message = accumulator.finalize()

    assert message.finish_reason == "tool_calls"
    assert [call.name for call in message.tool_calls] == ["update_checklist_item_status", "ping"]
    assert message.tool_calls[0].id == "call_a"
    assert message.tool_calls[0].arguments == '{"item_id": "item-1"}'
    assert message.tool_calls[1].id.startswith("call_")


def test_tool_call_without_index_appends() -> None:
    accumulator = MessageAccumulator()
    accumulator.apply(ToolCallDelta(index=None, id="c1", name="ping"))
    accumulator.apply(ToolCallDelta(index=None, id="c2", name="echo"))

    assert [call.id for call in accumulator.finalize().tool_calls] == ["c1", "c2"]


def test_audio_is_shallow_merged() -> None:
    accumulator = MessageAccumulator()
    accumulator.feed(_chunk({"audio": {"id": "aud-1", "data": "AAA"}}))
    accumulator.feed(_chunk({"audio": {"transcript": "hello"}}))

    assert accumulator.finalize().audio == {"id": "aud-1", "data": "AAA", "transcript": "hello"}
