from __future__ import annotations

import json

from customllm.tools.results import ToolResult


def test_tool_message_carries_json_payload() -> None:
    result = ToolResult(id="call-9", tool="echo", payload={"text": "ünïcode"})

    message = result.to_tool_message()

    assert message["role"] == "tool"
    assert message["tool_call_id"] == "call-9"
    assert json.loads(message["content"]) == {"text": "ünïcode"}
    assert result.ok is True
    assert result.error is None


def test_tool_message_falls_back_to_tool_name_for_id() -> None:
    result = ToolResult(id="", tool="ping", payload={"error": "nope"})

    assert result.to_tool_message()["tool_call_id"] == "ping"
    assert result.ok is False
    assert result.error == "nope"
