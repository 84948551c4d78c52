from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, List


@dataclass(slots=True)
class ToolCall:
    id: str
    name: str
    arguments: str = ""
    type: str = "function"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "function": {"name": self.name, "arguments": self.arguments},
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "ToolCall":
        function = payload.get("function")
        if not isinstance(function, dict):
            function = {}
        name = function.get("name")
        arguments = function.get("arguments")
        if isinstance(arguments, (dict, list)):
            arguments = json.dumps(arguments)
        return cls(
            id=str(payload.get("id") or ""),
            name=name if isinstance(name, str) else "",
            arguments=arguments if isinstance(arguments, str) else "",
            type=payload.get("type") or "function",
        )


@dataclass(slots=True)
class AssistantMessage:
    role: str = "assistant"
    content: str | list[Any] | None = ""
    tool_calls: List[ToolCall] = field(default_factory=list)
    audio: dict[str, Any] | None = None
    finish_reason: str = "stop"

    @classmethod
    def from_payload(cls, payload: dict[str, Any], finish_reason: str | None = None) -> "AssistantMessage":
        raw_calls = payload.get("tool_calls")
        tool_calls = [
            ToolCall.from_dict(item)
            for item in raw_calls or []
            if isinstance(item, dict)
        ]
        audio = payload.get("audio")
        return cls(
            role=payload.get("role") or "assistant",
            content=payload.get("content"),
            tool_calls=tool_calls,
            audio=audio if isinstance(audio, dict) else None,
            finish_reason=finish_reason or "stop",
        )


def content_text(content: Any) -> str:
    """Flatten string or structured message content into plain text."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and isinstance(part.get("text"), str):
                parts.append(part["text"])
        return " ".join(part for part in parts if part)
    if isinstance(content, dict) and isinstance(content.get("text"), str):
        return content["text"]
    return ""
