from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any, Union

from customllm.core.types import AssistantMessage, ToolCall


@dataclass(frozen=True, slots=True)
class RoleDelta:
    role: str


@dataclass(frozen=True, slots=True)
class ContentDelta:
    text: str


@dataclass(frozen=True, slots=True)
class ToolCallDelta:
    index: int | None = None
    id: str | None = None
    type: str | None = None
    name: str | None = None
    arguments: str | None = None


@dataclass(frozen=True, slots=True)
class AudioDelta:
    audio: dict[str, Any]


@dataclass(frozen=True, slots=True)
class FinishDelta:
    reason: str


Delta = Union[RoleDelta, ContentDelta, ToolCallDelta, AudioDelta, FinishDelta]


def flatten_content(content: Any) -> str:
    """Turn a content delta (string or list of parts) into plain text."""
    if content is None:
        return ""
    pieces = content if isinstance(content, list) else [content]
    text: list[str] = []
    for piece in pieces:
        if not piece:
            continue
        if isinstance(piece, str):
            text.append(piece)
            continue
        if isinstance(piece, dict):
            for key in ("text", "content", "value"):
                value = piece.get(key)
                if isinstance(value, str):
                    text.append(value)
                    break
    return "".join(text)


def _tool_call_delta(raw: dict[str, Any]) -> ToolCallDelta:
    index = raw.get("index")
    if not isinstance(index, int) or isinstance(index, bool) or index < 0:
        index = None
    function = raw.get("function")
    if not isinstance(function, dict):
        function = {}
    name = function.get("name")
    arguments = function.get("arguments")
    return ToolCallDelta(
        index=index,
        id=raw.get("id") if isinstance(raw.get("id"), str) else None,
        type=raw.get("type") if isinstance(raw.get("type"), str) else None,
        name=name if isinstance(name, str) else None,
        arguments=arguments if isinstance(arguments, str) else None,
    )


def parse_chunk(chunk: dict[str, Any]) -> list[Delta]:
    """Split one ``chat.completion.chunk`` frame into typed deltas."""
    choices = chunk.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return []
    choice = choices[0]
    delta = choice.get("delta")
    if not isinstance(delta, dict):
        delta = {}

    deltas: list[Delta] = []
    role = delta.get("role")
    if isinstance(role, str) and role:
        deltas.append(RoleDelta(role))
    if delta.get("content") is not None:
        text = flatten_content(delta["content"])
        if text:
            deltas.append(ContentDelta(text))
    tool_calls = delta.get("tool_calls")
    if isinstance(tool_calls, list):
        deltas.extend(_tool_call_delta(item) for item in tool_calls if isinstance(item, dict))
    audio = delta.get("audio")
    if isinstance(audio, dict) and audio:
        deltas.append(AudioDelta(audio))
    finish_reason = choice.get("finish_reason")
    if isinstance(finish_reason, str) and finish_reason:
        deltas.append(FinishDelta(finish_reason))
    return deltas


@dataclass(slots=True)
class _PartialToolCall:
    id: str | None = None
    type: str = "function"
    name: str = ""
    arguments: str = ""


@dataclass(slots=True)
class MessageAccumulator:
    role: str = "assistant"
    content_parts: list[str] = field(default_factory=list)
    tool_calls: dict[int, _PartialToolCall] = field(default_factory=dict)
    audio: dict[str, Any] | None = None
    finish_reason: str | None = None

    @property
    def content(self) -> str:
        return "".join(self.content_parts)

    def feed(self, chunk: dict[str, Any]) -> list[Delta]:
        deltas = parse_chunk(chunk)
        for delta in deltas:
            self.apply(delta)
        return deltas

    def apply(self, delta: Delta) -> None:
        if isinstance(delta, RoleDelta):
            self.role = delta.role
        elif isinstance(delta, ContentDelta):
            self.content_parts.append(delta.text)
        elif isinstance(delta, ToolCallDelta):
            self._merge_tool_call(delta)
        elif isinstance(delta, AudioDelta):
            self.audio = {**(self.audio or {}), **delta.audio}
        elif isinstance(delta, FinishDelta):
            self.finish_reason = delta.reason

    def _merge_tool_call(self, delta: ToolCallDelta) -> None:
        index = delta.index
        if index is None:
            index = max(self.tool_calls) + 1 if self.tool_calls else 0
        target = self.tool_calls.setdefault(index, _PartialToolCall())
        if delta.id:
            target.id = delta.id
        if delta.type:
            target.type = delta.type
        if delta.name:
            target.name += delta.name
        if delta.arguments:
            target.arguments += delta.arguments

    def finalize(self) -> AssistantMessage:
        calls = [
            ToolCall(
                id=partial.id or f"call_{uuid.uuid4().hex[:24]}",
                name=partial.name,
                arguments=partial.arguments,
                type=partial.type or "function",
            )
            for _index, partial in sorted(self.tool_calls.items())
        ]
        return AssistantMessage(
            role=self.role,
            content=self.content,
            tool_calls=calls,
            audio=dict(self.audio) if self.audio else None,
            finish_reason=self.finish_reason or "stop",
        )
