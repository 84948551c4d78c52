from __future__ import annotations

import copy
import inspect
import json
import os
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, List

from customllm.backends.deltas import MessageAccumulator
from customllm.backends.openai_chat import UpstreamError
from customllm.backends.registry import register_backend
from customllm.core.types import AssistantMessage


@dataclass(slots=True)
class FakeReply:
    content: str = ""
    tool_calls: List[dict[str, Any]] = field(default_factory=list)
    audio: dict[str, Any] | None = None
    fragments: List[str] | None = None

    @classmethod
    def coerce(cls, value: "FakeReply | dict[str, Any] | str") -> "FakeReply":
        if isinstance(value, FakeReply):
            return value
        if isinstance(value, str):
            return cls(content=value)
        if isinstance(value, dict):
            return cls(
                content=value.get("content") or "",
                tool_calls=list(value.get("tool_calls") or []),
                audio=value.get("audio"),
                fragments=value.get("fragments"),
            )
        raise TypeError("fake replies must be FakeReply, dict or str")

    def chunks(self) -> list[dict[str, Any]]:
        frames: list[dict[str, Any]] = [_chunk({"role": "assistant"})]
        for piece in self.fragments if self.fragments is not None else [self.content]:
            if piece:
                frames.append(_chunk({"content": piece}))
        for index, call in enumerate(self.tool_calls):
            function = call.get("function") or {}
            arguments = function.get("arguments") or ""
            if not isinstance(arguments, str):
                arguments = json.dumps(arguments)
            split = len(arguments) // 2
            frames.append(
                _chunk(
                    {
                        "tool_calls": [
                            {
                                "index": index,
                                "id": call.get("id"),
                                "type": "function",
                                "function": {"name": function.get("name", ""), "arguments": arguments[:split]},
                            }
                        ]
                    }
                )
            )
            frames.append(
                _chunk({"tool_calls": [{"index": index, "function": {"arguments": arguments[split:]}}]})
            )
        if self.audio:
            frames.append(_chunk({"audio": self.audio}))
        finish = _chunk({})
        finish["choices"][0]["finish_reason"] = "tool_calls" if self.tool_calls else "stop"
        frames.append(finish)
        return frames

    def message(self) -> AssistantMessage:
        payload: dict[str, Any] = {"role": "assistant", "content": self.content}
        if self.tool_calls:
            payload["tool_calls"] = copy.deepcopy(self.tool_calls)
        if self.audio:
            payload["audio"] = self.audio
        return AssistantMessage.from_payload(payload)


def _chunk(delta: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": "fake-chunk",
        "object": "chat.completion.chunk",
        "choices": [{"index": 0, "delta": delta, "finish_reason": None}],
    }


@dataclass(slots=True)
class FakeChatBackend:
    """Scripted stand-in for the upstream provider.

    Replies are consumed in order by both the streaming and the fallback path.
    ``stream_failures`` makes the next N streaming calls raise before any frame
    is produced, ``fail_completion`` makes the fallback raise as well.
    """

    replies: List[FakeReply] = field(default_factory=list)
    repeat_last: bool = False
    stream_failures: int = 0
    fail_completion: bool = False
    calls: List[dict[str, Any]] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.replies = [FakeReply.coerce(item) for item in self.replies]

    def extend_replies(self, replies: Iterable[FakeReply | dict[str, Any] | str]) -> None:
        self.replies.extend(FakeReply.coerce(item) for item in replies)

    def _next_reply(self) -> FakeReply:
        if not self.replies:
            return FakeReply()
        if self.repeat_last and len(self.replies) == 1:
            return self.replies[0]
        return self.replies.pop(0)

    async def stream_chat(
        self, payload: dict[str, Any], on_chunk: Callable[[dict[str, Any]], Any] | None = None
    ) -> AssistantMessage:
        self.calls.append({"mode": "stream", "payload": copy.deepcopy(payload)})
        if self.stream_failures > 0:
            self.stream_failures -= 1
            raise UpstreamError("fake stream failure")
        reply = self._next_reply()
        accumulator = MessageAccumulator()
        for chunk in reply.chunks():
            if on_chunk is not None:
                result = on_chunk(chunk)
                if inspect.isawaitable(result):
                    await result
            accumulator.feed(chunk)
        return accumulator.finalize()

    async def complete_chat(self, payload: dict[str, Any]) -> AssistantMessage:
        self.calls.append({"mode": "complete", "payload": copy.deepcopy(payload)})
        if self.fail_completion:
            raise UpstreamError("fake completion failure")
        return self._next_reply().message()


def _load_env_replies(env_value: str) -> list[FakeReply]:
    data = json.loads(env_value)
    if not isinstance(data, list):
        raise ValueError("fake replies must be a JSON list")
    return [FakeReply.coerce(item) for item in data]


def _factory(**_kwargs: Any) -> FakeChatBackend:
    backend = FakeChatBackend()
    replies_json = os.getenv("CUSTOM_LLM_FAKE_REPLIES")
    if replies_json:
        backend.replies = _load_env_replies(replies_json)
        backend.repeat_last = True
    return backend


register_backend("fake", _factory)
