from __future__ import annotations

import json
import time
import uuid
from dataclasses import dataclass, field
from typing import Any

from customllm.backends.sse import DONE_SENTINEL

INTERNAL_ERROR_MESSAGE = "An internal error occurred while generating a response."


def format_sse(data: str) -> str:
    return f"data: {data}\n\n"


def encode_chunk(chunk: dict[str, Any]) -> str:
    return format_sse(json.dumps(chunk, ensure_ascii=False, default=str))


def done_frame() -> str:
    return format_sse(DONE_SENTINEL)


@dataclass(slots=True)
class ChunkFactory:
    """Builds outbound ``chat.completion.chunk`` frames for one request."""

    model: str
    id: str = field(default_factory=lambda: f"customllm-{uuid.uuid4().hex[:12]}")

    def base(self, delta: dict[str, Any] | None = None, finish_reason: str | None = None) -> dict[str, Any]:
        return {
            "id": self.id,
            "object": "chat.completion.chunk",
            "created": int(time.time()),
            "model": self.model,
            "choices": [{"index": 0, "delta": delta or {}, "finish_reason": finish_reason}],
        }

    def role(self, role: str = "assistant") -> dict[str, Any]:
        return self.base({"role": role})

    def content(self, text: str) -> dict[str, Any]:
        return self.base({"content": text})

    def audio(self, audio: dict[str, Any]) -> dict[str, Any]:
        return self.base({"audio": audio})

    def tool_calls(self, calls: list[dict[str, Any]]) -> dict[str, Any]:
        return self.base({"tool_calls": calls}, finish_reason="tool_calls")

    def stop(self) -> dict[str, Any]:
        return self.base(finish_reason="stop")

    def error(self, message: str = INTERNAL_ERROR_MESSAGE) -> dict[str, Any]:
        return self.base({"role": "assistant", "content": message}, finish_reason="stop")
