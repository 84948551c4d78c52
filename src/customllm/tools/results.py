from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any


@dataclass(slots=True)
class ToolResult:
    id: str
    tool: str
    payload: dict[str, Any]
    duration_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return "error" not in self.payload

    @property
    def error(self) -> str | None:
        error = self.payload.get("error")
        return str(error) if error is not None else None

    def to_tool_message(self) -> dict[str, Any]:
        return {
            "role": "tool",
            "tool_call_id": self.id or self.tool or "tool",
            "content": json.dumps(self.payload, ensure_ascii=False, default=str),
        }
