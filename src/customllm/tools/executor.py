from __future__ import annotations

import time

from customllm.core.tracing import TraceEvent, TraceWriter
from customllm.core.types import ToolCall
from customllm.tools.registry import ToolRegistry
from customllm.tools.results import ToolResult


class ToolExecutor:
    def __init__(self, registry: ToolRegistry) -> None:
        self._registry = registry

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    async def execute_call(
        self, call: ToolCall, tracer: TraceWriter | None = None
    ) -> ToolResult:
        if tracer is not None:
            tracer.write(
                TraceEvent(
                    ts=time.time(),
                    kind="tool_start",
                    data={"id": call.id, "tool": call.name, "arguments": call.arguments},
                )
            )
        start = time.monotonic()
        payload = await self._registry.execute(call.name, call.arguments)
        duration_ms = (time.monotonic() - start) * 1000
        result = ToolResult(id=call.id, tool=call.name, payload=payload, duration_ms=duration_ms)
        if tracer is not None:
            tracer.write(
                TraceEvent(
                    ts=time.time(),
                    kind="tool_done",
                    data={
                        "id": call.id,
                        "tool": call.name,
                        "ok": result.ok,
                        "error": result.error,
                        "duration_ms": round(duration_ms, 3),
                    },
                )
            )
        return result

    async def execute_calls(
        self, calls: list[ToolCall], tracer: TraceWriter | None = None
    ) -> list[ToolResult]:
        # sequential: later calls may depend on checklist state set by earlier ones
        results: list[ToolResult] = []
        for call in calls:
            results.append(await self.execute_call(call, tracer))
        return results

    def list_tools(self) -> list[str]:
        return [spec.name for spec in self._registry.list_tools()]
