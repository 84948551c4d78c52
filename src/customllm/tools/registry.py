from __future__ import annotations

import base64
import inspect
import json
from dataclasses import dataclass, field
from typing import Any, Callable

from customllm.tools.builtin import ECHO_PARAMETERS, PING_PARAMETERS, echo_handler, ping_handler

ToolHandler = Callable[..., Any]

DEFAULT_PARAMETERS: dict[str, Any] = {
    "type": "object",
    "properties": {},
    "additionalProperties": True,
}


class InvalidToolName(ValueError):
    pass


class InvalidHandler(TypeError):
    pass


@dataclass(slots=True)
class ToolSpec:
    name: str
    handler: ToolHandler
    description: str = ""
    parameters: dict[str, Any] = field(default_factory=lambda: dict(DEFAULT_PARAMETERS))
    strict: bool | None = None

    def definition(self) -> dict[str, Any]:
        function: dict[str, Any] = {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }
        if self.strict is not None:
            function["strict"] = self.strict
        return {"type": "function", "function": function}


class ToolRegistry:
    def __init__(self, *, include_builtins: bool = True) -> None:
        self._tools: dict[str, ToolSpec] = {}
        if include_builtins:
            self._register_builtins()

    def _register_builtins(self) -> None:
        self.register(
            "ping",
            ping_handler(),
            description=(
                "Health check utility. Returns status ok and the current timestamp "
                "to confirm tool execution."
            ),
            parameters=PING_PARAMETERS,
        )
        self.register(
            "echo",
            echo_handler(),
            description=(
                "Returns the provided arguments unchanged. Useful for debugging tool "
                "invocation payloads."
            ),
            parameters=ECHO_PARAMETERS,
        )

    def register(
        self,
        name: str,
        handler: ToolHandler,
        *,
        description: str | None = None,
        parameters: dict[str, Any] | None = None,
        strict: bool | None = None,
    ) -> ToolSpec:
        if not isinstance(name, str) or not name.strip():
            raise InvalidToolName("Tool name must be a non-empty string")
        tool_name = name.strip()
        if not callable(handler):
            raise InvalidHandler(f'Handler for tool "{tool_name}" must be callable')
        spec = ToolSpec(
            name=tool_name,
            handler=handler,
            description=(
                description.strip()
                if isinstance(description, str) and description.strip()
                else f'Tool "{tool_name}"'
            ),
            parameters=parameters if isinstance(parameters, dict) else dict(DEFAULT_PARAMETERS),
            strict=bool(strict) if strict is not None else None,
        )
        # dict assignment keeps the original insertion slot on overwrite
        self._tools[tool_name] = spec
        return spec

    def get(self, name: str) -> ToolSpec | None:
        return self._tools.get(name)

    def has(self, name: str) -> bool:
        return name in self._tools

    def list_tools(self) -> list[ToolSpec]:
        return list(self._tools.values())

    def list_definitions(self) -> list[dict[str, Any]]:
        return [spec.definition() for spec in self._tools.values()]

    async def execute(self, name: str, raw_arguments: Any = None) -> dict[str, Any]:
        """Run a registered tool and return a JSON-ready result payload.

        Lookup, argument and handler failures are reported as ``{"error": ...}``
        payloads instead of exceptions so the model can recover from them.
        """
        if not name:
            return {"error": "Tool call is missing function name."}
        spec = self._tools.get(name)
        if spec is None:
            return {"error": f"no handler for {name}"}

        try:
            args = _parse_arguments(raw_arguments)
        except (TypeError, ValueError) as exc:
            return {
                "error": f'Failed to parse arguments for tool "{name}".',
                "details": str(exc),
            }

        try:
            result = spec.handler(args)
            if inspect.isawaitable(result):
                result = await result
        except Exception as exc:  # noqa: BLE001
            return {
                "error": f'Tool "{name}" execution failed.',
                "details": str(exc),
            }
        return wrap_result(result)


def _parse_arguments(raw: Any) -> dict[str, Any]:
    if raw is None:
        return {}
    if isinstance(raw, dict):
        return raw
    if not isinstance(raw, str):
        raise TypeError(f"arguments must be a JSON string, got {type(raw).__name__}")
    if not raw.strip():
        return {}
    parsed = json.loads(raw)
    if not isinstance(parsed, dict):
        raise ValueError("arguments must decode to a JSON object")
    return parsed


def wrap_result(result: Any) -> dict[str, Any]:
    if result is None:
        return {"output": None}
    if isinstance(result, str):
        return {"output": result}
    if isinstance(result, (bytes, bytearray, memoryview)):
        encoded = base64.b64encode(bytes(result)).decode("ascii")
        return {"output": encoded, "encoding": "base64"}
    if isinstance(result, dict):
        return result
    return {"output": result}
