from __future__ import annotations

import asyncio

import pytest

from customllm.tools.registry import InvalidHandler, InvalidToolName, ToolRegistry, wrap_result


def test_tool_registry_register_and_lookup() -> None:
    registry = ToolRegistry(include_builtins=False)

    def handler(args: dict[str, str]) -> dict[str, str]:
        return args

    registry.register("  lookup_order ", handler)

    spec = registry.get("lookup_order")
    assert spec is not None
    assert spec.name == "lookup_order"
    assert spec.handler is handler
    assert spec.description == 'Tool "lookup_order"'
    assert [tool.name for tool in registry.list_tools()] == ["lookup_order"]


def test_builtins_are_registered_by_default() -> None:
    registry = ToolRegistry()

    assert registry.has("ping")
    assert registry.has("echo")
    definitions = registry.list_definitions()
    assert [item["function"]["name"] for item in definitions] == ["ping", "echo"]
    assert all(item["type"] == "function" for item in definitions)


def test_register_rejects_bad_name_and_handler() -> None:
    registry = ToolRegistry(include_builtins=False)

    with pytest.raises(InvalidToolName):
        registry.register("   ", lambda args: args)
    with pytest.raises(InvalidHandler):
        registry.register("broken", "not callable")  # type: ignore[arg-type]


def test_reregistration_overwrites_definition() -> None:
    registry = ToolRegistry(include_builtins=False)
    registry.register("lookup", lambda args: "first", description="First")
    registry.register("lookup", lambda args: "second", description="Second", strict=True)

    definitions = registry.list_definitions()
    assert len(definitions) == 1
    assert definitions[0]["function"]["description"] == "Second"
    assert definitions[0]["function"]["strict"] is True
    assert asyncio.run(registry.execute("lookup", "{}")) == {"output": "second"}


def test_execute_unknown_tool_returns_error() -> None:
    registry = ToolRegistry()

    result = asyncio.run(registry.execute("missing_tool", "{}"))

    assert result == {"error": "no handler for missing_tool"}


def test_execute_reports_argument_parse_errors() -> None:
    registry = ToolRegistry()

    result = asyncio.run(registry.execute("echo", "{not json"))

    assert "Failed to parse arguments" in result["error"]
    assert result["details"]


def test_execute_reports_handler_failures() -> None:
    registry = ToolRegistry(include_builtins=False)

    def explode(_args):
        raise RuntimeError("boom")

    registry.register("explode", explode)

    result = asyncio.run(registry.execute("explode", ""))

    assert result == {"error": 'Tool "explode" execution failed.', "details": "boom"}


def test_execute_supports_async_handlers_and_builtins() -> None:
    registry = ToolRegistry()

    echoed = asyncio.run(registry.execute("echo", '{"payload": {"a": 1}}'))
    pinged = asyncio.run(registry.execute("ping", None))

    assert echoed == {"payload": {"a": 1}}
    assert pinged["status"] == "ok"
    assert isinstance(pinged["timestamp"], int)


def test_wrap_result_shapes() -> None:
    assert wrap_result(None) == {"output": None}
    assert wrap_result("text") == {"output": "text"}
    assert wrap_result(b"hi") == {"output": "aGk=", "encoding": "base64"}
    assert wrap_result({"ok": True}) == {"ok": True}
    assert wrap_result([1, 2]) == {"output": [1, 2]}
