from __future__ import annotations

import asyncio
import json
from pathlib import Path

from customllm.checklist.store import ChecklistStore
from customllm.core.tracing import TraceWriter
from customllm.core.types import ToolCall
from customllm.tools import UPDATE_ITEM_TOOL, build_default_registry


def test_executor_unknown_tool_returns_error() -> None:
    _registry, executor = build_default_registry(ChecklistStore())
    call = ToolCall(id="t1", name="fs.delete_tree", arguments="{}")

    result = asyncio.run(executor.execute_call(call))

    assert result.ok is False
    assert result.error == "no handler for fs.delete_tree"


def test_executor_updates_checklist_and_traces(tmp_path: Path) -> None:
    store = ChecklistStore()
    _registry, executor = build_default_registry(store)
    tracer = TraceWriter("session-1", base_dir=tmp_path, run_id="req-1")
    call = ToolCall(
        id="call-1",
        name=UPDATE_ITEM_TOOL,
        arguments=json.dumps({"item_id": "item-2", "status": "pass", "note": "Token server live"}),
    )

    result = asyncio.run(executor.execute_call(call, tracer))

    assert result.ok is True
    assert result.payload["newStatus"] == "complete"
    assert result.payload["previousStatus"] == "pending"
    assert store.items()[1].status == "complete"
    assert store.items()[1].recommendation == "Token server live"
    kinds = [
        json.loads(line)["kind"]
        for line in tracer.path.read_text(encoding="utf-8").splitlines()
    ]
    assert kinds == ["tool_start", "tool_done"]


def test_executor_runs_calls_in_order() -> None:
    store = ChecklistStore()
    _registry, executor = build_default_registry(store)
    calls = [
        ToolCall(id="a", name=UPDATE_ITEM_TOOL, arguments='{"item_number": 1, "status": "fail"}'),
        ToolCall(id="b", name=UPDATE_ITEM_TOOL, arguments='{"item_number": 1, "status": "complete"}'),
    ]

    results = asyncio.run(executor.execute_calls(calls))

    assert [result.id for result in results] == ["a", "b"]
    assert results[1].payload["previousStatus"] == "fail"
    assert store.items()[0].status == "complete"


def test_registry_includes_checklist_tools() -> None:
    _registry, executor = build_default_registry(ChecklistStore())

    assert executor.list_tools() == ["ping", "echo", UPDATE_ITEM_TOOL, "reset_checklist"]
