from __future__ import annotations

from pathlib import Path

from customllm.checklist.store import ChecklistStore
from customllm.tools.checklist_tools import (
    RESET_DESCRIPTION,
    RESET_TOOL,
    UPDATE_ITEM_DESCRIPTION,
    UPDATE_ITEM_PARAMETERS,
    UPDATE_ITEM_TOOL,
    reset_handler,
    update_item_handler,
)
from customllm.tools.executor import ToolExecutor
from customllm.tools.loader import load_external_tools
from customllm.tools.registry import InvalidHandler, InvalidToolName, ToolRegistry, ToolSpec
from customllm.tools.results import ToolResult


def build_default_registry(
    store: ChecklistStore,
    tools_module: str | Path | None = None,
) -> tuple[ToolRegistry, ToolExecutor]:
    registry = ToolRegistry()
    registry.register(
        UPDATE_ITEM_TOOL,
        update_item_handler(store),
        description=UPDATE_ITEM_DESCRIPTION,
        parameters=UPDATE_ITEM_PARAMETERS,
    )
    registry.register(RESET_TOOL, reset_handler(store), description=RESET_DESCRIPTION)
    load_external_tools(registry, tools_module)
    executor = ToolExecutor(registry)
    return registry, executor


__all__ = [
    "InvalidHandler",
    "InvalidToolName",
    "RESET_TOOL",
    "ToolExecutor",
    "ToolRegistry",
    "ToolResult",
    "ToolSpec",
    "UPDATE_ITEM_TOOL",
    "build_default_registry",
    "load_external_tools",
]
