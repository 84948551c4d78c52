from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from customllm.tools.loader import load_external_tools
from customllm.tools.registry import ToolRegistry


def test_loads_tools_from_python_file(tmp_path: Path) -> None:
    module = tmp_path / "extra_tools.py"
    module.write_text(
        "def register(registry):\n"
        "    registry.register('shout', lambda args: args.get('text', '').upper())\n",
        encoding="utf-8",
    )
    registry = ToolRegistry()

    assert load_external_tools(registry, module) is True
    assert asyncio.run(registry.execute("shout", '{"text": "hey"}')) == {"output": "HEY"}


def test_default_file_in_working_directory(tmp_path: Path, monkeypatch) -> None:
    (tmp_path / "customllm_tools.py").write_text(
        "def register(registry):\n    registry.register('local_tool', lambda args: None)\n",
        encoding="utf-8",
    )
    monkeypatch.chdir(tmp_path)
    registry = ToolRegistry()

    assert load_external_tools(registry) is True
    assert registry.has("local_tool")


def test_missing_default_file_is_not_an_error(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)

    assert load_external_tools(ToolRegistry()) is False


def test_failures_are_logged_not_raised(tmp_path: Path, caplog) -> None:
    broken = tmp_path / "broken_tools.py"
    broken.write_text("raise RuntimeError('import failed')\n", encoding="utf-8")
    no_register = tmp_path / "plain_tools.py"
    no_register.write_text("VALUE = 1\n", encoding="utf-8")

    with caplog.at_level(logging.WARNING, logger="customllm.tools.loader"):
        assert load_external_tools(ToolRegistry(), broken) is False
        assert load_external_tools(ToolRegistry(), no_register) is False
        assert load_external_tools(ToolRegistry(), tmp_path / "absent.py") is False
        assert load_external_tools(ToolRegistry(), "customllm_no_such_module") is False

    assert len(caplog.records) == 4
