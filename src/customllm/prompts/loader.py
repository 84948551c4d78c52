from __future__ import annotations

from importlib import resources
from typing import Iterable

_PROMPT_CACHE: dict[str, str] = {}


def load_prompt(rel_path: str) -> str:
    if rel_path in _PROMPT_CACHE:
        return _PROMPT_CACHE[rel_path]
    content = resources.files(__package__).joinpath(rel_path).read_text(encoding="utf-8")
    _PROMPT_CACHE[rel_path] = content
    return content


def checklist_instruction(questions: Iterable[str]) -> str:
    sequence = "\n   ".join(
        f"{index}) {question}" for index, question in enumerate(questions, start=1)
    )
    template = load_prompt("system/checklist_instruction.txt").strip()
    return template.replace("{checklist_sequence}", sequence)
