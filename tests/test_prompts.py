from __future__ import annotations

from customllm.prompts import checklist_instruction, load_prompt


def test_load_prompt_reads_instruction_file() -> None:
    content = load_prompt("system/checklist_instruction.txt")

    assert "update_checklist_item_status" in content
    assert "{checklist_sequence}" in content


def test_checklist_instruction_lists_questions_in_order() -> None:
    text = checklist_instruction(["First question.", "Second question."])

    assert "{checklist_sequence}" not in text
    assert "1) First question.\n   2) Second question." in text
