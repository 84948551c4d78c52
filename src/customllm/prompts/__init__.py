from .loader import checklist_instruction, load_prompt

__all__ = ["checklist_instruction", "load_prompt"]
