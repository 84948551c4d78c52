from __future__ import annotations

from typing import Any

PENDING = "pending"
COMPLETE = "complete"
FAIL = "fail"
WARNING = "warning"

CANONICAL_STATUSES = (PENDING, COMPLETE, FAIL, WARNING)

_STATUS_ALIASES = {
    "pass": COMPLETE,
    "passed": COMPLETE,
    "completed": COMPLETE,
    "done": COMPLETE,
    "finished": COMPLETE,
    "resolved": COMPLETE,
    "yes": COMPLETE,
    "y": COMPLETE,
    "affirmative": COMPLETE,
    "ok": COMPLETE,
    "okay": COMPLETE,
    "good": COMPLETE,
    "success": COMPLETE,
    "successful": COMPLETE,
    "no": PENDING,
    "not yet": PENDING,
    "notyet": PENDING,
    "incomplete": PENDING,
    "todo": PENDING,
    "to-do": PENDING,
    "caution": WARNING,
    "attention": WARNING,
    "failed": FAIL,
    "issue": FAIL,
    "problem": FAIL,
}


def normalize_status(value: Any) -> str | None:
    """Map a free-form status onto one of the canonical checklist statuses.

    Returns ``None`` when the value cannot be recognised.
    """
    if value is None:
        return None
    normalized = str(value).strip().lower()
    if not normalized:
        return None
    if normalized in CANONICAL_STATUSES:
        return normalized
    alias = _STATUS_ALIASES.get(normalized)
    if alias is not None:
        return alias
    if normalized.startswith("complete"):
        return COMPLETE
    if normalized.startswith("fail"):
        return FAIL
    if "warn" in normalized:
        return WARNING
    if "pend" in normalized:
        return PENDING
    return None
