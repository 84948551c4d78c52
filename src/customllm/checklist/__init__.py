"""Shared checklist document and status vocabulary."""

from .status import CANONICAL_STATUSES, normalize_status
from .store import (
    DEFAULT_CHECKLIST,
    ChecklistItem,
    ChecklistSnapshot,
    ChecklistStore,
    ChecklistTemplate,
    ItemUpdate,
    QueueSink,
    SinkClosed,
)

__all__ = [
    "CANONICAL_STATUSES",
    "ChecklistItem",
    "ChecklistSnapshot",
    "ChecklistStore",
    "ChecklistTemplate",
    "DEFAULT_CHECKLIST",
    "ItemUpdate",
    "QueueSink",
    "SinkClosed",
    "normalize_status",
]
