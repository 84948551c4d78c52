"""Per-session conversation memory."""

from .session import (
    DEFAULT_SESSION_ID,
    MemoryEntry,
    SessionMemory,
    SessionMemoryStore,
    dedupe_key,
    normalize_session_id,
)

__all__ = [
    "DEFAULT_SESSION_ID",
    "MemoryEntry",
    "SessionMemory",
    "SessionMemoryStore",
    "dedupe_key",
    "normalize_session_id",
]
