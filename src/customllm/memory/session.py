from __future__ import annotations

import json
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Iterable

from customllm.checklist.status import PENDING, normalize_status
from customllm.checklist.store import ChecklistItem, ChecklistStore
from customllm.core.types import ToolCall, content_text
from customllm.tools.checklist_tools import RESET_TOOL, UPDATE_ITEM_TOOL

DEFAULT_SESSION_ID = "default-session"
_FALLBACK_KEY_CHARS = 80


@dataclass(slots=True)
class MemoryEntry:
    role: str
    content: Any
    turn_id: int
    timestamp: float | str
    metadata: dict[str, Any] | None = None
    tool_calls: list[dict[str, Any]] | None = None
    tool_call_id: str | None = None


@dataclass(slots=True)
class SessionMemory:
    session_id: str
    ledger: list[MemoryEntry] = field(default_factory=list)
    dedupe_keys: set[str] = field(default_factory=set)
    status_cache: dict[str, str] = field(default_factory=dict)
    recommendation_cache: dict[str, str] = field(default_factory=dict)
    last_asked_item_id: str | None = None
    turn_counter: int = 0
    last_updated_at: float = field(default_factory=time.time)
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)

    def has_assistant_turn(self) -> bool:
        return any(entry.role == "assistant" for entry in self.ledger)

    def describe(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "messages": len(self.ledger),
            "turn_counter": self.turn_counter,
            "last_asked_item_id": self.last_asked_item_id,
            "last_updated_at": self.last_updated_at,
            "statuses": dict(self.status_cache),
            "recommendations": dict(self.recommendation_cache),
        }


def normalize_session_id(session_id: Any) -> str:
    if isinstance(session_id, str) and session_id.strip():
        return session_id.strip()
    return DEFAULT_SESSION_ID


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def dedupe_key(message: dict[str, Any]) -> str:
    role = message.get("role") or "unknown"
    metadata = message.get("metadata")
    if isinstance(metadata, dict):
        for key in ("message_id", "id"):
            value = metadata.get(key)
            if isinstance(value, str) and value.strip():
                return f"id:{value.strip()}"
    explicit_id = message.get("id")
    if isinstance(explicit_id, str) and explicit_id.strip():
        return f"id:{explicit_id.strip()}"
    turn_id = message.get("turn_id")
    if _is_number(turn_id):
        return f"turn:{turn_id}:{role}"
    tool_call_id = message.get("tool_call_id")
    if role == "tool" and isinstance(tool_call_id, str) and tool_call_id:
        return f"tool:{tool_call_id}"
    tool_calls = message.get("tool_calls")
    if isinstance(tool_calls, list) and tool_calls:
        ids = [
            str(call.get("id") or "")
            for call in tool_calls
            if isinstance(call, dict)
        ]
        if any(ids):
            return f"calls:{','.join(ids)}"
    text = content_text(message.get("content"))
    return f"text:{role}:{text[:_FALLBACK_KEY_CHARS]}"


def _first(*values: Any) -> Any:
    for value in values:
        if value is not None:
            return value
    return None


def _parse_json_object(value: Any) -> dict[str, Any]:
    if isinstance(value, dict):
        return value
    if not isinstance(value, str) or not value.strip():
        return {}
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError:
        return {}
    return parsed if isinstance(parsed, dict) else {}


class SessionMemoryStore:
    """Per-session conversation ledger plus a cached view of the checklist.

    Sessions are created on first use and live until ``clear``/``clear_all``.
    Every operation on one session runs under that session's lock.
    """

    def __init__(self, checklist: ChecklistStore) -> None:
        self._checklist = checklist
        self._sessions: dict[str, SessionMemory] = {}
        self._lock = threading.Lock()
        checklist.add_reset_hook(self.invalidate_caches)

    @property
    def checklist(self) -> ChecklistStore:
        return self._checklist

    def _pending_statuses(self) -> dict[str, str]:
        return {item.id: PENDING for item in self._checklist.items()}

    def get(self, session_id: Any = None) -> SessionMemory:
        key = normalize_session_id(session_id)
        with self._lock:
            memory = self._sessions.get(key)
            if memory is None:
                memory = SessionMemory(session_id=key, status_cache=self._pending_statuses())
                self._sessions[key] = memory
            return memory

    def peek(self, session_id: Any) -> SessionMemory | None:
        with self._lock:
            return self._sessions.get(normalize_session_id(session_id))

    def list_sessions(self) -> list[SessionMemory]:
        with self._lock:
            return list(self._sessions.values())

    def append_messages(self, session_id: Any, messages: Iterable[dict[str, Any]]) -> int:
        memory = self.get(session_id)
        appended = 0
        with memory.lock:
            for message in messages:
                if not isinstance(message, dict):
                    continue
                if self._append_locked(memory, message):
                    appended += 1
                if message.get("role") == "tool":
                    self._apply_tool_message_locked(memory, message)
        return appended

    def _append_locked(self, memory: SessionMemory, message: dict[str, Any]) -> bool:
        if message.get("role") == "system":
            return False
        key = dedupe_key(message)
        if key in memory.dedupe_keys:
            return False
        memory.dedupe_keys.add(key)

        turn_id = message.get("turn_id")
        if _is_number(turn_id) and turn_id >= 0:
            assigned = int(turn_id)
        else:
            assigned = memory.turn_counter
        memory.turn_counter = max(memory.turn_counter, assigned + 1)

        timestamp = message.get("timestamp")
        if not (_is_number(timestamp) or isinstance(timestamp, str)):
            timestamp = time.time()
        metadata = message.get("metadata")
        tool_calls = message.get("tool_calls")
        tool_call_id = message.get("tool_call_id")
        memory.ledger.append(
            MemoryEntry(
                role=message.get("role") or "assistant",
                content=message.get("content") if message.get("content") is not None else "",
                turn_id=assigned,
                timestamp=timestamp,
                metadata=metadata if isinstance(metadata, dict) else None,
                tool_calls=tool_calls if isinstance(tool_calls, list) else None,
                tool_call_id=tool_call_id if isinstance(tool_call_id, str) else None,
            )
        )
        memory.last_updated_at = time.time()
        return True

    def _apply_tool_message_locked(self, memory: SessionMemory, message: dict[str, Any]) -> None:
        payload = _parse_json_object(message.get("content"))
        item = payload.get("item")
        if not isinstance(item, dict) or not item.get("id"):
            return
        item_id = str(item["id"])
        status = normalize_status(_first(item.get("status"), payload.get("newStatus"), payload.get("status")))
        if status is not None:
            memory.status_cache[item_id] = status
        recommendation = item.get("recommendation")
        if isinstance(recommendation, str):
            self._set_recommendation(memory, item_id, recommendation)

    @staticmethod
    def _set_recommendation(memory: SessionMemory, item_id: str, value: Any) -> None:
        trimmed = str(value).strip()
        if trimmed:
            memory.recommendation_cache[item_id] = trimmed
        else:
            memory.recommendation_cache.pop(item_id, None)

    def sync_from_checklist(self, session_id: Any) -> SessionMemory:
        memory = self.get(session_id)
        items = self._checklist.items()
        with memory.lock:
            for item in items:
                memory.status_cache[item.id] = normalize_status(item.status) or PENDING
                self._set_recommendation(memory, item.id, item.recommendation)
        return memory

    def apply_tool_result(self, session_id: Any, call: ToolCall, result: dict[str, Any]) -> None:
        memory = self.get(session_id)
        with memory.lock:
            if call.name == UPDATE_ITEM_TOOL and "error" not in result:
                self._apply_update_locked(memory, call, result)
            elif call.name == RESET_TOOL:
                memory.status_cache = self._pending_statuses()
                memory.recommendation_cache.clear()
                memory.last_asked_item_id = None
            memory.last_updated_at = time.time()
            self.sync_from_checklist(memory.session_id)

    def _apply_update_locked(
        self, memory: SessionMemory, call: ToolCall, result: dict[str, Any]
    ) -> None:
        args = _parse_json_object(call.arguments)
        result_item = result.get("item") if isinstance(result.get("item"), dict) else {}
        target = self._checklist.locate(
            item_id=_first(args.get("item_id"), result_item.get("id"), result.get("item_id")),
            item_number=args.get("item_number"),
            item_name=args.get("item_name"),
        )
        target_id = target.id if target is not None else result_item.get("id")
        status = normalize_status(
            _first(
                args.get("status"),
                result.get("newStatus"),
                result_item.get("status"),
                result.get("status"),
            )
        )
        if not target_id or status is None:
            return
        memory.status_cache[target_id] = status
        recommendation = _first(
            args.get("recommendation") if isinstance(args.get("recommendation"), str) else None,
            args.get("note") if isinstance(args.get("note"), str) else None,
            result_item.get("recommendation")
            if isinstance(result_item.get("recommendation"), str)
            else None,
        )
        if recommendation is not None:
            self._set_recommendation(memory, target_id, recommendation)
        memory.last_asked_item_id = target_id

    def next_pending_item(self, session_id: Any) -> ChecklistItem | None:
        memory = self.get(session_id)
        with memory.lock:
            for item in self._checklist.items():
                if memory.status_cache.get(item.id, PENDING) == PENDING:
                    return item
        return None

    def build_summary(self, session_id: Any) -> str:
        memory = self.get(session_id)
        lines: list[str] = []
        next_pending: tuple[int, ChecklistItem] | None = None
        with memory.lock:
            for index, item in enumerate(self._checklist.items(), start=1):
                status = memory.status_cache.get(item.id, PENDING)
                recommendation = memory.recommendation_cache.get(item.id, "")
                line = f"{index}. {item.question} -> {status}"
                if recommendation:
                    line = f"{line} (recommendation: {recommendation})"
                lines.append(line)
                if next_pending is None and status == PENDING:
                    next_pending = (index, item)
        if next_pending is not None:
            index, item = next_pending
            lines.append(f'Next pending item: #{index} "{item.question}". Ask about this next.')
        else:
            lines.append(
                "Next pending item: none. The checklist is complete, wrap up the session."
            )
        return "\n".join(lines)

    def invalidate_caches(self) -> None:
        pending = self._pending_statuses()
        for memory in self.list_sessions():
            with memory.lock:
                memory.status_cache = dict(pending)
                memory.recommendation_cache.clear()
                memory.last_asked_item_id = None

    def clear(self, session_id: Any) -> bool:
        if not isinstance(session_id, str) or not session_id.strip():
            return False
        with self._lock:
            return self._sessions.pop(session_id.strip(), None) is not None

    def clear_all(self) -> None:
        with self._lock:
            self._sessions.clear()
