from __future__ import annotations

import asyncio
import json
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Iterator, Protocol

from customllm.checklist.status import PENDING, normalize_status

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ChecklistTemplate:
    id: str
    question: str


DEFAULT_CHECKLIST = (
    ChecklistTemplate("item-1", "Mixed usage of string and integer UIDs."),
    ChecklistTemplate("item-2", "Enabled token and deploy a token server."),
    ChecklistTemplate("item-3", "Initialize Agora engine before join the channel."),
)


@dataclass(frozen=True, slots=True)
class ChecklistItem:
    id: str
    question: str
    status: str = PENDING
    recommendation: str = ""
    updated_at: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "question": self.question,
            "status": self.status,
            "recommendation": self.recommendation,
            "updatedAt": self.updated_at,
        }


@dataclass(frozen=True, slots=True)
class ChecklistSnapshot:
    updated_at: str
    items: tuple[ChecklistItem, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "updatedAt": self.updated_at,
            "items": [item.to_dict() for item in self.items],
        }

    def serialize(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)


@dataclass(frozen=True, slots=True)
class ItemUpdate:
    ok: bool
    item: ChecklistItem | None = None
    previous_status: str | None = None
    error: str | None = None

    def to_result(self) -> dict[str, Any]:
        if not self.ok or self.item is None:
            return {"error": self.error or "Checklist update failed."}
        return {
            "success": True,
            "item": self.item.to_dict(),
            "previousStatus": self.previous_status,
            "newStatus": self.item.status,
        }


class ChecklistSink(Protocol):
    @property
    def closed(self) -> bool:
        ...

    def send(self, data: str) -> None:
        ...


class SinkClosed(RuntimeError):
    pass


class QueueSink:
    """Subscriber sink backed by a bounded asyncio queue.

    ``send`` never blocks: when the consumer falls behind, the oldest pending
    snapshot is dropped since only the latest one matters.
    """

    def __init__(self, maxsize: int = 16) -> None:
        self._queue: asyncio.Queue[str | None] = asyncio.Queue(maxsize=max(1, maxsize))
        self._loop = asyncio.get_running_loop()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, data: str) -> None:
        if self._closed:
            raise SinkClosed("sink is closed")
        self._dispatch(data)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._dispatch(None)

    async def get(self) -> str | None:
        return await self._queue.get()

    def _dispatch(self, data: str | None) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop:
            self._push(data)
        else:
            self._loop.call_soon_threadsafe(self._push, data)

    def _push(self, data: str | None) -> None:
        if self._queue.full():
            self._queue.get_nowait()
        self._queue.put_nowait(data)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class ChecklistStore:
    """Process-wide checklist document shared by every session.

    Items are kept as an immutable tuple that mutators swap under one lock,
    so readers take snapshots without locking.
    """

    def __init__(self, template: Iterable[ChecklistTemplate] | None = None) -> None:
        self._template = tuple(template if template is not None else DEFAULT_CHECKLIST)
        ids = [entry.id for entry in self._template]
        if not ids:
            raise ValueError("checklist template must not be empty")
        if len(set(ids)) != len(ids):
            raise ValueError("checklist item ids must be unique")
        self._lock = threading.Lock()
        self._items = self._fresh_items()
        self._sinks: list[ChecklistSink] = []
        self._reset_hooks: list[Callable[[], None]] = []

    def _fresh_items(self) -> tuple[ChecklistItem, ...]:
        now = _now_iso()
        return tuple(
            ChecklistItem(id=entry.id, question=entry.question, updated_at=now)
            for entry in self._template
        )

    @property
    def template(self) -> tuple[ChecklistTemplate, ...]:
        return self._template

    def items(self) -> tuple[ChecklistItem, ...]:
        return self._items

    def snapshot(self) -> ChecklistSnapshot:
        return ChecklistSnapshot(updated_at=_now_iso(), items=self._items)

    def locate(
        self,
        item_id: Any = None,
        item_number: Any = None,
        item_name: Any = None,
    ) -> ChecklistItem | None:
        return _locate(self._items, item_id, item_number, item_name)

    def update_item(
        self,
        *,
        status: Any,
        item_id: Any = None,
        item_number: Any = None,
        item_name: Any = None,
        recommendation: Any = None,
        note: Any = None,
    ) -> ItemUpdate:
        normalized = normalize_status(status)
        with self._lock:
            items = self._items
            target = _locate(items, item_id, item_number, item_name)
            if target is None:
                return ItemUpdate(
                    ok=False,
                    error=(
                        "Unable to locate checklist item. Provide an item_id or "
                        "item_number matching the checklist."
                    ),
                )
            if normalized is None:
                return ItemUpdate(
                    ok=False,
                    error=(
                        "Invalid status. Use one of: pending, complete, fail, warning. "
                        '"pass" is treated as complete.'
                    ),
                )
            new_recommendation = target.recommendation
            if isinstance(recommendation, str):
                new_recommendation = recommendation
            elif isinstance(note, str):
                new_recommendation = note
            updated = replace(
                target,
                status=normalized,
                recommendation=new_recommendation,
                updated_at=_now_iso(),
            )
            self._items = tuple(updated if item.id == target.id else item for item in items)
            self._broadcast_locked()
        return ItemUpdate(ok=True, item=updated, previous_status=target.status)

    def reset(self) -> ChecklistSnapshot:
        with self._lock:
            self._items = self._fresh_items()
            self._broadcast_locked()
            hooks = list(self._reset_hooks)
        for hook in hooks:
            hook()
        return self.snapshot()

    def add_reset_hook(self, hook: Callable[[], None]) -> None:
        with self._lock:
            self._reset_hooks.append(hook)

    def subscribe(self, sink: ChecklistSink) -> None:
        with self._lock:
            if sink not in self._sinks:
                self._sinks.append(sink)

    def unsubscribe(self, sink: ChecklistSink) -> None:
        with self._lock:
            if sink in self._sinks:
                self._sinks.remove(sink)

    def subscriber_count(self) -> int:
        return len(self._sinks)

    @contextmanager
    def subscription(self, maxsize: int = 16) -> Iterator[QueueSink]:
        sink = QueueSink(maxsize=maxsize)
        self.subscribe(sink)
        try:
            yield sink
        finally:
            self.unsubscribe(sink)
            sink.close()

    def broadcast(self) -> None:
        with self._lock:
            self._broadcast_locked()

    def close(self) -> None:
        with self._lock:
            sinks = list(self._sinks)
            self._sinks.clear()
        for sink in sinks:
            close = getattr(sink, "close", None)
            if callable(close):
                close()

    def _broadcast_locked(self) -> None:
        serialized = self.snapshot().serialize()
        for sink in list(self._sinks):
            if sink.closed:
                self._sinks.remove(sink)
                continue
            try:
                sink.send(serialized)
            except Exception as exc:  # noqa: BLE001
                logger.debug("dropping checklist subscriber: %s", exc)
                self._sinks.remove(sink)


def _locate(
    items: tuple[ChecklistItem, ...],
    item_id: Any,
    item_number: Any,
    item_name: Any,
) -> ChecklistItem | None:
    if item_id is not None and str(item_id).strip():
        wanted = str(item_id).strip().lower()
        for item in items:
            if item.id.lower() == wanted:
                return item

    index = _parse_index(item_number)
    if index is not None and 1 <= index <= len(items):
        return items[index - 1]

    if item_name is not None and str(item_name).strip():
        fragment = str(item_name).strip().lower()
        # first match in list order wins, even for near-duplicate questions
        for item in items:
            if fragment in item.question.lower():
                return item
    return None


def _parse_index(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    try:
        return int(str(value).strip())
    except ValueError:
        return None

