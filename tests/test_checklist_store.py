from __future__ import annotations

import asyncio
import json
import threading

import pytest

from customllm.checklist.store import ChecklistStore, ChecklistTemplate, SinkClosed


class RecordingSink:
    def __init__(self) -> None:
        self.closed = False
        self.received: list[str] = []

    def send(self, data: str) -> None:
        self.received.append(data)

    def close(self) -> None:
        self.closed = True


def _comparable(items: list[dict]) -> list[tuple]:
    return [(i["id"], i["question"], i["status"], i["recommendation"]) for i in items]


class FailingSink:
    closed = False

    def send(self, data: str) -> None:
        raise SinkClosed("client went away")


def test_snapshot_starts_pending() -> None:
    store = ChecklistStore()

    snapshot = store.snapshot().to_dict()

    assert [item["id"] for item in snapshot["items"]] == ["item-1", "item-2", "item-3"]
    assert {item["status"] for item in snapshot["items"]} == {"pending"}
    assert all(item["recommendation"] == "" for item in snapshot["items"])
    assert snapshot["updatedAt"].endswith("Z")


def test_template_validation() -> None:
    with pytest.raises(ValueError):
        ChecklistStore([])
    with pytest.raises(ValueError):
        ChecklistStore([ChecklistTemplate("a", "One"), ChecklistTemplate("a", "Two")])


def test_locator_prefers_id_then_number_then_name() -> None:
    store = ChecklistStore()

    assert store.locate(item_id="ITEM-3", item_number=1, item_name="token").id == "item-3"
    assert store.locate(item_id="unknown", item_number="2", item_name="engine").id == "item-2"
    assert store.locate(item_number=9, item_name="agora engine").id == "item-3"
    assert store.locate(item_name="nothing like this") is None


def test_update_item_normalizes_status_and_prefers_recommendation() -> None:
    store = ChecklistStore()

    update = store.update_item(
        item_number=1, status="Passed", recommendation="Keep UIDs numeric", note="ignored"
    )

    assert update.ok is True
    assert update.previous_status == "pending"
    assert update.item.status == "complete"
    assert update.item.recommendation == "Keep UIDs numeric"
    result = update.to_result()
    assert result["success"] is True
    assert result["newStatus"] == "complete"
    assert result["item"]["id"] == "item-1"


def test_update_item_falls_back_to_note() -> None:
    store = ChecklistStore()

    update = store.update_item(item_id="item-2", status="fail", note="Deploy a token server")

    assert update.item.recommendation == "Deploy a token server"


def test_update_item_rejects_unknown_item_and_status() -> None:
    store = ChecklistStore()

    missing = store.update_item(item_id="item-99", status="complete")
    invalid = store.update_item(item_id="item-1", status="sideways")

    assert missing.ok is False
    assert "Unable to locate" in missing.to_result()["error"]
    assert invalid.ok is False
    assert "Invalid status" in invalid.to_result()["error"]
    assert store.items()[0].status == "pending"


def test_broadcast_fans_out_and_prunes_failing_sink() -> None:
    store = ChecklistStore()
    good = RecordingSink()
    other = RecordingSink()
    store.subscribe(good)
    store.subscribe(FailingSink())
    store.subscribe(other)

    store.update_item(item_id="item-1", status="fail")

    assert store.subscriber_count() == 2
    assert len(good.received) == 1
    assert good.received == other.received
    payload = json.loads(good.received[0])
    assert payload["items"][0]["status"] == "fail"


def test_closed_sink_is_pruned_without_send() -> None:
    store = ChecklistStore()
    sink = RecordingSink()
    store.subscribe(sink)
    sink.closed = True

    store.broadcast()

    assert sink.received == []
    assert store.subscriber_count() == 0


def test_reset_round_trip_and_hooks() -> None:
    store = ChecklistStore()
    calls: list[str] = []
    store.add_reset_hook(lambda: calls.append("reset"))
    before = [item.to_dict() for item in store.items()]
    store.update_item(item_id="item-1", status="fail", recommendation="Fix UIDs")
    store.update_item(item_id="item-3", status="warning")

    snapshot = store.reset()

    after = [item.to_dict() for item in snapshot.items]
    assert _comparable(after) == _comparable(before)
    assert calls == ["reset"]


def test_queue_sink_subscription_receives_updates_and_closes() -> None:
    async def scenario() -> list:
        store = ChecklistStore()
        with store.subscription(maxsize=4) as sink:
            assert store.subscriber_count() == 1
            store.update_item(item_id="item-2", status="complete")
            first = await asyncio.wait_for(sink.get(), timeout=1)
            store.close()
            closing = await asyncio.wait_for(sink.get(), timeout=1)
        return [first, closing, store.subscriber_count()]

    first, closing, remaining = asyncio.run(scenario())

    assert json.loads(first)["items"][1]["status"] == "complete"
    assert closing is None
    assert remaining == 0


def test_queue_sink_drops_oldest_when_full() -> None:
    async def scenario() -> list:
        store = ChecklistStore()
        with store.subscription(maxsize=1) as sink:
            store.update_item(item_id="item-1", status="fail")
            store.update_item(item_id="item-1", status="complete")
            await asyncio.sleep(0)
            latest = await asyncio.wait_for(sink.get(), timeout=1)
        return json.loads(latest)["items"][0]["status"]

    assert asyncio.run(scenario()) == "complete"


def test_concurrent_updates_never_expose_partial_items() -> None:
    store = ChecklistStore()
    statuses = ["complete", "fail", "warning", "pending"]
    done = threading.Event()
    torn: list[tuple] = []

    def writer(offset: int) -> None:
        for step in range(200):
            status = statuses[(offset + step) % len(statuses)]
            item_number = (offset + step) % 3 + 1
            store.update_item(item_number=item_number, status=status, recommendation=f"rec-{status}")

    def reader() -> None:
        while not done.is_set():
            for item in store.snapshot().items:
                if item.recommendation and item.recommendation != f"rec-{item.status}":
                    torn.append((item.id, item.status, item.recommendation))

    watcher = threading.Thread(target=reader)
    watcher.start()
    writers = [threading.Thread(target=writer, args=(offset,)) for offset in range(8)]
    for thread in writers:
        thread.start()
    for thread in writers:
        thread.join()
    done.set()
    watcher.join()

    assert torn == []
    assert [item.id for item in store.items()] == ["item-1", "item-2", "item-3"]
    assert all(item.recommendation == f"rec-{item.status}" for item in store.items())
