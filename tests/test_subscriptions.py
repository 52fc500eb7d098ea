"""Tests for event fan-out (task_engine/subscriptions.py)."""

from __future__ import annotations

import threading

from agent_tasklist.task_engine.model import TaskEvent, TaskEventType
from agent_tasklist.task_engine.subscriptions import SubscriberRegistry


def _event(task_id: str, list_id: str = "l") -> TaskEvent:
    return TaskEvent(TaskEventType.UPDATED, list_id, task_id)


class TestSubscription:
    def test_events_delivered_in_order(self) -> None:
        registry = SubscriberRegistry(buffer_size=8)
        sub = registry.subscribe("l")
        for i in range(3):
            registry.publish(_event(str(i)))
        assert [sub.get_nowait().task_id for _ in range(3)] == ["0", "1", "2"]
        assert sub.get_nowait() is None

    def test_only_matching_list(self) -> None:
        registry = SubscriberRegistry()
        sub = registry.subscribe("a")
        assert registry.publish(_event("1", list_id="b")) == 0
        assert sub.pending() == 0

    def test_full_buffer_drops_without_blocking(self) -> None:
        registry = SubscriberRegistry()
        slow = registry.subscribe("l", maxsize=2)
        fast = registry.subscribe("l", maxsize=10)
        for i in range(5):
            registry.publish(_event(str(i)))
        assert slow.pending() == 2
        assert slow.dropped == 3
        assert fast.pending() == 5
        assert fast.dropped == 0

    def test_get_timeout_returns_none(self) -> None:
        sub = SubscriberRegistry(poll_interval=0.01).subscribe("l")
        assert sub.get(timeout=0.05) is None

    def test_close_unregisters_and_drains(self) -> None:
        registry = SubscriberRegistry()
        sub = registry.subscribe("l")
        registry.publish(_event("1"))
        sub.close()
        sub.close()
        assert registry.subscriber_count("l") == 0
        assert registry.publish(_event("2")) == 0
        assert [e.task_id for e in sub] == ["1"]
        assert sub.get() is None

    def test_cancel_event_closes(self) -> None:
        cancel = threading.Event()
        registry = SubscriberRegistry(poll_interval=0.01)
        sub = registry.subscribe("l", cancel=cancel)
        cancel.set()
        assert sub.closed
        assert registry.subscriber_count("l") == 0

    def test_cancel_wakes_blocked_reader(self) -> None:
        cancel = threading.Event()
        sub = SubscriberRegistry(poll_interval=0.01).subscribe("l", cancel=cancel)
        result: list[object] = []
        reader = threading.Thread(target=lambda: result.append(sub.get()))
        reader.start()
        cancel.set()
        reader.join(timeout=5)
        assert not reader.is_alive()
        assert result == [None]

    def test_context_manager_closes(self) -> None:
        registry = SubscriberRegistry()
        with registry.subscribe("l") as sub:
            assert registry.subscriber_count("l") == 1
        assert sub.closed
        assert registry.subscriber_count("l") == 0
