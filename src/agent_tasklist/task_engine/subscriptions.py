"""Per-list event fan-out with bounded subscriber queues.

Every subscriber owns a fixed-size FIFO queue. Publishing never blocks: when
a subscriber's queue is full that subscriber misses the event (its
``dropped`` counter goes up) while everyone else still receives it.
"""

from __future__ import annotations

import queue
import threading
import time
from typing import Iterator, Optional

from loguru import logger

from ..constants import DEFAULT_LOCK_POLL_INTERVAL, DEFAULT_SUBSCRIBER_BUFFER
from .model import TaskEvent


class Subscription:
    """A live feed of :class:`TaskEvent` for one list.

    Iterate it to receive events in order; iteration ends once the
    subscription is closed (explicitly, or by setting ``cancel``) and the
    buffered events have been drained.

    Usage::

        with store.subscribe("my-list") as sub:
            for event in sub:
                ...
    """

    def __init__(
        self,
        registry: "SubscriberRegistry",
        list_id: str,
        maxsize: int,
        cancel: Optional[threading.Event] = None,
        poll_interval: float = DEFAULT_LOCK_POLL_INTERVAL,
    ) -> None:
        self.list_id = list_id
        self.maxsize = maxsize
        self.dropped = 0
        self._registry = registry
        self._queue: queue.Queue[TaskEvent] = queue.Queue(maxsize=maxsize)
        self._cancel = cancel
        self._poll_interval = poll_interval
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        self._check_cancel()
        return self._closed.is_set()

    def close(self) -> None:
        """Unregister from the store. Idempotent."""
        if self._closed.is_set():
            return
        self._closed.set()
        self._registry._remove(self)

    def _check_cancel(self) -> None:
        if self._cancel is not None and self._cancel.is_set() and not self._closed.is_set():
            self.close()

    def _offer(self, event: TaskEvent) -> bool:
        try:
            self._queue.put_nowait(event)
        except queue.Full:
            self.dropped += 1
            logger.debug(
                "Subscriber buffer full on list {}; dropped {} event for task {}",
                self.list_id,
                event.type.value,
                event.task_id,
            )
            return False
        return True

    def get(self, timeout: Optional[float] = None) -> Optional[TaskEvent]:
        """Next event, or ``None`` if none arrived within *timeout* or the feed ended.

        ``timeout=None`` waits until an event arrives or the subscription is
        closed.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            self._check_cancel()
            try:
                return self._queue.get_nowait()
            except queue.Empty:
                pass
            if self._closed.is_set():
                return None
            step = self._poll_interval
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return None
                step = min(step, remaining)
            try:
                return self._queue.get(timeout=step)
            except queue.Empty:
                continue

    def get_nowait(self) -> Optional[TaskEvent]:
        try:
            return self._queue.get_nowait()
        except queue.Empty:
            return None

    def pending(self) -> int:
        return self._queue.qsize()

    def __iter__(self) -> Iterator[TaskEvent]:
        while True:
            event = self.get()
            if event is None:
                return
            yield event

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class SubscriberRegistry:
    """Subscribers grouped by list ID."""

    def __init__(
        self,
        buffer_size: int = DEFAULT_SUBSCRIBER_BUFFER,
        poll_interval: float = DEFAULT_LOCK_POLL_INTERVAL,
    ) -> None:
        self._buffer_size = buffer_size
        self._poll_interval = poll_interval
        self._subs: dict[str, list[Subscription]] = {}
        self._lock = threading.Lock()

    def subscribe(
        self,
        list_id: str,
        cancel: Optional[threading.Event] = None,
        maxsize: Optional[int] = None,
    ) -> Subscription:
        sub = Subscription(
            self,
            list_id,
            maxsize or self._buffer_size,
            cancel=cancel,
            poll_interval=self._poll_interval,
        )
        with self._lock:
            self._subs.setdefault(list_id, []).append(sub)
        logger.debug("New subscriber on list {} (buffer={})", list_id, sub.maxsize)
        return sub

    def publish(self, event: TaskEvent) -> int:
        """Deliver *event* to every live subscriber of its list; returns the delivery count."""
        with self._lock:
            subs = list(self._subs.get(event.list_id, ()))
        delivered = 0
        for sub in subs:
            sub._check_cancel()
            if sub._closed.is_set():
                continue
            if sub._offer(event):
                delivered += 1
        return delivered

    def subscriber_count(self, list_id: str) -> int:
        with self._lock:
            return len(self._subs.get(list_id, ()))

    def _remove(self, sub: Subscription) -> None:
        with self._lock:
            subs = self._subs.get(sub.list_id)
            if not subs:
                return
            try:
                subs.remove(sub)
            except ValueError:
                return
            if not subs:
                del self._subs[sub.list_id]
