"""In-memory task store.

Same contract as :class:`~agent_tasklist.task_engine.file_store.FileTaskStore`
for a single process: tests, and platforms without OS file locking. One
re-entrant mutex guards every list, so no reader ever sees a half-applied
mutation and ``list()``/``export()`` are consistent snapshots.
"""

from __future__ import annotations

import threading
from typing import Optional

from loguru import logger

from ..config import TaskListSettings
from ..errors import InvalidTaskError, TaskAlreadyExistsError, TaskNotFoundError
from .graph import plan_create, plan_update, sort_tasks, task_id_sort_key
from .model import TaskEvent, TaskEventType, TaskListItem, TaskStatus, TaskUpdateInput
from .store import TaskLock, TaskStore, acquire_with_cancel
from .subscriptions import SubscriberRegistry, Subscription


class MemoryTaskStore(TaskStore):
    """Thread-safe in-memory store. All data is lost with the instance."""

    def __init__(self, settings: Optional[TaskListSettings] = None) -> None:
        self.settings = settings or TaskListSettings()
        self._mu = threading.RLock()
        self._lists: dict[str, dict[str, TaskListItem]] = {}
        self._last_id: dict[str, int] = {}
        self._task_locks: dict[tuple[str, str], threading.Lock] = {}
        self._subs = SubscriberRegistry(self.settings.subscriber_buffer, self.settings.lock_poll_interval)

    # -- internal helpers ---------------------------------------------------

    def _tasks(self, list_id: str, task_id: str) -> dict[str, TaskListItem]:
        tasks = self._lists.get(list_id)
        if tasks is None or task_id not in tasks:
            raise TaskNotFoundError(task_id, list_id)
        return tasks

    def _publish(self, events: list[TaskEvent]) -> None:
        # Called with self._mu held so every subscriber sees mutations in order.
        for event in events:
            self._subs.publish(event)

    def _drop_task_locks(self, list_id: str, task_id: Optional[str] = None) -> None:
        # Held locks stay registered until a later delete or clear.
        for key in [k for k in self._task_locks if k[0] == list_id and (task_id is None or k[1] == task_id)]:
            if not self._task_locks[key].locked():
                del self._task_locks[key]

    def _bump_last_id(self, list_id: str, task_ids: list[str]) -> None:
        numeric = [task_id_sort_key(tid)[1] for tid in task_ids if task_id_sort_key(tid)[0] == 0]
        if numeric:
            self._last_id[list_id] = max(self._last_id.get(list_id, 0), max(numeric))

    # -- TaskStore ----------------------------------------------------------

    def create(self, list_id: str, task: TaskListItem) -> str:
        with self._mu:
            tasks = self._lists.setdefault(list_id, {})
            next_id = self._last_id.get(list_id, 0) + 1
            while str(next_id) in tasks:
                next_id += 1
            task_id = str(next_id)
            mutation = plan_create(list_id, task_id, task, tasks)
            self._last_id[list_id] = next_id
            self._publish(mutation.events(list_id))
        logger.debug("Created task {} in memory list {}", task_id, list_id)
        return task_id

    def get(self, list_id: str, task_id: str) -> TaskListItem:
        with self._mu:
            return self._tasks(list_id, task_id)[task_id].copy()

    def update(self, list_id: str, task_id: str, update: TaskUpdateInput) -> TaskListItem:
        with self._mu:
            tasks = self._tasks(list_id, task_id)
            if update.status == TaskStatus.DELETED:
                snapshot = tasks[task_id].copy()
                self.delete(list_id, task_id)
                snapshot.status = TaskStatus.DELETED
                return snapshot
            mutation = plan_update(list_id, task_id, update, tasks)
            self._publish(mutation.events(list_id))
            return mutation.task.copy()

    def list(self, list_id: str) -> list[TaskListItem]:
        with self._mu:
            return [t.copy() for t in sort_tasks(self._lists.get(list_id, {}).values())]

    def delete(self, list_id: str, task_id: str) -> None:
        with self._mu:
            tasks = self._tasks(list_id, task_id)
            del tasks[task_id]
            self._drop_task_locks(list_id, task_id)
            self._publish([TaskEvent(TaskEventType.DELETED, list_id, task_id)])
        logger.debug("Deleted task {} from memory list {}", task_id, list_id)

    def clear(self, list_id: str) -> None:
        with self._mu:
            removed = len(self._lists.pop(list_id, {}))
            self._drop_task_locks(list_id)
        logger.info("Cleared memory list {} ({} tasks)", list_id, removed)

    def subscribe(
        self,
        list_id: str,
        cancel: Optional[threading.Event] = None,
        maxsize: Optional[int] = None,
    ) -> Subscription:
        return self._subs.subscribe(list_id, cancel=cancel, maxsize=maxsize)

    # -- locking ------------------------------------------------------------

    def _task_lock(self, list_id: str, task_id: str) -> threading.Lock:
        with self._mu:
            return self._task_locks.setdefault((list_id, task_id), threading.Lock())

    def lock(
        self,
        list_id: str,
        task_id: str,
        *,
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> TaskLock:
        mutex = self._task_lock(list_id, task_id)
        acquire_with_cancel(
            lambda wait: mutex.acquire(timeout=wait),
            f"{list_id}/{task_id}",
            timeout=timeout if timeout is not None else self.settings.lock_timeout,
            cancel=cancel,
            poll_interval=self.settings.lock_poll_interval,
        )
        return TaskLock(list_id, task_id, mutex.release)

    def try_lock(self, list_id: str, task_id: str) -> Optional[TaskLock]:
        mutex = self._task_lock(list_id, task_id)
        if not mutex.acquire(blocking=False):
            return None
        return TaskLock(list_id, task_id, mutex.release)

    # -- export / import ----------------------------------------------------

    def export(self, list_id: str) -> list[TaskListItem]:
        return self.list(list_id)

    def import_tasks(self, list_id: str, tasks: list[TaskListItem], clear_first: bool = False) -> None:
        seen: set[str] = set()
        for task in tasks:
            if not task.id:
                raise InvalidTaskError("imported tasks must carry an ID")
            if task.status == TaskStatus.DELETED:
                raise InvalidTaskError(f"cannot import task {task.id} with status 'deleted'")
            if task.id in seen:
                raise TaskAlreadyExistsError(task.id, list_id)
            seen.add(task.id)
        with self._mu:
            if clear_first:
                self._lists[list_id] = {}
            target = self._lists.setdefault(list_id, {})
            for task in tasks:
                target[task.id] = task.copy()
            self._bump_last_id(list_id, list(target))
        logger.info("Imported {} tasks into memory list {} (clear_first={})", len(tasks), list_id, clear_first)

    def list_ids(self) -> list[str]:
        with self._mu:
            return sorted(self._lists)
