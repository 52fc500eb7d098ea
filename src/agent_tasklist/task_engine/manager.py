"""Task lifecycle façade over any :class:`TaskStore`.

The manager binds one list ID and adds the policy the raw stores do not
have: conditional claims, next-available selection and retrying claim races.
"""

from __future__ import annotations

import threading
from dataclasses import asdict, dataclass
from typing import Any, Optional

from loguru import logger

from ..config import TaskListSettings, resolve_list_id
from ..errors import (
    AlreadyClaimedError,
    InvalidTransitionError,
    NoAvailableTaskError,
    TaskBlockedError,
    TaskNotFoundError,
)
from .graph import is_available, is_blocked, sort_tasks, unmet_blockers
from .model import TaskListItem, TaskStatus, TaskUpdateInput
from .store import LockingTaskStore, TaskStore, open_task_store
from .subscriptions import Subscription


@dataclass
class TaskStats:
    total: int = 0
    pending: int = 0
    in_progress: int = 0
    completed: int = 0
    blocked: int = 0
    unblocked: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


class TaskManager:
    """Create, claim and complete tasks of one list.

    Example::

        manager = TaskManager("release-42")
        first = manager.create("Write changelog")
        manager.create("Tag release", blocked_by=[first.id])
        task = manager.claim_next("agent-1")
        manager.complete(task.id)
    """

    def __init__(
        self,
        list_id: Optional[str] = None,
        store: Optional[TaskStore] = None,
        settings: Optional[TaskListSettings] = None,
    ) -> None:
        self._list_id = resolve_list_id(list_id)
        self._store = store if store is not None else open_task_store()
        self.settings = settings or getattr(self._store, "settings", None) or TaskListSettings()

    @property
    def list_id(self) -> str:
        return self._list_id

    @property
    def store(self) -> TaskStore:
        return self._store

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def create(
        self,
        subject: str,
        description: str = "",
        *,
        active_form: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
        priority: Optional[Any] = None,
        estimate: Optional[Any] = None,
        blocked_by: Optional[list[str]] = None,
        blocks: Optional[list[str]] = None,
    ) -> TaskListItem:
        """Create a pending task. Every option lands in the first persisted write."""
        meta = dict(metadata or {})
        if priority is not None:
            meta["priority"] = priority
        if estimate is not None:
            meta["estimate"] = estimate
        item = TaskListItem(
            subject=subject,
            description=description,
            active_form=active_form or "",
            metadata=meta,
            blocked_by=list(blocked_by or []),
            blocks=list(blocks or []),
        )
        task_id = self._store.create(self._list_id, item)
        return self._store.get(self._list_id, task_id)

    def get(self, task_id: str) -> TaskListItem:
        return self._store.get(self._list_id, task_id)

    def update(self, task_id: str, **changes: Any) -> TaskListItem:
        """Keyword form of :class:`TaskUpdateInput`, e.g. ``update("3", subject="x")``."""
        return self._store.update(self._list_id, task_id, TaskUpdateInput(**changes))

    def add_dependency(self, task_id: str, blocked_by_id: str) -> TaskListItem:
        """Make *task_id* wait for *blocked_by_id*."""
        return self._store.update(self._list_id, task_id, TaskUpdateInput(add_blocked_by=[blocked_by_id]))

    def delete(self, task_id: str) -> None:
        self._store.delete(self._list_id, task_id)

    def clear(self) -> None:
        self._store.clear(self._list_id)

    # ------------------------------------------------------------------
    # Claiming
    # ------------------------------------------------------------------

    def _check_claimable(self, task: TaskListItem, owner: str) -> bool:
        """Raise if *owner* may not claim *task*; False when they already own it."""
        if task.owner and task.owner != owner:
            raise AlreadyClaimedError(task.id, task.owner)
        if task.status == TaskStatus.COMPLETED:
            raise InvalidTransitionError(task.id, task.status.value, TaskStatus.IN_PROGRESS.value)
        if task.owner == owner and task.status == TaskStatus.IN_PROGRESS:
            return False
        tasks = {t.id: t for t in self._store.list(self._list_id)}
        tasks[task.id] = task
        unmet = unmet_blockers(task, tasks)
        if unmet:
            raise TaskBlockedError(task.id, unmet)
        return True

    def _claim_update(self, task: TaskListItem, owner: str) -> TaskUpdateInput:
        # Conditional on the owner that was checked; the store re-checks under its mutation lock.
        return TaskUpdateInput(owner=owner, status=TaskStatus.IN_PROGRESS, expected_owner=task.owner)

    def claim(
        self,
        task_id: str,
        owner: str,
        *,
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> TaskListItem:
        """Assign *task_id* to *owner* and move it to ``in_progress``.

        Succeeds when the task is unowned or already owned by *owner*.

        Raises:
            AlreadyClaimedError: another owner holds the task.
            TaskBlockedError: some blocker is not completed.
            InvalidTransitionError: the task is already completed.
            TaskNotFoundError: unknown task.
        """
        if not owner:
            raise ValueError("owner must be a non-empty string")
        if isinstance(self._store, LockingTaskStore):
            with self._store.lock(self._list_id, task_id, timeout=timeout, cancel=cancel):
                task = self._store.get(self._list_id, task_id)
                if not self._check_claimable(task, owner):
                    return task
                claimed = self._store.update(self._list_id, task_id, self._claim_update(task, owner))
        else:
            claimed = self._claim_optimistic(task_id, owner)
        logger.info("Task {} in list {} claimed by {}", task_id, self._list_id, owner)
        return claimed

    def _claim_optimistic(self, task_id: str, owner: str) -> TaskListItem:
        # No lock available: the compare-and-set happens inside store.update.
        task = self._store.get(self._list_id, task_id)
        if not self._check_claimable(task, owner):
            return task
        return self._store.update(self._list_id, task_id, self._claim_update(task, owner))

    def complete(self, task_id: str) -> TaskListItem:
        """Mark *task_id* completed; dependants that become unblocked are announced by the store."""
        task = self._store.update(self._list_id, task_id, TaskUpdateInput(status=TaskStatus.COMPLETED))
        logger.info("Task {} in list {} completed", task_id, self._list_id)
        return task

    def next_available(self, exclude: Optional[set[str]] = None) -> Optional[TaskListItem]:
        """Lowest-numbered unblocked task, or ``None``."""
        for task in self.list_unblocked():
            if exclude and task.id in exclude:
                continue
            return task
        return None

    def claim_next(
        self,
        owner: str,
        *,
        max_attempts: Optional[int] = None,
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> TaskListItem:
        """Claim the next available task, moving on when a concurrent claimer wins.

        Raises:
            NoAvailableTaskError: nothing is left to claim, or every attempt lost.
        """
        attempts = max_attempts if max_attempts is not None else self.settings.claim_max_attempts
        tried: set[str] = set()
        for attempt in range(1, attempts + 1):
            candidate = self.next_available(exclude=tried)
            if candidate is None:
                break
            tried.add(candidate.id)
            try:
                return self.claim(candidate.id, owner, timeout=timeout, cancel=cancel)
            except (AlreadyClaimedError, InvalidTransitionError, TaskBlockedError, TaskNotFoundError) as exc:
                logger.debug("Claim attempt {} for {} lost: {}", attempt, owner, exc)
        raise NoAvailableTaskError(f"no available task in list {self._list_id} for {owner}")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list(self) -> list[TaskListItem]:
        return self._store.list(self._list_id)

    def list_pending(self) -> list[TaskListItem]:
        return [t for t in self.list() if t.status == TaskStatus.PENDING]

    def list_in_progress(self) -> list[TaskListItem]:
        return [t for t in self.list() if t.status == TaskStatus.IN_PROGRESS]

    def list_by_owner(self, owner: str) -> list[TaskListItem]:
        return [t for t in self.list() if t.owner == owner]

    def list_unblocked(self) -> list[TaskListItem]:
        """Pending, unowned tasks whose blockers are all completed, in ID order."""
        tasks = {t.id: t for t in self.list()}
        return sort_tasks(t for t in tasks.values() if is_available(t, tasks))

    def stats(self) -> TaskStats:
        tasks = {t.id: t for t in self.list()}
        stats = TaskStats(total=len(tasks))
        for task in tasks.values():
            if task.status == TaskStatus.PENDING:
                stats.pending += 1
            elif task.status == TaskStatus.IN_PROGRESS:
                stats.in_progress += 1
            elif task.status == TaskStatus.COMPLETED:
                stats.completed += 1
            if task.status != TaskStatus.COMPLETED:
                if is_blocked(task, tasks):
                    stats.blocked += 1
                elif is_available(task, tasks):
                    stats.unblocked += 1
        return stats

    def watch(self, cancel: Optional[threading.Event] = None, maxsize: Optional[int] = None) -> Subscription:
        return self._store.subscribe(self._list_id, cancel=cancel, maxsize=maxsize)
