"""Persistence contract for task lists.

:class:`TaskStore` is the contract every backend satisfies. Locking and bulk
export/import are optional capabilities described by separate protocols;
callers probe for them with ``isinstance``::

    if isinstance(store, LockingTaskStore):
        with store.lock(list_id, task_id):
            ...
"""

from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Optional, Protocol, runtime_checkable

from loguru import logger

from ..constants import DEFAULT_LOCK_POLL_INTERVAL
from ..errors import LockCancelledError, LockTimeoutError, UnsupportedError
from .model import TaskListItem, TaskUpdateInput
from .subscriptions import Subscription


# ---------------------------------------------------------------------------
# Core contract
# ---------------------------------------------------------------------------

class TaskStore(ABC):
    @abstractmethod
    def create(self, list_id: str, task: TaskListItem) -> str:
        """Persist *task* under a freshly issued ID and return that ID.

        Any ID already set on *task* is ignored.
        """
        raise NotImplementedError

    @abstractmethod
    def get(self, list_id: str, task_id: str) -> TaskListItem:
        """Return a snapshot of the task; raises ``TaskNotFoundError``."""
        raise NotImplementedError

    @abstractmethod
    def update(self, list_id: str, task_id: str, update: TaskUpdateInput) -> TaskListItem:
        """Apply a partial update atomically and return the new snapshot.

        Completing a task emits ``unblocked`` for each dependant whose
        blockers are now all completed.
        """
        raise NotImplementedError

    @abstractmethod
    def list(self, list_id: str) -> list[TaskListItem]:
        """All tasks of a list in numeric ID order; empty if the list is unknown."""
        raise NotImplementedError

    @abstractmethod
    def delete(self, list_id: str, task_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def clear(self, list_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def subscribe(
        self,
        list_id: str,
        cancel: Optional[threading.Event] = None,
        maxsize: Optional[int] = None,
    ) -> Subscription:
        raise NotImplementedError


# ---------------------------------------------------------------------------
# Optional capabilities
# ---------------------------------------------------------------------------

@runtime_checkable
class LockingTaskStore(Protocol):
    def lock(
        self,
        list_id: str,
        task_id: str,
        *,
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> "TaskLock":
        ...

    def try_lock(self, list_id: str, task_id: str) -> Optional["TaskLock"]:
        ...


@runtime_checkable
class ExportableTaskStore(Protocol):
    def export(self, list_id: str) -> list[TaskListItem]:
        ...

    def import_tasks(self, list_id: str, tasks: list[TaskListItem], clear_first: bool = False) -> None:
        ...

    def list_ids(self) -> list[str]:
        ...


# ---------------------------------------------------------------------------
# Locks
# ---------------------------------------------------------------------------

class TaskLock:
    """A held lock on one task. Release it exactly once, or use ``with``."""

    def __init__(self, list_id: str, task_id: str, release: Callable[[], None]) -> None:
        self.list_id = list_id
        self.task_id = task_id
        self._release = release
        self._released = False
        self._guard = threading.Lock()

    @property
    def held(self) -> bool:
        return not self._released

    def release(self) -> None:
        with self._guard:
            if self._released:
                return
            self._released = True
        self._release()

    def __enter__(self) -> "TaskLock":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()

    def __repr__(self) -> str:
        state = "held" if self.held else "released"
        return f"TaskLock({self.list_id!r}, {self.task_id!r}, {state})"


def acquire_with_cancel(
    try_acquire: Callable[[float], bool],
    what: str,
    *,
    timeout: Optional[float] = None,
    cancel: Optional[threading.Event] = None,
    poll_interval: float = DEFAULT_LOCK_POLL_INTERVAL,
) -> None:
    """Call ``try_acquire(wait)`` in short slices until it succeeds.

    ``try_acquire`` must either acquire and return True, or return False
    holding nothing. Between slices the cancel event and the deadline are
    checked, so the caller never ends up holding a lock after an error.

    Raises:
        LockCancelledError: *cancel* was set before the lock was acquired.
        LockTimeoutError: *timeout* seconds elapsed.
    """
    deadline = None if timeout is None else time.monotonic() + timeout
    waited_logged = False
    while True:
        if cancel is not None and cancel.is_set():
            raise LockCancelledError(f"lock acquisition cancelled: {what}")
        step = poll_interval
        if deadline is not None:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise LockTimeoutError(f"timed out after {timeout}s waiting for lock: {what}")
            step = min(step, remaining)
        if try_acquire(step):
            return
        if not waited_logged:
            logger.debug("Waiting for lock {}", what)
            waited_logged = True


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

def open_task_store(base_dir: Optional[Path | str] = None, *, fallback: bool = True) -> TaskStore:
    """Return the durable store, or an in-memory one where file locking is unavailable.

    With ``fallback=False`` the ``UnsupportedError`` is re-raised instead.
    """
    from .file_store import FileTaskStore
    from .memory_store import MemoryTaskStore

    try:
        return FileTaskStore(base_dir)
    except UnsupportedError as exc:
        if not fallback:
            raise
        logger.warning("{}; falling back to in-memory task store", exc)
        return MemoryTaskStore()
