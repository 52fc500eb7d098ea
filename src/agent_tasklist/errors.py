"""Typed errors raised by the task stores and the task manager."""

from __future__ import annotations

from typing import Optional, Sequence


class TaskListError(Exception):
    """Base class for every error raised by this package."""


class TaskNotFoundError(TaskListError):
    """Raised when a task ID is unknown in a list."""

    def __init__(self, task_id: str, list_id: Optional[str] = None) -> None:
        self.task_id = task_id
        self.list_id = list_id
        where = f" in list {list_id}" if list_id else ""
        super().__init__(f"task not found: {task_id}{where}")


class TaskAlreadyExistsError(TaskListError):
    def __init__(self, task_id: str, list_id: Optional[str] = None) -> None:
        self.task_id = task_id
        self.list_id = list_id
        super().__init__(f"task already exists: {task_id}")


class UnsupportedError(TaskListError):
    """The durable store cannot run on this platform; use MemoryTaskStore."""


class AlreadyClaimedError(TaskListError):
    """Raised when a claim loses to another owner."""

    def __init__(self, task_id: str, owner: str) -> None:
        self.task_id = task_id
        self.owner = owner
        super().__init__(f"task {task_id} is already claimed by {owner}")


class NoAvailableTaskError(TaskListError):
    """Raised when no pending, unowned, unblocked task is left to claim."""


class TaskBlockedError(TaskListError):
    def __init__(self, task_id: str, blocked_by: Sequence[str]) -> None:
        self.task_id = task_id
        self.blocked_by = list(blocked_by)
        super().__init__(f"task {task_id} is blocked by other tasks: {self.blocked_by}")


class InvalidTransitionError(TaskListError):
    def __init__(self, task_id: str, from_status: str, to_status: str) -> None:
        self.task_id = task_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(f"invalid status transition for task {task_id}: {from_status} -> {to_status}")


class DependencyError(TaskListError, ValueError):
    """An edge request that would corrupt the dependency graph."""


class SelfDependencyError(DependencyError):
    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(f"task {task_id} cannot depend on itself")


class DependencyCycleError(DependencyError):
    def __init__(self, task_id: str, blocked_by_id: str) -> None:
        self.task_id = task_id
        self.blocked_by_id = blocked_by_id
        super().__init__(f"making {task_id} blocked by {blocked_by_id} would create a cycle")


class LockError(TaskListError):
    """Lock acquisition did not complete."""


class LockTimeoutError(LockError, TimeoutError):
    pass


class LockCancelledError(LockError):
    pass


class TaskStoreIOError(TaskListError):
    """Filesystem failure, tagged with the list and task it concerned."""

    def __init__(self, message: str, list_id: Optional[str] = None, task_id: Optional[str] = None) -> None:
        self.list_id = list_id
        self.task_id = task_id
        parts = [message]
        if list_id is not None:
            parts.append(f"list={list_id}")
        if task_id is not None:
            parts.append(f"task={task_id}")
        super().__init__(" ".join(parts))


class TaskDecodeError(TaskStoreIOError):
    """A task file exists but does not hold a valid task."""


class InvalidTaskError(TaskListError, ValueError):
    """A task that cannot be stored as given (missing ID, status ``deleted``, path-like ID)."""
