"""Shared, durable task lists for coordinating independent agent processes."""

from .errors import (
    AlreadyClaimedError,
    DependencyCycleError,
    DependencyError,
    InvalidTaskError,
    InvalidTransitionError,
    LockCancelledError,
    LockError,
    LockTimeoutError,
    NoAvailableTaskError,
    SelfDependencyError,
    TaskAlreadyExistsError,
    TaskBlockedError,
    TaskDecodeError,
    TaskListError,
    TaskNotFoundError,
    TaskStoreIOError,
    UnsupportedError,
)
from .task_engine import (
    DELETE,
    UNSET,
    ExportableTaskStore,
    FileTaskStore,
    LockingTaskStore,
    MemoryTaskStore,
    Subscription,
    TaskEvent,
    TaskEventType,
    TaskListItem,
    TaskLock,
    TaskManager,
    TaskStats,
    TaskStatus,
    TaskStore,
    TaskUpdateInput,
    open_task_store,
)

__all__ = [
    "AlreadyClaimedError",
    "DELETE",
    "DependencyCycleError",
    "DependencyError",
    "ExportableTaskStore",
    "FileTaskStore",
    "InvalidTaskError",
    "InvalidTransitionError",
    "LockCancelledError",
    "LockError",
    "LockTimeoutError",
    "LockingTaskStore",
    "MemoryTaskStore",
    "NoAvailableTaskError",
    "SelfDependencyError",
    "Subscription",
    "TaskAlreadyExistsError",
    "TaskBlockedError",
    "TaskDecodeError",
    "TaskEvent",
    "TaskEventType",
    "TaskListError",
    "TaskListItem",
    "TaskLock",
    "TaskManager",
    "TaskNotFoundError",
    "TaskStats",
    "TaskStatus",
    "TaskStore",
    "TaskStoreIOError",
    "TaskUpdateInput",
    "UNSET",
    "UnsupportedError",
    "open_task_store",
]
