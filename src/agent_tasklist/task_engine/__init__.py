"""Task coordination engine: task model, stores, dependency graph and manager.

:class:`FileTaskStore` persists one JSON file per task and is safe across
processes; :class:`MemoryTaskStore` is its single-process twin. Both are
driven through :class:`TaskManager` for claim and selection policy.
"""

from .file_store import FileTaskStore
from .manager import TaskManager, TaskStats
from .memory_store import MemoryTaskStore
from .model import DELETE, UNSET, TaskEvent, TaskEventType, TaskListItem, TaskStatus, TaskUpdateInput
from .store import ExportableTaskStore, LockingTaskStore, TaskLock, TaskStore, open_task_store
from .subscriptions import Subscription

__all__ = [
    "DELETE",
    "ExportableTaskStore",
    "FileTaskStore",
    "LockingTaskStore",
    "MemoryTaskStore",
    "Subscription",
    "TaskEvent",
    "TaskEventType",
    "TaskListItem",
    "TaskLock",
    "TaskManager",
    "TaskStats",
    "TaskStatus",
    "TaskStore",
    "TaskUpdateInput",
    "UNSET",
    "open_task_store",
]
