"""File-based task store with cross-process locking.

Layout, shared with the agent runtime::

    <base_dir>/<list_id>/<task_id>.json        one task per file
    <base_dir>/<list_id>/<task_id>.json.lock   per-task advisory lock
    <base_dir>/<list_id>/.lock                 list lock (serializes writers)
    <base_dir>/<list_id>/.highwatermark        last issued task ID

Every write goes to a temp file in the same directory and is renamed over the
target, so readers never see a partial task. Mutations hold the list lock
for their whole read-modify-write. Reads take no lock.

A corrupt task file makes :meth:`FileTaskStore.get` raise
:class:`~agent_tasklist.errors.TaskDecodeError`; :meth:`FileTaskStore.list`,
:meth:`FileTaskStore.export` and the dependency scans skip it with a warning.
"""

from __future__ import annotations

import json
import os
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from filelock import FileLock, SoftFileLock, Timeout
from loguru import logger

from ..config import TaskListSettings, load_settings, resolve_base_dir
from ..constants import (
    HIGHWATERMARK_FILE,
    LIST_LOCK_FILE,
    LOCK_FILE_SUFFIX,
    TASK_FILE_SUFFIX,
    TMP_SUFFIX,
)
from ..errors import (
    InvalidTaskError,
    TaskAlreadyExistsError,
    TaskDecodeError,
    TaskNotFoundError,
    TaskStoreIOError,
    UnsupportedError,
)
from ..io_utils import _atomic_write_json, _load_json, _read_int, _write_text_atomic
from .graph import Mutation, plan_create, plan_update, sort_tasks, task_id_sort_key
from .model import TaskEvent, TaskEventType, TaskListItem, TaskStatus, TaskUpdateInput
from .store import TaskLock, TaskStore, acquire_with_cancel
from .subscriptions import SubscriberRegistry, Subscription


def file_locking_supported() -> bool:
    """True when filelock has an OS-level lock (fcntl/msvcrt) on this platform."""
    return not issubclass(FileLock, SoftFileLock)


def _check_name(kind: str, value: str) -> None:
    if not value or value in {".", ".."} or "/" in value or "\\" in value or value.startswith("."):
        raise InvalidTaskError(f"invalid {kind}: {value!r}")


class FileTaskStore(TaskStore):
    """Durable store keeping one JSON file per task.

    Parameters
    ----------
    base_dir:
        Directory holding one sub-directory per list. Defaults to
        ``$AGENT_TASKLIST_DIR`` or ``~/.claude/tasks``.
    settings:
        Lock timeouts, buffer sizes and retry bounds. Read from
        ``<base_dir>/config.yaml`` when omitted.

    Raises
    ------
    UnsupportedError
        The platform offers no OS-level file lock; use
        :class:`~agent_tasklist.task_engine.memory_store.MemoryTaskStore`.
    """

    def __init__(self, base_dir: Optional[Path | str] = None, settings: Optional[TaskListSettings] = None) -> None:
        if not file_locking_supported():
            raise UnsupportedError("FileTaskStore requires OS file locking (fcntl or msvcrt)")
        self.base_dir = resolve_base_dir(base_dir)
        self.settings = settings or load_settings(self.base_dir)
        self._subs = SubscriberRegistry(self.settings.subscriber_buffer, self.settings.lock_poll_interval)

    # -- paths --------------------------------------------------------------

    def _list_dir(self, list_id: str) -> Path:
        _check_name("list ID", list_id)
        return self.base_dir / list_id

    def _task_path(self, list_id: str, task_id: str) -> Path:
        _check_name("task ID", task_id)
        return self._list_dir(list_id) / f"{task_id}{TASK_FILE_SUFFIX}"

    def _ensure_list_dir(self, list_id: str) -> Path:
        path = self._list_dir(list_id)
        try:
            path.mkdir(mode=0o700, parents=True, exist_ok=True)
        except OSError as exc:
            raise TaskStoreIOError(f"failed to create list directory: {exc}", list_id) from exc
        return path

    # -- locking ------------------------------------------------------------

    def _acquire_file_lock(
        self,
        path: Path,
        what: str,
        timeout: Optional[float],
        cancel: Optional[threading.Event],
    ) -> FileLock:
        file_lock = FileLock(str(path), thread_local=False)

        def _try(wait: float) -> bool:
            try:
                file_lock.acquire(timeout=wait, poll_interval=min(wait, self.settings.lock_poll_interval))
            except Timeout:
                return False
            except OSError as exc:
                raise TaskStoreIOError(f"failed to acquire lock {path.name}: {exc}") from exc
            return True

        acquire_with_cancel(
            _try,
            what,
            timeout=timeout if timeout is not None else self.settings.lock_timeout,
            cancel=cancel,
            poll_interval=self.settings.lock_poll_interval,
        )
        return file_lock

    @contextmanager
    def _locked_list(self, list_id: str) -> Iterator[Path]:
        list_dir = self._ensure_list_dir(list_id)
        file_lock = self._acquire_file_lock(list_dir / LIST_LOCK_FILE, f"list {list_id}", None, None)
        try:
            yield list_dir
        finally:
            file_lock.release()

    def lock(
        self,
        list_id: str,
        task_id: str,
        *,
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> TaskLock:
        """Block until the task's advisory lock is held.

        Raises ``LockTimeoutError`` / ``LockCancelledError``; in both cases no
        lock is left held.
        """
        self._ensure_list_dir(list_id)
        lock_path = Path(f"{self._task_path(list_id, task_id)}{LOCK_FILE_SUFFIX}")
        file_lock = self._acquire_file_lock(lock_path, f"{list_id}/{task_id}", timeout, cancel)
        return TaskLock(list_id, task_id, file_lock.release)

    def try_lock(self, list_id: str, task_id: str) -> Optional[TaskLock]:
        self._ensure_list_dir(list_id)
        lock_path = Path(f"{self._task_path(list_id, task_id)}{LOCK_FILE_SUFFIX}")
        file_lock = FileLock(str(lock_path), thread_local=False)
        try:
            file_lock.acquire(timeout=0)
        except Timeout:
            return None
        except OSError as exc:
            raise TaskStoreIOError(f"failed to acquire lock: {exc}", list_id, task_id) from exc
        return TaskLock(list_id, task_id, file_lock.release)

    # -- low-level I/O ------------------------------------------------------

    def _read_task(self, list_id: str, task_id: str) -> TaskListItem:
        path = self._task_path(list_id, task_id)
        try:
            data = _load_json(path)
        except FileNotFoundError:
            raise TaskNotFoundError(task_id, list_id) from None
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise TaskDecodeError(f"failed to decode task file: {exc}", list_id, task_id) from exc
        except OSError as exc:
            raise TaskStoreIOError(f"failed to read task file: {exc}", list_id, task_id) from exc
        errors = TaskListItem.validate_dict(data)
        if not errors and data["id"] != task_id:
            errors.append(f"'id' is {data['id']!r} but the file is named for {task_id!r}")
        if errors:
            raise TaskDecodeError(f"invalid task file: {'; '.join(errors)}", list_id, task_id)
        return TaskListItem.from_dict(data)

    def _write_task(self, list_id: str, task: TaskListItem) -> None:
        try:
            _atomic_write_json(self._task_path(list_id, task.id), task.to_dict())
        except OSError as exc:
            raise TaskStoreIOError(f"failed to write task file: {exc}", list_id, task.id) from exc

    def _task_ids_on_disk(self, list_id: str) -> list[str]:
        list_dir = self._list_dir(list_id)
        try:
            names = os.listdir(list_dir)
        except FileNotFoundError:
            return []
        except OSError as exc:
            raise TaskStoreIOError(f"failed to read list directory: {exc}", list_id) from exc
        ids = [
            name[: -len(TASK_FILE_SUFFIX)]
            for name in names
            if name.endswith(TASK_FILE_SUFFIX) and not name.startswith(".")
        ]
        return sorted(ids, key=task_id_sort_key)

    def _load_all(self, list_id: str) -> dict[str, TaskListItem]:
        tasks: dict[str, TaskListItem] = {}
        for task_id in self._task_ids_on_disk(list_id):
            try:
                tasks[task_id] = self._read_task(list_id, task_id)
            except TaskNotFoundError:
                continue  # deleted between listdir and read
            except TaskDecodeError as exc:
                logger.warning("Skipping corrupt task file: {}", exc)
        return tasks

    def _next_id(self, list_id: str) -> int:
        hwm = _read_int(self._list_dir(list_id) / HIGHWATERMARK_FILE)
        on_disk = [task_id_sort_key(tid)[1] for tid in self._task_ids_on_disk(list_id) if task_id_sort_key(tid)[0] == 0]
        return max([hwm, *on_disk]) + 1

    def _save_highwatermark(self, list_id: str, value: int) -> None:
        path = self._list_dir(list_id) / HIGHWATERMARK_FILE
        if _read_int(path) >= value:
            return
        try:
            _write_text_atomic(path, str(value))
        except OSError as exc:
            raise TaskStoreIOError(f"failed to write high-water mark: {exc}", list_id) from exc

    def _commit(self, list_id: str, mutation: Mutation) -> None:
        # Partners first: a reader may briefly see an edge on the partner only,
        # never a task claiming an edge its partner has not recorded.
        for partner in mutation.touched:
            self._write_task(list_id, partner)
        self._write_task(list_id, mutation.task)

    def _publish(self, events: list[TaskEvent]) -> None:
        for event in events:
            self._subs.publish(event)

    # -- TaskStore ----------------------------------------------------------

    def create(self, list_id: str, task: TaskListItem) -> str:
        with self._locked_list(list_id):
            tasks = self._load_all(list_id)
            candidate = self._next_id(list_id)
            for _ in range(self.settings.id_conflict_retries):
                if not self._task_path(list_id, str(candidate)).exists():
                    break
                logger.debug("Task ID {} already taken in list {}; trying next", candidate, list_id)
                candidate += 1
            else:
                raise TaskStoreIOError(
                    f"could not allocate a task ID after {self.settings.id_conflict_retries} attempts", list_id
                )
            task_id = str(candidate)
            mutation = plan_create(list_id, task_id, task, tasks)
            self._commit(list_id, mutation)
            self._save_highwatermark(list_id, candidate)
            self._publish(mutation.events(list_id))
        logger.info("Created task {} in list {}: {}", task_id, list_id, mutation.task.subject)
        return task_id

    def get(self, list_id: str, task_id: str) -> TaskListItem:
        return self._read_task(list_id, task_id)

    def update(self, list_id: str, task_id: str, update: TaskUpdateInput) -> TaskListItem:
        if update.status == TaskStatus.DELETED:
            snapshot = self._read_task(list_id, task_id)
            self.delete(list_id, task_id)
            snapshot.status = TaskStatus.DELETED
            return snapshot
        with self._locked_list(list_id):
            tasks = self._load_all(list_id)
            tasks[task_id] = self._read_task(list_id, task_id)
            mutation = plan_update(list_id, task_id, update, tasks)
            self._commit(list_id, mutation)
            self._publish(mutation.events(list_id))
        if mutation.unblocked:
            logger.debug(
                "Completing task {} in list {} unblocked {}",
                task_id,
                list_id,
                [t.id for t in mutation.unblocked],
            )
        return mutation.task.copy()

    def list(self, list_id: str) -> list[TaskListItem]:
        return sort_tasks(self._load_all(list_id).values())

    def delete(self, list_id: str, task_id: str) -> None:
        path = self._task_path(list_id, task_id)
        with self._locked_list(list_id):
            try:
                path.unlink()
            except FileNotFoundError:
                raise TaskNotFoundError(task_id, list_id) from None
            except OSError as exc:
                raise TaskStoreIOError(f"failed to delete task file: {exc}", list_id, task_id) from exc
            self._publish([TaskEvent(TaskEventType.DELETED, list_id, task_id)])
        logger.info("Deleted task {} from list {}", task_id, list_id)

    def _remove_task_files(self, list_id: str) -> int:
        list_dir = self._list_dir(list_id)
        removed = 0
        try:
            names = os.listdir(list_dir)
        except FileNotFoundError:
            return 0
        except OSError as exc:
            raise TaskStoreIOError(f"failed to read list directory: {exc}", list_id) from exc
        for name in names:
            if not (name.endswith(TASK_FILE_SUFFIX) or name.endswith(TMP_SUFFIX)):
                continue
            try:
                (list_dir / name).unlink()
            except FileNotFoundError:
                continue
            except OSError as exc:
                raise TaskStoreIOError(f"failed to remove {name}: {exc}", list_id) from exc
            if name.endswith(TASK_FILE_SUFFIX):
                removed += 1
        return removed

    def clear(self, list_id: str) -> None:
        """Remove every task file. Lock files and the ID high-water mark stay."""
        if not self._list_dir(list_id).exists():
            return
        with self._locked_list(list_id):
            removed = self._remove_task_files(list_id)
        logger.info("Cleared list {} ({} tasks)", list_id, removed)

    def subscribe(
        self,
        list_id: str,
        cancel: Optional[threading.Event] = None,
        maxsize: Optional[int] = None,
    ) -> Subscription:
        """Events for mutations made through this store instance."""
        return self._subs.subscribe(list_id, cancel=cancel, maxsize=maxsize)

    # -- export / import ----------------------------------------------------

    def export(self, list_id: str) -> list[TaskListItem]:
        return self.list(list_id)

    def import_tasks(self, list_id: str, tasks: list[TaskListItem], clear_first: bool = False) -> None:
        """Write *tasks* verbatim (IDs, fields, edges).

        Without ``clear_first`` existing tasks with the same IDs are
        overwritten and the rest are kept.
        """
        seen: set[str] = set()
        for task in tasks:
            _check_name("task ID", task.id)
            if task.status == TaskStatus.DELETED:
                raise InvalidTaskError(f"cannot import task {task.id} with status 'deleted'")
            if task.id in seen:
                raise TaskAlreadyExistsError(task.id, list_id)
            seen.add(task.id)
        with self._locked_list(list_id):
            if clear_first:
                self._remove_task_files(list_id)
            for task in tasks:
                self._write_task(list_id, task)
            numeric = [task_id_sort_key(t.id)[1] for t in tasks if task_id_sort_key(t.id)[0] == 0]
            if numeric:
                self._save_highwatermark(list_id, max(numeric))
        logger.info("Imported {} tasks into list {} (clear_first={})", len(tasks), list_id, clear_first)

    def list_ids(self) -> list[str]:
        try:
            entries = list(os.scandir(self.base_dir))
        except FileNotFoundError:
            return []
        except OSError as exc:
            raise TaskStoreIOError(f"failed to read base directory: {exc}") from exc
        return sorted(e.name for e in entries if e.is_dir() and not e.name.startswith("."))
