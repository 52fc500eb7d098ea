"""Task model shared by every store and by the task manager.

A :class:`TaskListItem` serializes to the on-disk JSON schema used by the
agent runtime (camelCase keys, one file per task), so files written here are
readable by the runtime and vice versa.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class TaskStatus(str, Enum):
    """Lifecycle state of a task.

    ``DELETED`` is never written to disk; a deleted task's file is removed.
    """

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    DELETED = "deleted"

    @property
    def rank(self) -> int:
        return {"pending": 0, "in_progress": 1, "completed": 2, "deleted": 3}[self.value]


class TaskEventType(str, Enum):
    """The kind of change carried by a :class:`TaskEvent`."""

    CREATED = "created"
    UPDATED = "updated"
    CLAIMED = "claimed"
    COMPLETED = "completed"
    UNBLOCKED = "unblocked"
    DELETED = "deleted"


# ---------------------------------------------------------------------------
# Sentinels
# ---------------------------------------------------------------------------

class _Sentinel:
    __slots__ = ("_name",)

    def __init__(self, name: str) -> None:
        self._name = name

    def __repr__(self) -> str:
        return self._name

    def __bool__(self) -> bool:
        return False

    def __copy__(self) -> "_Sentinel":
        return self

    def __deepcopy__(self, memo: dict[int, Any]) -> "_Sentinel":
        return self


UNSET: Any = _Sentinel("UNSET")
"""Default for :class:`TaskUpdateInput` fields that were not mentioned."""

DELETE: Any = _Sentinel("DELETE")
"""Metadata value meaning "remove this key"."""


# ---------------------------------------------------------------------------
# Task dataclass
# ---------------------------------------------------------------------------

@dataclass
class TaskListItem:
    """A task in a shared task list.

    ``blocks`` and ``blocked_by`` are kept as mutual inverses by the stores:
    if A is blocked by B then B blocks A.
    """

    id: str = ""
    subject: str = ""
    description: str = ""
    active_form: str = ""
    status: TaskStatus = TaskStatus.PENDING
    owner: str = ""
    blocks: list[str] = field(default_factory=list)
    blocked_by: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    @classmethod
    def validate_dict(cls, data: Any) -> list[str]:
        """Check a decoded task file. Returns a list of error strings (empty = valid)."""
        errors: list[str] = []
        if not isinstance(data, dict):
            return ["Expected a JSON object"]
        task_id = data.get("id")
        if not isinstance(task_id, str) or not task_id:
            errors.append("'id' is required and must be a non-empty string")
        for key in ("subject", "description", "activeForm", "owner"):
            val = data.get(key)
            if val is not None and not isinstance(val, str):
                errors.append(f"'{key}' must be a string")
        status = data.get("status")
        if status is not None:
            valid = {TaskStatus.PENDING.value, TaskStatus.IN_PROGRESS.value, TaskStatus.COMPLETED.value}
            if status not in valid:
                errors.append(f"'status' must be one of {sorted(valid)}, got '{status}'")
        for key in ("blocks", "blockedBy"):
            val = data.get(key)
            if val is None:
                continue
            if not isinstance(val, list) or not all(isinstance(v, str) for v in val):
                errors.append(f"'{key}' must be an array of task IDs")
        meta = data.get("metadata")
        if meta is not None and not isinstance(meta, dict):
            errors.append("'metadata' must be an object")
        return errors

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the on-disk JSON layout."""
        return {
            "id": self.id,
            "subject": self.subject,
            "description": self.description,
            "activeForm": self.active_form,
            "status": self.status.value,
            "owner": self.owner,
            "blocks": list(self.blocks),
            "blockedBy": list(self.blocked_by),
            "metadata": copy.deepcopy(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TaskListItem":
        """Deserialize from the on-disk layout; absent optional keys take defaults."""
        status_raw = data.get("status") or TaskStatus.PENDING.value
        return cls(
            id=str(data.get("id", "")),
            subject=str(data.get("subject", "") or ""),
            description=str(data.get("description", "") or ""),
            active_form=str(data.get("activeForm", "") or ""),
            status=TaskStatus(status_raw),
            owner=str(data.get("owner", "") or ""),
            blocks=_unique(data.get("blocks") or []),
            blocked_by=_unique(data.get("blockedBy") or []),
            metadata=copy.deepcopy(dict(data.get("metadata") or {})),
        )

    def copy(self) -> "TaskListItem":
        """Independent snapshot; mutating it never touches store state."""
        return copy.deepcopy(self)

    # ------------------------------------------------------------------
    # Status helpers
    # ------------------------------------------------------------------

    @property
    def is_claimed(self) -> bool:
        return self.owner != ""

    @property
    def is_completed(self) -> bool:
        return self.status == TaskStatus.COMPLETED

    # ------------------------------------------------------------------
    # Dependency helpers
    # ------------------------------------------------------------------

    def add_blocked_by(self, task_id: str) -> bool:
        if task_id in self.blocked_by:
            return False
        self.blocked_by.append(task_id)
        return True

    def add_blocks(self, task_id: str) -> bool:
        if task_id in self.blocks:
            return False
        self.blocks.append(task_id)
        return True


def _unique(items: list[Any]) -> list[str]:
    out: list[str] = []
    for item in items:
        s = str(item)
        if s not in out:
            out.append(s)
    return out


# ---------------------------------------------------------------------------
# Partial update
# ---------------------------------------------------------------------------

@dataclass
class TaskUpdateInput:
    """A partial update; only fields that are not :data:`UNSET` are applied.

    ``add_blocks`` / ``add_blocked_by`` append edges (both sides are kept in
    sync by the store). In ``metadata`` a value of :data:`DELETE` removes the
    key, any other value (``None`` included) sets it, and keys that are not
    present are left alone.

    ``expected_owner`` is a precondition, not a change: when set, the update
    applies only if the task's current owner equals it, checked under the
    store's mutation lock. A mismatch raises ``AlreadyClaimedError``.
    """

    subject: Any = UNSET
    description: Any = UNSET
    active_form: Any = UNSET
    status: Any = UNSET
    owner: Any = UNSET
    add_blocks: list[str] = field(default_factory=list)
    add_blocked_by: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    expected_owner: Any = UNSET

    def __post_init__(self) -> None:
        if self.status is not UNSET and not isinstance(self.status, TaskStatus):
            self.status = TaskStatus(str(self.status))

    def fields_set(self) -> list[str]:
        names = [
            name
            for name in ("subject", "description", "active_form", "status", "owner")
            if getattr(self, name) is not UNSET
        ]
        if self.add_blocks:
            names.append("add_blocks")
        if self.add_blocked_by:
            names.append("add_blocked_by")
        if self.metadata:
            names.append("metadata")
        return names

    @property
    def is_empty(self) -> bool:
        return not self.fields_set()


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

@dataclass
class TaskEvent:
    """A change notification delivered to subscribers of a list.

    ``task`` is a snapshot taken after the change; it is ``None`` for
    deletions.
    """

    type: TaskEventType
    list_id: str
    task_id: str
    task: Optional[TaskListItem] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": self.type.value,
            "listId": self.list_id,
            "taskId": self.task_id,
        }
        if self.task is not None:
            data["task"] = self.task.to_dict()
        return data
