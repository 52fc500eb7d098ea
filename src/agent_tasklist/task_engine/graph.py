"""Dependency-graph bookkeeping shared by every store.

All helpers work on a ``{task_id: TaskListItem}`` mapping holding the
current state of one list, so the in-memory and file-backed stores run the
same rules: edges are validated before anything is written, both sides of an
edge are recorded together, and completion computes the set of dependants
that just became unblocked.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Iterable, Mapping, MutableMapping

from ..errors import (
    AlreadyClaimedError,
    DependencyCycleError,
    InvalidTaskError,
    InvalidTransitionError,
    SelfDependencyError,
    TaskNotFoundError,
)
from .model import DELETE, UNSET, TaskEvent, TaskEventType, TaskListItem, TaskStatus, TaskUpdateInput

Edge = tuple[str, str]  # (blocked task, blocker)


# ---------------------------------------------------------------------------
# Ordering
# ---------------------------------------------------------------------------

def task_id_sort_key(task_id: str) -> tuple[int, int, str]:
    """Numeric IDs first in numeric order, anything else after, lexically."""
    try:
        return (0, int(task_id), "")
    except ValueError:
        return (1, 0, task_id)


def sort_tasks(tasks: Iterable[TaskListItem]) -> list[TaskListItem]:
    return sorted(tasks, key=lambda t: task_id_sort_key(t.id))


# ---------------------------------------------------------------------------
# Blocked predicate
# ---------------------------------------------------------------------------

def unmet_blockers(task: TaskListItem, tasks: Mapping[str, TaskListItem]) -> list[str]:
    """Blockers that are not completed. A blocker that no longer exists counts as unmet."""
    unmet: list[str] = []
    for blocker_id in task.blocked_by:
        blocker = tasks.get(blocker_id)
        if blocker is None or blocker.status != TaskStatus.COMPLETED:
            unmet.append(blocker_id)
    return unmet


def is_blocked(task: TaskListItem, tasks: Mapping[str, TaskListItem]) -> bool:
    return bool(unmet_blockers(task, tasks))


def is_available(task: TaskListItem, tasks: Mapping[str, TaskListItem]) -> bool:
    """Pending, unowned and not blocked: free to be claimed."""
    return task.status == TaskStatus.PENDING and not task.is_claimed and not is_blocked(task, tasks)


# ---------------------------------------------------------------------------
# Edge validation
# ---------------------------------------------------------------------------

def _reaches(graph: Mapping[str, set[str]], start: str, target: str) -> bool:
    """True if *target* is reachable from *start* following blocked-by edges."""
    visited: set[str] = set()
    queue: deque[str] = deque([start])
    while queue:
        current = queue.popleft()
        if current == target:
            return True
        if current in visited:
            continue
        visited.add(current)
        queue.extend(graph.get(current, ()))
    return False


def plan_edges(
    task_id: str,
    add_blocked_by: Iterable[str],
    add_blocks: Iterable[str],
    tasks: Mapping[str, TaskListItem],
    list_id: str | None = None,
) -> list[Edge]:
    """Validate requested edges around *task_id* and return the new ones.

    ``add_blocked_by`` makes *task_id* blocked by each ID; ``add_blocks``
    makes each ID blocked by *task_id*. Edges that already exist are dropped
    from the result. *task_id* itself need not be in *tasks* yet (create).

    Raises:
        SelfDependencyError: an edge from a task to itself.
        TaskNotFoundError: the other end of an edge does not exist.
        DependencyCycleError: the edge would close a cycle.
    """
    graph: dict[str, set[str]] = {tid: set(t.blocked_by) for tid, t in tasks.items()}
    graph.setdefault(task_id, set())
    requested = [(task_id, dep) for dep in add_blocked_by]
    requested += [(dependent, task_id) for dependent in add_blocks]

    planned: list[Edge] = []
    for blocked, blocker in requested:
        if blocked == blocker:
            raise SelfDependencyError(blocked)
        for end in (blocked, blocker):
            if end != task_id and end not in tasks:
                raise TaskNotFoundError(end, list_id)
        if blocker in graph[blocked]:
            if (blocked, blocker) not in planned and _needs_mirror(blocked, blocker, tasks):
                planned.append((blocked, blocker))
            continue
        if _reaches(graph, blocker, blocked):
            raise DependencyCycleError(blocked, blocker)
        graph[blocked].add(blocker)
        planned.append((blocked, blocker))
    return planned


def _needs_mirror(blocked: str, blocker: str, tasks: Mapping[str, TaskListItem]) -> bool:
    # Edge present on one side only (e.g. a file written by another tool).
    blocker_task = tasks.get(blocker)
    return blocker_task is not None and blocked not in blocker_task.blocks


def apply_edges(edges: Iterable[Edge], tasks: MutableMapping[str, TaskListItem]) -> set[str]:
    """Record both sides of each edge; returns the IDs of tasks that changed."""
    changed: set[str] = set()
    for blocked, blocker in edges:
        if tasks[blocked].add_blocked_by(blocker):
            changed.add(blocked)
        if tasks[blocker].add_blocks(blocked):
            changed.add(blocker)
    return changed


# ---------------------------------------------------------------------------
# Field updates
# ---------------------------------------------------------------------------

def check_transition(task: TaskListItem, target: TaskStatus) -> None:
    """Statuses only move forward: pending -> in_progress -> completed."""
    if target == task.status or target == TaskStatus.DELETED:
        return
    if target.rank < task.status.rank:
        raise InvalidTransitionError(task.id, task.status.value, target.value)


def apply_fields(task: TaskListItem, update: TaskUpdateInput) -> None:
    """Apply the scalar and metadata parts of *update* to *task* in place."""
    if update.status is not UNSET:
        check_transition(task, update.status)
    if update.subject is not UNSET:
        task.subject = str(update.subject)
    if update.description is not UNSET:
        task.description = str(update.description)
    if update.active_form is not UNSET:
        task.active_form = str(update.active_form)
    if update.owner is not UNSET:
        task.owner = str(update.owner)
    if update.status is not UNSET:
        task.status = update.status
    for key, value in update.metadata.items():
        if value is DELETE:
            task.metadata.pop(key, None)
        else:
            task.metadata[key] = value


def classify_update(before: TaskListItem, after: TaskListItem) -> TaskEventType:
    if before.status != TaskStatus.COMPLETED and after.status == TaskStatus.COMPLETED:
        return TaskEventType.COMPLETED
    if after.owner and after.owner != before.owner:
        return TaskEventType.CLAIMED
    return TaskEventType.UPDATED


def newly_unblocked(completed: TaskListItem, tasks: Mapping[str, TaskListItem]) -> list[TaskListItem]:
    """Dependants of *completed* whose blockers are now all completed."""
    candidates = set(completed.blocks)
    candidates.update(tid for tid, t in tasks.items() if completed.id in t.blocked_by)
    out: list[TaskListItem] = []
    for tid in candidates:
        task = tasks.get(tid)
        if task is None or task.status == TaskStatus.COMPLETED:
            continue
        if not is_blocked(task, tasks):
            out.append(task)
    return sort_tasks(out)


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------

@dataclass
class Mutation:
    """Outcome of a create or update, computed before anything is persisted."""

    task: TaskListItem
    event_type: TaskEventType
    touched: list[TaskListItem] = field(default_factory=list)
    unblocked: list[TaskListItem] = field(default_factory=list)

    def events(self, list_id: str) -> list[TaskEvent]:
        """Events in delivery order: the task itself, edge partners, then unblocked dependants."""
        out = [TaskEvent(self.event_type, list_id, self.task.id, self.task.copy())]
        out += [TaskEvent(TaskEventType.UPDATED, list_id, t.id, t.copy()) for t in self.touched]
        out += [TaskEvent(TaskEventType.UNBLOCKED, list_id, t.id, t.copy()) for t in self.unblocked]
        return out


def plan_create(
    list_id: str,
    task_id: str,
    item: TaskListItem,
    tasks: MutableMapping[str, TaskListItem],
) -> Mutation:
    """Insert a copy of *item* as *task_id* into *tasks*, mirroring any edges it carries.

    Validation happens before *tasks* is modified.
    """
    new = item.copy()
    new.id = task_id
    if new.status == TaskStatus.DELETED:
        raise InvalidTaskError("cannot create a task with status 'deleted'")
    edges = plan_edges(task_id, new.blocked_by, new.blocks, tasks, list_id)
    new.blocked_by = []
    new.blocks = []
    tasks[task_id] = new
    changed = apply_edges(edges, tasks)
    touched = [tasks[tid] for tid in sorted(changed - {task_id}, key=task_id_sort_key)]
    return Mutation(task=new, event_type=TaskEventType.CREATED, touched=touched)


def plan_update(
    list_id: str,
    task_id: str,
    update: TaskUpdateInput,
    tasks: MutableMapping[str, TaskListItem],
) -> Mutation:
    """Apply *update* to ``tasks[task_id]`` and its edge partners.

    Either every change lands in *tasks* or, when validation fails, none
    does.
    """
    current = tasks.get(task_id)
    if current is None:
        raise TaskNotFoundError(task_id, list_id)
    if update.expected_owner is not UNSET and current.owner != update.expected_owner:
        raise AlreadyClaimedError(task_id, current.owner)
    edges = plan_edges(task_id, update.add_blocked_by, update.add_blocks, tasks, list_id)
    candidate = current.copy()
    apply_fields(candidate, update)

    tasks[task_id] = candidate
    changed = apply_edges(edges, tasks)
    touched = [tasks[tid] for tid in sorted(changed - {task_id}, key=task_id_sort_key)]

    event_type = classify_update(current, candidate)
    unblocked: list[TaskListItem] = []
    if event_type == TaskEventType.COMPLETED:
        unblocked = newly_unblocked(candidate, tasks)
    return Mutation(task=candidate, event_type=event_type, touched=touched, unblocked=unblocked)
