"""Tests for the task model (task_engine/model.py)."""

from __future__ import annotations

import pytest

from agent_tasklist.task_engine.model import (
    DELETE,
    UNSET,
    TaskEvent,
    TaskEventType,
    TaskListItem,
    TaskStatus,
    TaskUpdateInput,
)


class TestTaskListItem:
    def test_defaults(self) -> None:
        task = TaskListItem(subject="Write docs")
        assert task.status == TaskStatus.PENDING
        assert task.owner == ""
        assert task.blocks == []
        assert task.blocked_by == []
        assert task.metadata == {}
        assert not task.is_claimed
        assert not task.is_completed

    def test_to_dict_uses_file_schema(self) -> None:
        task = TaskListItem(
            id="3",
            subject="Ship",
            description="Cut the release",
            active_form="Shipping",
            status=TaskStatus.IN_PROGRESS,
            owner="agent-1",
            blocks=["4"],
            blocked_by=["1", "2"],
            metadata={"priority": "high"},
        )
        assert task.to_dict() == {
            "id": "3",
            "subject": "Ship",
            "description": "Cut the release",
            "activeForm": "Shipping",
            "status": "in_progress",
            "owner": "agent-1",
            "blocks": ["4"],
            "blockedBy": ["1", "2"],
            "metadata": {"priority": "high"},
        }

    def test_from_dict_fills_missing_optional_keys(self) -> None:
        task = TaskListItem.from_dict({"id": "7", "subject": "Minimal"})
        assert task.id == "7"
        assert task.status == TaskStatus.PENDING
        assert task.active_form == ""
        assert task.blocked_by == []

    def test_from_dict_dedupes_edges(self) -> None:
        task = TaskListItem.from_dict({"id": "1", "blockedBy": ["2", "2", "3"]})
        assert task.blocked_by == ["2", "3"]

    def test_roundtrip(self) -> None:
        task = TaskListItem(id="1", subject="x", metadata={"nested": {"a": [1, 2]}}, blocks=["2"])
        assert TaskListItem.from_dict(task.to_dict()) == task

    def test_copy_is_independent(self) -> None:
        task = TaskListItem(id="1", metadata={"tags": ["a"]}, blocks=["2"])
        snap = task.copy()
        snap.metadata["tags"].append("b")
        snap.blocks.append("3")
        assert task.metadata == {"tags": ["a"]}
        assert task.blocks == ["2"]

    def test_add_edges_report_change(self) -> None:
        task = TaskListItem(id="1")
        assert task.add_blocked_by("2") is True
        assert task.add_blocked_by("2") is False
        assert task.add_blocks("3") is True
        assert task.add_blocks("3") is False
        assert task.blocked_by == ["2"]
        assert task.blocks == ["3"]


class TestValidateDict:
    def test_valid(self) -> None:
        assert TaskListItem.validate_dict(TaskListItem(id="1", subject="ok").to_dict()) == []

    def test_not_an_object(self) -> None:
        assert TaskListItem.validate_dict(["nope"]) == ["Expected a JSON object"]

    def test_missing_id(self) -> None:
        errors = TaskListItem.validate_dict({"subject": "x"})
        assert any("'id'" in e for e in errors)

    def test_deleted_status_is_not_a_stored_state(self) -> None:
        errors = TaskListItem.validate_dict({"id": "1", "status": "deleted"})
        assert any("'status'" in e for e in errors)

    def test_bad_field_types(self) -> None:
        errors = TaskListItem.validate_dict(
            {"id": "1", "subject": 3, "blockedBy": "2", "metadata": [], "blocks": [1]}
        )
        assert len(errors) == 4


class TestTaskStatus:
    def test_rank_is_monotonic(self) -> None:
        assert TaskStatus.PENDING.rank < TaskStatus.IN_PROGRESS.rank < TaskStatus.COMPLETED.rank

    def test_str_enum_compares_to_value(self) -> None:
        assert TaskStatus("in_progress") is TaskStatus.IN_PROGRESS
        assert TaskStatus.COMPLETED == "completed"


class TestTaskUpdateInput:
    def test_all_unset_by_default(self) -> None:
        update = TaskUpdateInput()
        assert update.subject is UNSET
        assert update.is_empty
        assert update.fields_set() == []

    def test_empty_string_is_a_real_update(self) -> None:
        update = TaskUpdateInput(owner="")
        assert update.fields_set() == ["owner"]
        assert not update.is_empty

    def test_status_coerced_from_string(self) -> None:
        assert TaskUpdateInput(status="completed").status is TaskStatus.COMPLETED

    def test_unknown_status_rejected(self) -> None:
        with pytest.raises(ValueError):
            TaskUpdateInput(status="paused")

    def test_fields_set_lists_edges_and_metadata(self) -> None:
        update = TaskUpdateInput(add_blocked_by=["1"], metadata={"k": DELETE})
        assert update.fields_set() == ["add_blocked_by", "metadata"]

    def test_sentinels_are_falsy_and_survive_copy(self) -> None:
        import copy

        assert not UNSET
        assert not DELETE
        assert copy.deepcopy({"k": DELETE})["k"] is DELETE
        assert repr(DELETE) == "DELETE"


class TestTaskEvent:
    def test_to_dict_with_task(self) -> None:
        event = TaskEvent(TaskEventType.CREATED, "list-a", "1", TaskListItem(id="1", subject="s"))
        data = event.to_dict()
        assert data["type"] == "created"
        assert data["listId"] == "list-a"
        assert data["taskId"] == "1"
        assert data["task"]["subject"] == "s"

    def test_to_dict_without_task(self) -> None:
        data = TaskEvent(TaskEventType.DELETED, "list-a", "1").to_dict()
        assert "task" not in data
