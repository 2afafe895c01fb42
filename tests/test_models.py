"""
Tests for TaskDeck Pydantic models.

Tests cover:
- Model creation and validation
- Field constraints
- Computed properties
- Tag normalization
"""

from datetime import datetime
from uuid import UUID, uuid4

import pytest
from pydantic import ValidationError

from taskdeck.models import (
    Task,
    TaskList,
    TaskMove,
    TaskPage,
    TaskStatus,
    TaskUpdate,
    normalize_tags,
)


class TestTaskList:
    """Tests for TaskList model."""

    def test_tasklist_creation_minimal(self):
        """Test creating a task list with minimal required fields."""
        task_list = TaskList(user_id=uuid4(), title="Work")

        assert task_list.title == "Work"
        assert isinstance(task_list.id, UUID)
        assert isinstance(task_list.created_at, datetime)
        assert task_list.task_count == 0

    def test_tasklist_title_validation(self):
        with pytest.raises(ValidationError):
            TaskList(user_id=uuid4(), title="")
        with pytest.raises(ValidationError):
            TaskList(user_id=uuid4(), title="x" * 201)

    def test_tasklist_completion_percentage_no_tasks(self):
        task_list = TaskList(user_id=uuid4(), title="Work")
        assert task_list.completion_percentage == 0.0

    def test_tasklist_update_counts(self):
        task_list = TaskList(user_id=uuid4(), title="Work")

        task_list.update_counts(task_count=3, done_count=1)

        assert task_list.task_count == 3
        assert task_list.completion_percentage == 33.3

    def test_computed_fields_serialized(self):
        task_list = TaskList(user_id=uuid4(), title="Work")
        task_list.update_counts(task_count=4, done_count=4)

        dumped = task_list.model_dump()

        assert dumped["task_count"] == 4
        assert dumped["completion_percentage"] == 100.0


class TestTask:
    """Tests for Task model."""

    def test_task_creation_minimal(self):
        task = Task(user_id=uuid4(), list_id=uuid4(), title="Buy milk")

        assert task.status == TaskStatus.TODO
        assert task.priority == 3
        assert task.tags == []
        assert task.due_date is None
        assert task.is_done is False

    def test_status_from_string(self):
        task = Task(user_id=uuid4(), list_id=uuid4(), title="x", status="done")
        assert task.status == TaskStatus.DONE
        assert task.is_done is True

    def test_unknown_status_rejected(self):
        with pytest.raises(ValidationError):
            Task(user_id=uuid4(), list_id=uuid4(), title="x", status="blocked")

    @pytest.mark.parametrize("priority", [0, 6])
    def test_priority_bounds(self, priority):
        with pytest.raises(ValidationError):
            Task(user_id=uuid4(), list_id=uuid4(), title="x", priority=priority)

    def test_title_validation(self):
        with pytest.raises(ValidationError):
            Task(user_id=uuid4(), list_id=uuid4(), title="")
        with pytest.raises(ValidationError):
            Task(user_id=uuid4(), list_id=uuid4(), title="x" * 501)

    def test_tags_normalized(self):
        task = Task(user_id=uuid4(), list_id=uuid4(), title="x", tags=["a", " b ", "", "a"])
        assert task.tags == ["a", "b"]


class TestNormalizeTags:
    """Tests for normalize_tags()."""

    def test_empty(self):
        assert normalize_tags(None) == []
        assert normalize_tags([]) == []

    def test_keeps_first_seen_order(self):
        assert normalize_tags(["z", "a", "z"]) == ["z", "a"]

    def test_comma_rejected(self):
        with pytest.raises(ValueError, match="comma"):
            normalize_tags(["a,b"])


class TestRequestModels:
    """Tests for request payloads."""

    def test_update_tracks_set_fields(self):
        patch = TaskUpdate(description=None, priority=4)
        assert patch.model_dump(exclude_unset=True) == {"description": None, "priority": 4}

    def test_move_requires_target(self):
        with pytest.raises(ValidationError):
            TaskMove()

    def test_move_anchor_optional(self):
        move = TaskMove(target_list_id=uuid4())
        assert move.after_task_id is None


class TestTaskPage:
    """Tests for TaskPage."""

    @pytest.mark.parametrize("total,page_size,expected", [(0, 20, 0), (20, 20, 1), (21, 20, 2), (25, 10, 3)])
    def test_total_pages(self, total, page_size, expected):
        assert TaskPage(page=1, page_size=page_size, total=total).total_pages == expected
