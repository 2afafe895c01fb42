"""
Pydantic models for TaskDeck.

Defines the core data structures for task lists and tasks, the typed request
structs accepted by the service layer, and the query/page shapes returned by
the task query engine.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, PrivateAttr, computed_field, field_validator

MIN_PRIORITY = 1
MAX_PRIORITY = 5
DEFAULT_PRIORITY = 3

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100

# Fields the query engine can order by; camelCase aliases match the wire format.
SORTABLE_FIELDS = (
    "title",
    "status",
    "priority",
    "due_date",
    "created_at",
    "updated_at",
    "position",
)
SORT_FIELD_ALIASES = {
    "dueDate": "due_date",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
}


class TaskStatus(str, Enum):
    """Workflow state of a task."""

    TODO = "todo"
    DOING = "doing"
    DONE = "done"


class DueBucket(str, Enum):
    """Relative due-date windows understood by the query engine."""

    TODAY = "today"
    OVERDUE = "overdue"
    WEEK = "week"


def normalize_tags(tags: Optional[List[str]]) -> List[str]:
    """
    Strip, de-duplicate and validate a tag list, keeping first-seen order.

    Raises:
        ValueError: If a tag contains a comma (tags are persisted comma-joined)
    """
    if not tags:
        return []
    seen = []
    for tag in tags:
        tag = tag.strip()
        if not tag:
            continue
        if "," in tag:
            raise ValueError(f"Tag '{tag}' must not contain a comma")
        if tag not in seen:
            seen.append(tag)
    return seen


class User(BaseModel):
    """Account that owns lists and tasks."""

    id: UUID = Field(default_factory=uuid4)
    email: str = Field(..., min_length=3, max_length=255)
    name: Optional[str] = Field(default=None, max_length=200)
    created_at: datetime = Field(default_factory=datetime.utcnow)


class TaskList(BaseModel):
    """
    Represents a task list (e.g., Work, Home, Personal).

    Lists are ordered per user by their fractional ``position``.
    """

    id: UUID = Field(default_factory=uuid4, description="Unique identifier for the list")
    user_id: UUID = Field(..., description="Owner of the list")
    title: str = Field(..., min_length=1, max_length=200, description="List title")
    position: float = Field(default=0.0, description="Sort key among the user's lists")
    created_at: datetime = Field(default_factory=datetime.utcnow, description="Creation timestamp")
    updated_at: datetime = Field(default_factory=datetime.utcnow, description="Last update timestamp")

    # Private attributes for computed properties
    _task_count: int = PrivateAttr(default=0)
    _done_count: int = PrivateAttr(default=0)

    class Config:
        """Pydantic configuration."""
        json_schema_extra = {
            "example": {
                "id": "123e4567-e89b-12d3-a456-426614174000",
                "user_id": "0f0e0d0c-0b0a-0908-0706-050403020100",
                "title": "Work",
                "position": 65536.0,
                "created_at": "2025-01-14T10:00:00",
            }
        }

    @computed_field
    @property
    def task_count(self) -> int:
        """Total number of tasks in this list."""
        return self._task_count

    @computed_field
    @property
    def completion_percentage(self) -> float:
        """
        Calculate completion percentage for this list.

        Returns:
            Percentage of tasks with status ``done`` (0-100)
        """
        if self._task_count == 0:
            return 0.0
        return round((self._done_count / self._task_count) * 100, 1)

    def update_counts(self, task_count: int, done_count: int) -> None:
        """
        Update the task counts for computed properties.

        Args:
            task_count: Total number of tasks
            done_count: Number of tasks with status ``done``
        """
        self._task_count = task_count
        self._done_count = done_count


class Task(BaseModel):
    """
    Represents a single task inside a list.

    Tasks are ordered within their list by ``position``; moving a task to
    another list changes ``list_id`` and ``position`` together.
    """

    id: UUID = Field(default_factory=uuid4, description="Unique identifier for the task")
    user_id: UUID = Field(..., description="Owner of the task")
    list_id: UUID = Field(..., description="ID of the list this task belongs to")
    title: str = Field(..., min_length=1, max_length=500, description="Task title")
    description: Optional[str] = Field(default=None, max_length=5000, description="Optional description")
    status: TaskStatus = Field(default=TaskStatus.TODO)
    priority: int = Field(default=DEFAULT_PRIORITY, ge=MIN_PRIORITY, le=MAX_PRIORITY)
    tags: List[str] = Field(default_factory=list)
    due_date: Optional[datetime] = Field(default=None, description="Due date (naive UTC)")
    position: float = Field(default=0.0, description="Sort key within the list")
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        """Pydantic configuration."""
        json_schema_extra = {
            "example": {
                "id": "123e4567-e89b-12d3-a456-426614174001",
                "user_id": "0f0e0d0c-0b0a-0908-0706-050403020100",
                "list_id": "123e4567-e89b-12d3-a456-426614174000",
                "title": "Complete project documentation",
                "description": "Include API docs and user guide",
                "status": "todo",
                "priority": 3,
                "tags": ["docs"],
                "due_date": None,
                "position": 65536.0,
                "created_at": "2025-01-14T10:00:00",
            }
        }

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, v: List[str]) -> List[str]:
        """Normalize tags (strip, drop blanks, de-duplicate)."""
        return normalize_tags(v)

    @computed_field
    @property
    def is_done(self) -> bool:
        """Whether the task is in the ``done`` state."""
        return self.status == TaskStatus.DONE


# ==============================================================================
# REQUEST STRUCTS
# ==============================================================================


class ListCreate(BaseModel):
    """Payload for creating a list, optionally right after another list."""
    title: str = Field(..., min_length=1, max_length=200)
    after_list_id: Optional[UUID] = None


class ListUpdate(BaseModel):
    """Payload for renaming a list."""
    title: str = Field(..., min_length=1, max_length=200)


class ListReorder(BaseModel):
    """Move the list at ``source_index`` to ``target_index``."""
    source_index: int = Field(..., ge=0)
    target_index: int = Field(..., ge=0)


class TaskCreate(BaseModel):
    """Payload for creating a task."""
    title: str = Field(..., min_length=1, max_length=500)
    description: Optional[str] = Field(default=None, max_length=5000)
    status: TaskStatus = TaskStatus.TODO
    priority: int = Field(default=DEFAULT_PRIORITY, ge=MIN_PRIORITY, le=MAX_PRIORITY)
    tags: List[str] = Field(default_factory=list)
    due_date: Optional[datetime] = None
    after_task_id: Optional[UUID] = None

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, v: List[str]) -> List[str]:
        return normalize_tags(v)


class TaskUpdate(BaseModel):
    """
    Partial update of a task's own fields.

    Only fields explicitly set are applied (``model_dump(exclude_unset=True)``),
    so ``description=None`` clears the description while omitting it leaves it
    untouched. Position and list membership change only through move/reorder.
    """
    title: Optional[str] = Field(default=None, min_length=1, max_length=500)
    description: Optional[str] = Field(default=None, max_length=5000)
    status: Optional[TaskStatus] = None
    priority: Optional[int] = Field(default=None, ge=MIN_PRIORITY, le=MAX_PRIORITY)
    tags: Optional[List[str]] = None
    due_date: Optional[datetime] = None

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        if v is None:
            return None
        return normalize_tags(v)


class TaskMove(BaseModel):
    """Move a task into ``target_list_id``, after ``after_task_id`` or at the end."""
    target_list_id: UUID
    after_task_id: Optional[UUID] = None


# ==============================================================================
# QUERY SHAPES
# ==============================================================================


class TaskQuery(BaseModel):
    """
    Filter, sort and pagination parameters for the task query engine.

    All filters are optional and combined with AND.
    """

    list_id: Optional[UUID] = None
    search: Optional[str] = None
    status: Optional[TaskStatus] = None
    priority: Optional[int] = Field(default=None, ge=MIN_PRIORITY, le=MAX_PRIORITY)
    tags: List[str] = Field(default_factory=list)
    due: Optional[DueBucket] = None
    sort: Optional[str] = None
    page: int = Field(default=1, ge=1)
    page_size: int = DEFAULT_PAGE_SIZE

    @field_validator("tags", mode="before")
    @classmethod
    def split_tags(cls, v):
        """Accept either a list or a comma-separated string."""
        if v is None:
            return []
        if isinstance(v, str):
            return [t for t in (part.strip() for part in v.split(",")) if t]
        return v

    @field_validator("search")
    @classmethod
    def blank_search_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        return v.strip()

    @field_validator("page_size")
    @classmethod
    def clamp_page_size(cls, v: int) -> int:
        """Clamp page size to [1, MAX_PAGE_SIZE] instead of rejecting it."""
        return max(1, min(MAX_PAGE_SIZE, v))

    @field_validator("sort")
    @classmethod
    def validate_sort(cls, v: Optional[str]) -> Optional[str]:
        """
        Validate a comma-separated sort string such as ``-priority,title``.

        Raises:
            ValueError: If a field is empty or not sortable
        """
        if v is None or not v.strip():
            return None
        for raw in v.split(","):
            name = raw.strip().lstrip("-")
            name = SORT_FIELD_ALIASES.get(name, name)
            if name not in SORTABLE_FIELDS:
                raise ValueError(f"Cannot sort by '{raw.strip()}'")
        return v

    def sort_keys(self) -> List[Tuple[str, bool]]:
        """
        Parse ``sort`` into ``(field, descending)`` pairs.

        Returns:
            List of pairs in priority order; empty when no sort was requested
        """
        if not self.sort:
            return []
        keys = []
        for raw in self.sort.split(","):
            raw = raw.strip()
            descending = raw.startswith("-")
            name = raw.lstrip("-")
            keys.append((SORT_FIELD_ALIASES.get(name, name), descending))
        return keys


class TaskPage(BaseModel):
    """One page of query results."""

    items: List[Task] = Field(default_factory=list)
    page: int
    page_size: int
    total: int

    @computed_field
    @property
    def total_pages(self) -> int:
        """Number of pages needed to show ``total`` items."""
        if self.total == 0:
            return 0
        return (self.total + self.page_size - 1) // self.page_size
