"""Pydantic schemas for tasks, task queries and task statistics.

Input models (``TaskCreate``, ``TaskUpdate``, ``TaskQuery``) validate and
sanitize client data: strings are trimmed, enum values lower-cased, tags
deduplicated and naive timestamps pinned to UTC. The store trusts them and
only fills in structural defaults.

All models speak camelCase on the wire (``dueDate``, ``createdAt``) and
accept snake_case field names from Python callers.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Any, Literal, get_args

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StringConstraints,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

TaskStatus = Literal["pending", "in-progress", "completed", "cancelled"]
TaskPriority = Literal["low", "medium", "high", "urgent"]
SortField = Literal["title", "status", "priority", "dueDate", "createdAt", "updatedAt"]
SortOrder = Literal["asc", "desc"]

TASK_STATUSES: tuple[str, ...] = get_args(TaskStatus)
TASK_PRIORITIES: tuple[str, ...] = get_args(TaskPriority)
SORT_FIELDS: tuple[str, ...] = get_args(SortField)

# Statuses that no longer count as open work
CLOSED_STATUSES: frozenset[str] = frozenset({"completed", "cancelled"})

MAX_TITLE_CHARS = 200
MAX_DESCRIPTION_CHARS = 1000
MAX_TAG_CHARS = 50
MAX_ASSIGNEE_CHARS = 100
MAX_SEARCH_CHARS = 100
MAX_PAGE_SIZE = 100

Tag = Annotated[str, StringConstraints(min_length=1, max_length=MAX_TAG_CHARS)]


def ensure_utc(value: datetime | None) -> datetime | None:
    """Return ``value`` as an aware UTC datetime (naive input is taken as UTC)."""

    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _strip(value: Any) -> Any:
    return value.strip() if isinstance(value, str) else value


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Task(_CamelModel):
    """A unit of work owned by the task store.

    Instances are frozen: every mutation in the store replaces the whole
    entry with a new model, so readers never observe a half-applied update.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Opaque unique identifier (UUID4), never reused.")
    title: str = Field(..., description="Short human-readable title.")
    description: str | None = Field(default=None, description="Optional longer description.")
    status: TaskStatus = Field(default="pending", description="Workflow status.")
    priority: TaskPriority = Field(default="medium", description="Relative urgency.")
    due_date: datetime | None = Field(default=None, description="Optional deadline (UTC).")
    tags: tuple[str, ...] = Field(
        default=(),
        description="Deduplicated labels in order of first occurrence.",
    )
    assignee: str | None = Field(default=None, description="Person responsible for the task.")
    created_at: datetime = Field(..., description="Creation timestamp (UTC), immutable.")
    updated_at: datetime = Field(..., description="Last mutation timestamp (UTC).")


class _TaskFields(_CamelModel):
    """Shared, all-optional task fields with sanitizing validators."""

    title: str | None = Field(default=None, min_length=1, max_length=MAX_TITLE_CHARS)
    description: str | None = Field(default=None, max_length=MAX_DESCRIPTION_CHARS)
    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    due_date: datetime | None = None
    tags: list[Tag] | None = None
    assignee: str | None = Field(default=None, min_length=1, max_length=MAX_ASSIGNEE_CHARS)

    @field_validator("title", "description", "assignee", mode="before")
    @classmethod
    def _strip_text(cls, value: Any) -> Any:
        return _strip(value)

    @field_validator("status", "priority", mode="before")
    @classmethod
    def _lowercase_enum(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("tags", mode="before")
    @classmethod
    def _clean_tags(cls, value: Any) -> Any:
        if not isinstance(value, (list, tuple)):
            return value
        cleaned: list[Any] = []
        for tag in value:
            if isinstance(tag, str):
                tag = tag.strip()
                if not tag or tag in cleaned:
                    continue
            cleaned.append(tag)
        return cleaned

    @field_validator("due_date")
    @classmethod
    def _due_date_utc(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value)


class TaskCreate(_TaskFields):
    """Validated payload for creating a task."""

    title: str = Field(..., min_length=1, max_length=MAX_TITLE_CHARS)


class TaskUpdate(_TaskFields):
    """Validated partial payload for updating a task.

    Fields left out (or sent as null) are not touched by the update.
    """

    def changes(self) -> dict[str, Any]:
        """Return only the fields the client actually provided, by field name."""
        return self.model_dump(exclude_unset=True, exclude_none=True)


class TaskQuery(_CamelModel):
    """Filter, sort and pagination options for listing tasks."""

    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=MAX_PAGE_SIZE)
    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    assignee: str | None = None
    search: str | None = Field(default=None, max_length=MAX_SEARCH_CHARS)
    due_date_from: datetime | None = None
    due_date_to: datetime | None = None
    sort_by: SortField = "createdAt"
    sort_order: SortOrder = "desc"

    @field_validator("assignee", "search", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        value = _strip(value)
        return value or None

    @field_validator("sort_order", "status", "priority", mode="before")
    @classmethod
    def _lowercase(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("due_date_from", "due_date_to")
    @classmethod
    def _dates_utc(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value)

    @model_validator(mode="after")
    def _check_date_range(self) -> "TaskQuery":
        if self.due_date_from and self.due_date_to and self.due_date_from > self.due_date_to:
            raise ValueError("dueDateFrom must be before dueDateTo")
        return self


class Pagination(_CamelModel):
    """Page window metadata for a task listing."""

    page: int
    limit: int
    total: int
    total_pages: int
    has_next_page: bool
    has_previous_page: bool


class TaskPage(_CamelModel):
    """One page of query results."""

    items: list[Task]
    pagination: Pagination


class TaskStatistics(_CamelModel):
    """Aggregate counters over the whole task store."""

    total: int
    active: int = Field(..., description="Tasks neither completed nor cancelled.")
    completed: int
    completion_rate: float = Field(..., description="completed / total * 100, one decimal.")
    overdue: int = Field(..., description="Open tasks whose due date has passed.")
    due_soon: int = Field(..., description="Open tasks due within the next 7 days.")
    by_status: dict[str, int]
    by_priority: dict[str, int]
    last_updated: datetime
