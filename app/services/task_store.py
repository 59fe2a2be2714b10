"""Concurrency-safe in-memory task repository.

The store is the single owner of every ``Task``. It is constructed once by
the application factory and handed to the service layer; nothing reaches it
through module globals.

Concurrency model:
- A single lock guards the backing dict. Writers replace an entry with a new
  frozen ``Task`` in one assignment, so readers never see a partial update.
- Readers (``query``, ``statistics`` and the list helpers) copy a snapshot of
  the values under the lock and do the filtering/sorting outside of it.
- Dict insertion order is the tie-breaker for sorting; updates replace the
  value in place and therefore keep a task's original position.
"""

from __future__ import annotations

import math
import threading
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterable

from app.schemas.task import (
    CLOSED_STATUSES,
    TASK_PRIORITIES,
    TASK_STATUSES,
    Pagination,
    Task,
    TaskCreate,
    TaskPage,
    TaskQuery,
    TaskStatistics,
    TaskUpdate,
    ensure_utc,
)

DUE_SOON_WINDOW = timedelta(days=7)

# Wire names accepted by TaskQuery.sort_by -> Task attribute names
_SORT_ATTRS: dict[str, str] = {
    "title": "title",
    "status": "status",
    "priority": "priority",
    "dueDate": "due_date",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_task_id() -> str:
    return str(uuid.uuid4())


def _sort_key(value: Any) -> Any:
    if isinstance(value, str):
        return value.lower()
    return value


def _contains(haystack: str | None, needle: str) -> bool:
    return haystack is not None and needle in haystack.lower()


def _matches(task: Task, options: TaskQuery) -> bool:
    """Apply every filter of ``options`` to ``task`` (logical AND)."""

    if options.status and task.status != options.status:
        return False
    if options.priority and task.priority != options.priority:
        return False
    if options.assignee and not _contains(task.assignee, options.assignee.lower()):
        return False
    if options.search:
        needle = options.search.lower()
        if not (
            _contains(task.title, needle)
            or _contains(task.description, needle)
            or any(needle in tag.lower() for tag in task.tags)
        ):
            return False
    if options.due_date_from or options.due_date_to:
        if task.due_date is None:
            return False
        if options.due_date_from and task.due_date < options.due_date_from:
            return False
        if options.due_date_to and task.due_date > options.due_date_to:
            return False
    return True


def _sort(tasks: list[Task], sort_by: str, descending: bool) -> list[Task]:
    """Stable sort; tasks without a value for the field always go last.

    ``list.sort(reverse=True)`` keeps equal elements in their original order,
    so ties follow insertion order in both directions.
    """

    attr = _SORT_ATTRS[sort_by]
    present = [t for t in tasks if getattr(t, attr) is not None]
    missing = [t for t in tasks if getattr(t, attr) is None]
    present.sort(key=lambda t: _sort_key(getattr(t, attr)), reverse=descending)
    return present + missing


def _paginate(tasks: list[Task], page: int, limit: int) -> TaskPage:
    total = len(tasks)
    start = (page - 1) * limit
    end = start + limit
    return TaskPage(
        items=tasks[start:end],
        pagination=Pagination(
            page=page,
            limit=limit,
            total=total,
            total_pages=math.ceil(total / limit),
            has_next_page=end < total,
            has_previous_page=page > 1,
        ),
    )


class TaskStore:
    """Thread-safe repository of ``Task`` entities.

    Lookups return ``None`` as the not-found signal; callers decide how to
    surface it. Inputs are expected to be validated already (see
    ``app.schemas.task``); the store only applies structural defaults.
    """

    def __init__(self, *, clock: Callable[[], datetime] = _utcnow) -> None:
        """Initialize an empty store.

        Args:
            clock: Source of the current time (aware UTC datetimes).
        """
        self._clock = clock
        self._lock = threading.RLock()
        self._tasks: dict[str, Task] = {}

    def __len__(self) -> int:
        return self.count()

    def _now(self) -> datetime:
        return ensure_utc(self._clock())  # type: ignore[return-value]

    def _snapshot(self) -> list[Task]:
        with self._lock:
            return list(self._tasks.values())

    def create(self, data: TaskCreate) -> Task:
        """Insert a new task built from ``data`` and return it."""

        with self._lock:
            task_id = _new_task_id()
            while task_id in self._tasks:
                task_id = _new_task_id()

            now = self._now()
            task = Task(
                id=task_id,
                title=data.title,
                description=data.description,
                status=data.status or "pending",
                priority=data.priority or "medium",
                due_date=data.due_date,
                tags=tuple(data.tags or ()),
                assignee=data.assignee,
                created_at=now,
                updated_at=now,
            )
            self._tasks[task_id] = task
            return task

    def get_by_id(self, task_id: str) -> Task | None:
        with self._lock:
            return self._tasks.get(task_id)

    def update(self, task_id: str, partial: TaskUpdate | dict[str, Any]) -> Task | None:
        """Shallow-merge ``partial`` onto an existing task.

        Only provided fields change; ``tags`` is replaced wholesale. ``id``
        and ``created_at`` are always preserved and ``updated_at`` never
        moves backwards even if the clock does. A plain dict goes through
        ``TaskUpdate`` validation first: unknown keys and nulls are dropped.

        Returns:
            The updated task, or None when ``task_id`` is unknown.

        Raises:
            pydantic.ValidationError: If a dict carries invalid field values.
        """
        if not isinstance(partial, TaskUpdate):
            partial = TaskUpdate.model_validate(partial)
        changes = partial.changes()
        if "tags" in changes:
            changes["tags"] = tuple(changes["tags"])

        with self._lock:
            current = self._tasks.get(task_id)
            if current is None:
                return None

            changes["updated_at"] = max(self._now(), current.updated_at)
            updated = current.model_copy(update=changes)
            self._tasks[task_id] = updated
            return updated

    def delete(self, task_id: str) -> Task | None:
        with self._lock:
            return self._tasks.pop(task_id, None)

    def query(self, options: TaskQuery) -> TaskPage:
        """Run the filter -> sort -> paginate pipeline over a snapshot."""

        matched = [t for t in self._snapshot() if _matches(t, options)]
        ordered = _sort(matched, options.sort_by, options.sort_order == "desc")
        return _paginate(ordered, options.page, options.limit)

    def statistics(self) -> TaskStatistics:
        """Aggregate counts by status/priority plus deadline indicators."""

        tasks = self._snapshot()
        now = self._now()
        soon = now + DUE_SOON_WINDOW

        by_status = {status: 0 for status in TASK_STATUSES}
        by_priority = {priority: 0 for priority in TASK_PRIORITIES}
        overdue = 0
        due_soon = 0
        for task in tasks:
            by_status[task.status] += 1
            by_priority[task.priority] += 1
            if task.due_date is None or task.status in CLOSED_STATUSES:
                continue
            if task.due_date < now:
                overdue += 1
            elif task.due_date <= soon:
                due_soon += 1

        total = len(tasks)
        completed = by_status["completed"]
        completion_rate = round(completed / total * 100, 1) if total else 0.0
        return TaskStatistics(
            total=total,
            active=total - completed - by_status["cancelled"],
            completed=completed,
            completion_rate=completion_rate,
            overdue=overdue,
            due_soon=due_soon,
            by_status=by_status,
            by_priority=by_priority,
            last_updated=now,
        )

    def list_by_status(self, status: str) -> list[Task]:
        return [t for t in self._snapshot() if t.status == status]

    def list_by_priority(self, priority: str) -> list[Task]:
        return [t for t in self._snapshot() if t.priority == priority]

    def list_by_assignee(self, assignee: str) -> list[Task]:
        needle = assignee.lower()
        return [t for t in self._snapshot() if _contains(t.assignee, needle)]

    def search(self, text: str) -> list[Task]:
        """Case-insensitive match on title, description, tags or assignee."""

        needle = text.lower()
        return [
            t
            for t in self._snapshot()
            if _contains(t.title, needle)
            or _contains(t.description, needle)
            or _contains(t.assignee, needle)
            or any(needle in tag.lower() for tag in t.tags)
        ]

    def seed(self, tasks: Iterable[Task]) -> int:
        """Load fully-formed tasks (e.g. sample data) as-is; return how many."""

        loaded = 0
        with self._lock:
            for task in tasks:
                self._tasks[task.id] = task
                loaded += 1
        return loaded

    def count(self) -> int:
        with self._lock:
            return len(self._tasks)

    def clear(self) -> None:
        with self._lock:
            self._tasks.clear()


def sample_tasks() -> list[Task]:
    """Development fixtures with fresh ids."""

    def _ts(value: str) -> datetime:
        return datetime.fromisoformat(value).replace(tzinfo=timezone.utc)

    fixtures = [
        {
            "title": "Setup Project Structure",
            "description": "Create the basic folder structure and configuration files",
            "status": "completed",
            "priority": "high",
            "due_date": _ts("2024-01-15T10:00:00"),
            "tags": ("setup", "project"),
            "assignee": "Developer",
            "created_at": _ts("2024-01-10T08:00:00"),
            "updated_at": _ts("2024-01-12T14:30:00"),
        },
        {
            "title": "Implement User Authentication",
            "description": "Add JWT-based authentication system",
            "status": "in-progress",
            "priority": "high",
            "due_date": _ts("2024-01-20T17:00:00"),
            "tags": ("auth", "security"),
            "assignee": "Backend Developer",
            "created_at": _ts("2024-01-12T09:00:00"),
            "updated_at": _ts("2024-01-14T11:00:00"),
        },
        {
            "title": "Design Database Schema",
            "description": "Create the database schema for the application",
            "status": "pending",
            "priority": "medium",
            "due_date": _ts("2024-01-25T12:00:00"),
            "tags": ("database", "design"),
            "assignee": "Database Architect",
            "created_at": _ts("2024-01-13T10:30:00"),
            "updated_at": _ts("2024-01-13T10:30:00"),
        },
        {
            "title": "Write Unit Tests",
            "description": "Create comprehensive unit tests for all modules",
            "status": "pending",
            "priority": "medium",
            "due_date": _ts("2024-01-30T16:00:00"),
            "tags": ("testing", "quality"),
            "assignee": "QA Engineer",
            "created_at": _ts("2024-01-14T14:00:00"),
            "updated_at": _ts("2024-01-14T14:00:00"),
        },
    ]
    return [Task(id=_new_task_id(), **fields) for fields in fixtures]
