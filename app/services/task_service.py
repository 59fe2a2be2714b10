"""Task service: CRUD and statistics on top of the task store.

The store reports a missing task as ``None``; this layer turns that signal
into ``TaskNotFoundError`` so the HTTP layer can answer with a 404, and it
emits the structured audit logs for every mutation.
"""

from __future__ import annotations

import logging

from app.core.errors import TaskNotFoundError, ValidationAppError
from app.schemas.task import Task, TaskCreate, TaskPage, TaskQuery, TaskStatistics, TaskUpdate
from app.services.task_store import TaskStore

logger = logging.getLogger(__name__)


class TaskService:
    """Application-facing task operations.

    Attributes:
        store: Backing repository; shared by every request handler.
    """

    def __init__(self, store: TaskStore) -> None:
        self.store = store

    def list_tasks(self, options: TaskQuery) -> TaskPage:
        page = self.store.query(options)
        logger.debug(
            "task.queried",
            extra={
                "total": page.pagination.total,
                "page": options.page,
                "limit": options.limit,
                "sort_by": options.sort_by,
                "sort_order": options.sort_order,
            },
        )
        return page

    def get_task(self, task_id: str) -> Task:
        """Return a task by id.

        Raises:
            TaskNotFoundError: If no task has this id.
        """
        task = self.store.get_by_id(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    def create_task(self, data: TaskCreate) -> Task:
        task = self.store.create(data)
        logger.info(
            "task.created",
            extra={"task_id": task.id, "status": task.status, "priority": task.priority},
        )
        return task

    def update_task(self, task_id: str, data: TaskUpdate) -> Task:
        """Apply a partial update.

        Raises:
            ValidationAppError: If the payload carries no field to change.
            TaskNotFoundError: If no task has this id.
        """
        changes = data.changes()
        if not changes:
            raise ValidationAppError(
                code="empty_update",
                message="No data provided for update",
                details={"task_id": task_id},
            )

        task = self.store.update(task_id, data)
        if task is None:
            raise TaskNotFoundError(task_id)

        logger.info(
            "task.updated",
            extra={"task_id": task_id, "fields": sorted(changes)},
        )
        return task

    def delete_task(self, task_id: str) -> Task:
        """Remove a task and return its last state.

        Raises:
            TaskNotFoundError: If no task has this id.
        """
        task = self.store.delete(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        logger.info("task.deleted", extra={"task_id": task_id})
        return task

    def statistics(self) -> TaskStatistics:
        return self.store.statistics()
