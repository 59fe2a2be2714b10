from __future__ import annotations

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Path, Query, Request
from fastapi.encoders import jsonable_encoder
from pydantic import ValidationError

from app.core.errors import ValidationAppError
from app.core.rate_limit import limit_requests
from app.schemas.task import (
    MAX_PAGE_SIZE,
    MAX_SEARCH_CHARS,
    Task,
    TaskCreate,
    TaskPage,
    TaskQuery,
    TaskStatistics,
    TaskUpdate,
)
from app.services.task_service import TaskService

router = APIRouter(
    prefix="/tasks",
    tags=["Tasks"],
    dependencies=[Depends(limit_requests("api"))],
)

_read_limits = [Depends(limit_requests("lenient"))]
_write_limits = [Depends(limit_requests("strict"))]

TaskId = Annotated[str, Path(min_length=1, max_length=100, description="Task identifier")]


def get_task_service(request: Request) -> TaskService:
    """Resolve the process-wide task service created by the app factory."""
    return request.app.state.task_service


def task_query_params(
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=MAX_PAGE_SIZE)] = 10,
    status: Annotated[str | None, Query()] = None,
    priority: Annotated[str | None, Query()] = None,
    assignee: Annotated[str | None, Query()] = None,
    search: Annotated[str | None, Query(max_length=MAX_SEARCH_CHARS)] = None,
    due_date_from: Annotated[datetime | None, Query(alias="dueDateFrom")] = None,
    due_date_to: Annotated[datetime | None, Query(alias="dueDateTo")] = None,
    sort_by: Annotated[str, Query(alias="sortBy")] = "createdAt",
    sort_order: Annotated[str, Query(alias="sortOrder")] = "desc",
) -> TaskQuery:
    """Validate listing query parameters into a ``TaskQuery``.

    Raises:
        ValidationAppError: If any parameter is out of range or inconsistent
            (unknown status, bad sort field, dueDateFrom after dueDateTo...).
    """
    try:
        return TaskQuery(
            page=page,
            limit=limit,
            status=status,
            priority=priority,
            assignee=assignee,
            search=search,
            due_date_from=due_date_from,
            due_date_to=due_date_to,
            sort_by=sort_by,
            sort_order=sort_order,
        )
    except ValidationError as exc:
        raise ValidationAppError(
            code="invalid_query",
            message="Invalid query parameters",
            details={"errors": jsonable_encoder(exc.errors(include_url=False, include_context=False))},
        ) from exc


Service = Annotated[TaskService, Depends(get_task_service)]


@router.get("", response_model=TaskPage, dependencies=_read_limits)
def list_tasks(
    service: Service,
    options: Annotated[TaskQuery, Depends(task_query_params)],
) -> TaskPage:
    """List tasks with filtering, sorting and pagination.

    Filters are combined with AND: exact ``status``/``priority``,
    case-insensitive ``assignee`` substring, free-text ``search`` over
    title, description and tags, and an inclusive ``dueDateFrom``/``dueDateTo``
    range.
    """
    return service.list_tasks(options)


@router.get("/stats", response_model=TaskStatistics, dependencies=_read_limits)
def task_statistics(service: Service) -> TaskStatistics:
    """Aggregate task counts by status and priority plus deadline indicators."""
    return service.statistics()


@router.get("/{task_id}", response_model=Task, dependencies=_read_limits)
def get_task(task_id: TaskId, service: Service) -> Task:
    return service.get_task(task_id)


@router.post("", response_model=Task, status_code=201, dependencies=_write_limits)
def create_task(payload: TaskCreate, service: Service) -> Task:
    """Create a task; status defaults to ``pending`` and priority to ``medium``."""
    return service.create_task(payload)


@router.put("/{task_id}", response_model=Task, dependencies=_write_limits)
@router.patch("/{task_id}", response_model=Task, dependencies=_write_limits)
def update_task(task_id: TaskId, payload: TaskUpdate, service: Service) -> Task:
    """Partially update a task; omitted or null fields are left untouched."""
    return service.update_task(task_id, payload)


@router.delete("/{task_id}", response_model=Task, dependencies=_write_limits)
def delete_task(task_id: TaskId, service: Service) -> Task:
    """Delete a task and return its final state."""
    return service.delete_task(task_id)
