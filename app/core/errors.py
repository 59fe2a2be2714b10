"""Application-level exception types.

This module defines domain errors used across services/adapters, enabling
consistent error handling, logging, and API responses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional to keep backward compatibility while encouraging
    consistent shapes across the codebase.
    """

    code: str
    message: str
    hint: str
    task_id: str
    errors: list[Any]
    limit: int
    remaining: int
    reset_at: int
    retry_after: int
    max_bytes: int
    content_length: str
    request_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input/config validation fails."""


class NotFoundAppError(AppError):
    """Raised when a requested resource does not exist."""


class TaskNotFoundError(NotFoundAppError):
    """Raised when a task id is absent from the store."""

    def __init__(self, task_id: str) -> None:
        super().__init__(
            code="task_not_found",
            message=f"Task with ID {task_id} not found",
            details={"task_id": task_id},
        )


@dataclass
class RateLimitAppError(AppError):
    """Raised when a client exceeds its request quota.

    Attributes:
        retry_after: Seconds until the current window resets.
        headers: Response headers describing the quota (may be empty).
    """

    retry_after: int = 0
    headers: dict[str, str] = field(default_factory=dict)


class PayloadTooLargeAppError(AppError):
    """Raised when a request body exceeds the configured size limit."""


class InternalAppError(AppError):
    """Raised when an internal invariant is violated."""
