from __future__ import annotations

import os
import platform
import time
from datetime import datetime, timezone

from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse

router = APIRouter(prefix="/health", tags=["Health"])

SERVICE_NAME = "TaskFlow API"


def _uptime_seconds(request: Request) -> float:
    return round(time.monotonic() - request.app.state.started_at, 3)


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("")
def health_check(request: Request) -> dict:
    """Health check endpoint.

    Returns a simple status response to verify the API is operational.
    Used by load balancers and monitoring systems to determine service health.
    """

    settings = request.app.state.settings
    return {
        "status": "healthy",
        "timestamp": _timestamp(),
        "uptime": _uptime_seconds(request),
        "version": settings.app.api_version,
        "environment": settings.app_env,
        "service": SERVICE_NAME,
    }


@router.get("/live")
def liveness(request: Request) -> dict:
    """Liveness check: answering at all means the process is alive."""

    return {
        "status": "alive",
        "timestamp": _timestamp(),
        "pid": os.getpid(),
        "uptime": _uptime_seconds(request),
    }


@router.get("/ready")
def readiness(request: Request) -> dict:
    """Readiness check: the stores exist and the sweeper is running."""

    state = request.app.state
    checks = {
        "task_store": getattr(state, "task_service", None) is not None,
        "rate_limit_store": getattr(state, "rate_limit_store", None) is not None,
    }
    return {
        "status": "ready" if all(checks.values()) else "not ready",
        "timestamp": _timestamp(),
        "checks": checks,
    }


@router.get("/detailed")
def detailed_health(request: Request) -> dict:
    """Health summary including runtime info and task statistics."""

    state = request.app.state
    stats = state.task_service.statistics()
    return {
        "status": "healthy",
        "timestamp": _timestamp(),
        "uptime": _uptime_seconds(request),
        "version": {
            "api": state.settings.app.api_version,
            "python": platform.python_version(),
            "platform": platform.platform(),
        },
        "environment": state.settings.app_env,
        "service": SERVICE_NAME,
        "data": {
            "total_tasks": stats.total,
            "statistics": stats.model_dump(mode="json", by_alias=True),
            "rate_limit_keys": len(state.rate_limit_store),
        },
    }


@router.get("/metrics", response_class=PlainTextResponse)
def metrics(request: Request) -> str:
    """Prometheus-style gauges for the task and rate limit stores."""

    state = request.app.state
    stats = state.task_service.statistics()
    gauges = [
        ("process_uptime_seconds", "Process uptime in seconds", _uptime_seconds(request)),
        ("taskflow_tasks_total", "Total number of tasks", stats.total),
        ("taskflow_tasks_active", "Number of active tasks", stats.active),
        ("taskflow_tasks_completed", "Number of completed tasks", stats.completed),
        ("taskflow_tasks_overdue", "Number of overdue tasks", stats.overdue),
        ("taskflow_rate_limit_keys", "Tracked rate limit keys", len(state.rate_limit_store)),
    ]
    lines: list[str] = []
    for name, help_text, value in gauges:
        lines.append(f"# HELP {name} {help_text}")
        lines.append(f"# TYPE {name} gauge")
        lines.append(f"{name} {value}")
    return "\n".join(lines) + "\n"
