from __future__ import annotations

"""Application factory for FastAPI app.

Centralizes app construction (stores, middleware, handlers, routers) so
tests can build isolated apps with their own settings. The task store, the
rate limit store and the limiter policies are created here once and hung on
``app.state``; handlers reach them through the request.
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from app.adapters.rate_limit import InMemoryRateLimitStore, RateLimitSweeper
from app.api.routes import health_router, tasks_router
from app.core.config import Settings, settings as default_settings
from app.core.exception_handlers import setup_exception_handlers
from app.core.logging import configure_logging
from app.core.middleware import (
    body_size_limit_middleware,
    request_id_middleware,
    security_headers_middleware,
)
from app.core.rate_limit import build_rate_limiters, rate_limit_middleware
from app.services.task_service import TaskService
from app.services.task_store import TaskStore, sample_tasks

logger = logging.getLogger(__name__)

OPENAPI_TAGS = [
    {"name": "Tasks", "description": "Task CRUD, filtering and statistics."},
    {"name": "Health", "description": "Liveness, readiness and metrics endpoints."},
]

# Headers browsers may read from cross-origin responses
EXPOSED_HEADERS = [
    "X-Request-ID",
    "X-Request-Duration-ms",
    "X-RateLimit-Limit",
    "X-RateLimit-Remaining",
    "X-RateLimit-Reset",
    "X-RateLimit-Window",
    "Retry-After",
]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Run the rate limit sweeper for the lifetime of the app."""
    sweeper: RateLimitSweeper = app.state.rate_limit_sweeper
    sweeper.start()
    logger.info(
        "app.started",
        extra={"tasks": app.state.task_service.store.count(), "env": app.state.settings.app_env},
    )
    try:
        yield
    finally:
        await sweeper.stop()
        logger.info("app.stopped")


def create_app(app_settings: Settings | None = None, *, configure_logs: bool = True) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        app_settings: Settings to build the app with; defaults to the
            environment-derived global settings.
        configure_logs: Whether to (re)configure the root logger.

    Returns:
        Configured FastAPI app with stores, middleware, handlers and routers.
    """
    cfg = app_settings or default_settings

    # Logging first so subsequent init logs are formatted as desired
    if configure_logs:
        configure_logging(cfg.log)

    app = FastAPI(
        title="TaskFlow API",
        description=(
            "RESTful task management service with filtering, pagination, "
            "statistics and per-client rate limiting. State is kept in memory "
            "and lost on restart."
        ),
        version=cfg.app.api_version,
        openapi_tags=OPENAPI_TAGS,
        lifespan=lifespan,
        debug=cfg.app.debug,
    )

    # Shared state, owned by the app
    task_store = TaskStore()
    if cfg.app.seed_sample_tasks:
        task_store.seed(sample_tasks())
    rate_limit_store = InMemoryRateLimitStore()

    app.state.settings = cfg
    app.state.started_at = time.monotonic()
    app.state.task_service = TaskService(task_store)
    app.state.rate_limit_store = rate_limit_store
    app.state.rate_limiters = build_rate_limiters(cfg.app)
    app.state.rate_limit_sweeper = RateLimitSweeper(
        rate_limit_store,
        interval_seconds=cfg.app.rate_limit_sweep_interval_seconds,
    )

    # Middleware: the last one added runs first on the way in
    app.middleware("http")(rate_limit_middleware)
    app.middleware("http")(body_size_limit_middleware)
    app.middleware("http")(security_headers_middleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.app.cors_origin_list,
        allow_credentials=cfg.app.cors_allow_credentials,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD"],
        allow_headers=[
            "Content-Type",
            "Authorization",
            "X-Requested-With",
            "Accept",
            "Origin",
            cfg.log.request_id_header,
        ],
        expose_headers=EXPOSED_HEADERS,
        max_age=86400,
    )
    app.middleware("http")(request_id_middleware)
    app.add_middleware(GZipMiddleware, minimum_size=cfg.app.gzip_minimum_size)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(tasks_router, prefix=cfg.app.api_prefix)
    app.include_router(health_router)

    return app
