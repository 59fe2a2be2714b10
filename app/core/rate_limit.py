"""Rate limiting policies wired into the HTTP layer.

This module turns the counter store (``app.adapters.rate_limit``) into
request admission:

- ``RateLimiter`` is a named policy: window, limit, key function and an
  optional skip predicate. Several policies share one store; their keys are
  namespaced by policy name so windows stay independent.
- ``limit_requests(name)`` builds a FastAPI dependency for route-level
  policies; ``rate_limit_middleware`` applies the ``global`` policy to every
  request.
- The store and the policies live on ``app.state`` (built by
  ``build_rate_limiters`` in the app factory), never in module globals.

Every checked request consumes quota, including requests that later fail
validation.
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from fastapi import Request, Response

from app.adapters.rate_limit.base import AbstractRateLimitStore, RateLimitResult
from app.core.config import AppSettings, Settings
from app.core.errors import RateLimitAppError
from app.core.exception_handlers import app_error_response

logger = logging.getLogger(__name__)

KeyFunc = Callable[[Request], Awaitable[str]]
SkipFunc = Callable[[Request], bool]

UNKNOWN_CLIENT = "unknown"

# Paths the global limiter never counts
EXEMPT_PATH_PREFIXES: tuple[str, ...] = (
    "/health",
    "/docs",
    "/redoc",
    "/openapi.json",
    "/favicon.ico",
)


def client_address(request: Request) -> str:
    """Return the client network address for ``request``.

    Honors the first ``X-Forwarded-For`` hop only when the app is configured
    to trust its proxy.
    """

    app_settings: Settings | None = getattr(request.app.state, "settings", None)
    if app_settings is not None and app_settings.app.trust_proxy:
        forwarded = request.headers.get("X-Forwarded-For", "")
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
    return request.client.host if request.client else UNKNOWN_CLIENT


async def client_address_key(request: Request) -> str:
    """Default key function: the client network address."""
    return client_address(request)


def body_field_key(field: str) -> KeyFunc:
    """Build a key function composing the client address with a body field.

    Used to limit per-identity-per-address (e.g. per assignee). Requests
    without a JSON object body, without the field, or without a declared
    Content-Length share the ``unknown`` bucket for their address. Oversized
    bodies never get here (see ``body_size_limit_middleware``).

    Args:
        field: Top-level JSON body field to read.

    Returns:
        Async key function for ``RateLimiter``.
    """

    async def key_func(request: Request) -> str:
        identity = UNKNOWN_CLIENT
        raw = await request.body() if "content-length" in request.headers else b""
        if raw:
            try:
                payload = json.loads(raw)
            except ValueError:
                payload = None
            if isinstance(payload, dict) and payload.get(field):
                identity = str(payload[field]).strip().lower() or UNKNOWN_CLIENT
        return f"{client_address(request)}:{identity}"

    return key_func


def skip_exempt_paths(request: Request) -> bool:
    """Skip predicate for health checks, docs and static assets."""
    return request.url.path.startswith(EXEMPT_PATH_PREFIXES)


def _hash_limiter_key(key: str) -> str:
    """Hash the rate limit key for logging without exposing client data."""
    return hashlib.sha256(key.encode()).hexdigest()[:16]


@dataclass(frozen=True)
class RateLimiter:
    """A named fixed-window admission policy.

    Attributes:
        name: Policy name, also the key namespace inside the shared store.
        window_ms: Window size in milliseconds.
        limit: Max admitted requests per key and window.
        message: Client-facing message when the quota is exceeded.
        key_func: Async function deriving the client key from a request.
        skip: Optional predicate exempting requests from all counting.
        include_headers: Whether to emit X-RateLimit-* / Retry-After headers.
        enabled: When False the policy admits everything without counting.
    """

    name: str
    window_ms: int
    limit: int
    message: str = "Too many requests, please try again later"
    key_func: KeyFunc = client_address_key
    skip: SkipFunc | None = None
    include_headers: bool = True
    enabled: bool = True

    async def evaluate(
        self, request: Request, store: AbstractRateLimitStore
    ) -> RateLimitResult | None:
        """Count ``request`` against this policy.

        Returns:
            The store's decision, or None when the policy does not apply
            (disabled or skipped).
        """

        if not self.enabled or (self.skip is not None and self.skip(request)):
            return None

        key = f"{self.name}:{await self.key_func(request)}"
        result = store.check(key, window_ms=self.window_ms, limit=self.limit)

        log_extra = {
            "limiter": self.name,
            "key_hash": _hash_limiter_key(key),
            "limit": result.limit,
            "count": result.count,
            "remaining": result.remaining,
            "window_ms": self.window_ms,
        }
        if result.allowed:
            logger.debug("rate_limit.allowed", extra=log_extra)
        else:
            logger.warning(
                "rate_limit.exceeded",
                extra={
                    **log_extra,
                    "path": request.url.path,
                    "method": request.method,
                    "retry_after_s": result.retry_after_seconds,
                },
            )
        return result

    def build_headers(self, result: RateLimitResult) -> dict[str, str]:
        if not self.include_headers:
            return {}
        headers = {
            "X-RateLimit-Limit": str(result.limit),
            "X-RateLimit-Remaining": str(result.remaining),
            "X-RateLimit-Reset": str(result.reset_at_epoch),
            "X-RateLimit-Window": f"{self.window_ms}ms",
        }
        if not result.allowed:
            headers["Retry-After"] = str(result.retry_after_seconds or 0)
        return headers

    def build_error(self, result: RateLimitResult) -> RateLimitAppError:
        retry_after = result.retry_after_seconds or 0
        return RateLimitAppError(
            code="rate_limit_exceeded",
            message=self.message,
            details={
                "limit": result.limit,
                "remaining": result.remaining,
                "reset_at": result.reset_at_epoch,
                "retry_after": retry_after,
            },
            retry_after=retry_after,
            headers=self.build_headers(result),
        )


def build_rate_limiters(app_settings: AppSettings) -> dict[str, RateLimiter]:
    """Create the named policies used by the API.

    - ``global``: every request except health/docs, via middleware.
    - ``api``: every task route, per client address.
    - ``lenient``: read-only task routes.
    - ``strict``: mutating task routes, per client address and assignee.
    """

    common = {
        "window_ms": app_settings.rate_limit_window_ms,
        "include_headers": app_settings.rate_limit_include_headers,
        "enabled": app_settings.rate_limit_enabled,
    }
    limiters = [
        RateLimiter(
            name="global",
            limit=app_settings.global_rate_limit_max_requests,
            message="Global rate limit exceeded",
            skip=skip_exempt_paths,
            **common,
        ),
        RateLimiter(
            name="api",
            limit=app_settings.rate_limit_max_requests,
            message="API rate limit exceeded, please slow down your requests",
            **common,
        ),
        RateLimiter(
            name="lenient",
            limit=app_settings.lenient_rate_limit_max_requests,
            message="Too many requests, please try again later",
            **common,
        ),
        RateLimiter(
            name="strict",
            limit=app_settings.strict_rate_limit_max_requests,
            message="Too many changes from this client, please try again later",
            key_func=body_field_key("assignee"),
            **common,
        ),
    ]
    return {limiter.name: limiter for limiter in limiters}


def limit_requests(name: str) -> Callable[[Request, Response], Awaitable[None]]:
    """Build a FastAPI dependency enforcing the policy called ``name``.

    Admitted requests get the quota headers on their response; rejected ones
    raise ``RateLimitAppError`` (rendered as HTTP 429 by the exception
    handlers).

    Usage:
        @router.get("/tasks", dependencies=[Depends(limit_requests("lenient"))])
    """

    async def enforce_rate_limit(request: Request, response: Response) -> None:
        limiter: RateLimiter = request.app.state.rate_limiters[name]
        result = await limiter.evaluate(request, request.app.state.rate_limit_store)
        if result is None:
            return
        if not result.allowed:
            raise limiter.build_error(result)
        for header, value in limiter.build_headers(result).items():
            response.headers[header] = value

    enforce_rate_limit.__name__ = f"enforce_{name}_rate_limit"
    return enforce_rate_limit


async def rate_limit_middleware(request: Request, call_next) -> Response:
    """HTTP middleware applying the ``global`` policy to every request.

    Runs outside the router, so a rejection is rendered here rather than by
    the exception handlers. Route-level policies set their headers first and
    win over the global ones.
    """

    limiter: RateLimiter | None = request.app.state.rate_limiters.get("global")
    if limiter is None:
        return await call_next(request)

    result = await limiter.evaluate(request, request.app.state.rate_limit_store)
    if result is not None and not result.allowed:
        return app_error_response(limiter.build_error(result))

    response: Response = await call_next(request)
    if result is not None:
        for header, value in limiter.build_headers(result).items():
            response.headers.setdefault(header, value)
    return response
