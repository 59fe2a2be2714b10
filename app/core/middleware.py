"""HTTP middleware for request correlation, access logging and security headers.

``request_id_middleware``:
- Accepts incoming X-Request-ID header or generates a UUID
- Stores request_id in contextvars for access throughout the request lifecycle
- Injects request_id and the total duration into the response headers
- Emits one ``request.completed`` log line per request
- Renders unhandled errors as the generic 500 envelope (request id included)
- Clears context after request completion to prevent context leaks

``security_headers_middleware`` adds the hardening headers every response
should carry (MIME sniffing, framing, HSTS, referrer and permissions policy).

``body_size_limit_middleware`` answers 413 for bodies declared larger than
``APP_MAX_BODY_BYTES``.

Usage:
    app.middleware("http")(security_headers_middleware)
    app.middleware("http")(request_id_middleware)
"""

from __future__ import annotations

import logging
import time
import uuid

from fastapi import Request, Response

from app.core.config import Settings
from app.core.errors import PayloadTooLargeAppError, ValidationAppError
from app.core.exception_handlers import app_error_response, general_exception_handler
from app.core.logging import clear_request_id, set_request_id

logger = logging.getLogger(__name__)

SECURITY_HEADERS: dict[str, str] = {
    "X-Content-Type-Options": "nosniff",
    "X-XSS-Protection": "1; mode=block",
    "X-Frame-Options": "DENY",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains; preload",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "camera=(), microphone=(), geolocation=()",
}

CONTENT_SECURITY_POLICY = "; ".join(
    [
        "default-src 'self'",
        "script-src 'self'",
        "style-src 'self' 'unsafe-inline'",
        "img-src 'self' data: https:",
        "connect-src 'self'",
        "font-src 'self'",
        "object-src 'none'",
        "media-src 'self'",
        "frame-src 'none'",
    ]
)


async def request_id_middleware(request: Request, call_next) -> Response:
    """HTTP middleware for request ID generation, propagation and access logs.

    If the client provides an X-Request-ID header (configurable via
    LOG_REQUEST_ID_HEADER), that value is used. Otherwise, a new UUID is
    generated. The ID is propagated back in the response headers and stored
    in contextvars so every log line of the request carries it.

    Args:
        request: The incoming HTTP request object.
        call_next: The next middleware/route handler in the stack.

    Returns:
        Response: The response from the next handler with request_id and
            duration headers added.
    """

    app_settings: Settings = request.app.state.settings
    header_name = app_settings.log.request_id_header
    request_id = request.headers.get(header_name) or str(uuid.uuid4())
    set_request_id(request_id)
    start = time.perf_counter()
    try:
        try:
            response: Response = await call_next(request)
        except Exception as exc:
            # Rendered while the request id is still bound to the context
            response = await general_exception_handler(request, exc)

        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "request.completed",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": round(duration_ms, 2),
            },
        )
        response.headers[header_name] = request_id
        response.headers.setdefault("X-Request-Duration-ms", f"{duration_ms:.2f}")
    finally:
        clear_request_id()

    return response


async def security_headers_middleware(request: Request, call_next) -> Response:
    """Attach security headers (and CSP when enabled) to every response."""

    app_settings: Settings = request.app.state.settings
    response: Response = await call_next(request)

    for header, value in SECURITY_HEADERS.items():
        response.headers.setdefault(header, value)
    response.headers.setdefault("X-API-Version", app_settings.app.api_version)
    if app_settings.app.enable_csp:
        response.headers.setdefault("Content-Security-Policy", CONTENT_SECURITY_POLICY)
    return response


async def body_size_limit_middleware(request: Request, call_next) -> Response:
    """Reject requests whose declared body exceeds ``APP_MAX_BODY_BYTES``.

    Runs before routing, so no dependency (e.g. a body-keyed rate limiter)
    ever buffers an oversized body.
    """

    max_bytes = request.app.state.settings.app.max_body_bytes
    content_length = request.headers.get("content-length")
    if content_length is None:
        return await call_next(request)

    try:
        declared = int(content_length)
    except ValueError:
        declared = -1
    if declared < 0:
        return app_error_response(
            ValidationAppError(
                code="invalid_content_length",
                message="Content-Length header must be a non-negative integer",
                details={"content_length": content_length},
            )
        )

    if declared > max_bytes:
        logger.warning(
            "request.body_too_large",
            extra={"path": request.url.path, "content_length": declared, "max_bytes": max_bytes},
        )
        return app_error_response(
            PayloadTooLargeAppError(
                code="payload_too_large",
                message=f"Request body exceeds the {max_bytes} byte limit",
                details={"max_bytes": max_bytes, "content_length": content_length},
            )
        )
    return await call_next(request)
