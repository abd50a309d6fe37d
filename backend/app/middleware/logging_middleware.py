"""
HTTP access log: one structured line per request, ECS field names.

Runs inside TracingMiddleware, so every line carries trace.id and request_id.
The caller identity headers are logged as sent; they are validated later by
the routes that need them.
"""

import time
from typing import Any, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.core.logging import get_logger

logger = get_logger(__name__)

SLOW_REQUEST_MS = 1000


def _request_fields(request: Request) -> dict[str, Any]:
    return {
        "http.request.method": request.method,
        "url.path": request.url.path,
        "url.query": request.url.query or None,
        "client.ip": request.client.host if request.client else None,
        "user_agent.original": request.headers.get("user-agent"),
        "user.id": request.headers.get("x-user-id"),
        "user.roles": request.headers.get("x-user-role"),
    }


def _timing_fields(started: float) -> dict[str, Any]:
    duration_ms = (time.perf_counter() - started) * 1000
    # event.duration is nanoseconds in ECS
    return {"event.duration": round(duration_ms * 1_000_000), "duration_ms": round(duration_ms, 2)}


class LoggingMiddleware(BaseHTTPMiddleware):
    """ERROR for 5xx and crashes, WARNING for slow successes, INFO otherwise (4xx included)."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Response]
    ) -> Response:
        started = time.perf_counter()
        fields = _request_fields(request)

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "http_request_completed",
                **fields,
                **_timing_fields(started),
                **{"http.response.status_code": 500},
                error_type=type(e).__name__,
                exc_info=e,
            )
            raise

        fields.update(_timing_fields(started))
        fields["http.response.status_code"] = response.status_code

        if response.status_code >= 500:
            logger.error("http_request_completed", **fields)
        elif response.status_code < 400 and fields["duration_ms"] > SLOW_REQUEST_MS:
            logger.warning("http_request_slow", **fields)
        else:
            logger.info("http_request_completed", **fields)
        return response
