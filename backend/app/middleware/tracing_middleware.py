"""
Per-request trace scope.

Every request gets a trace (continued from ``traceparent`` when valid) and a
request id. Both are bound to the log context for the whole request and
echoed back as X-Trace-Id / X-Request-Id, so a failed checkout can be found
in the logs from the response a client received.
"""

import uuid
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.core.logging import get_logger
from app.core.tracing import TraceContext, trace_scope

logger = get_logger(__name__)


def _inbound_trace(request: Request) -> TraceContext:
    header = request.headers.get("traceparent")
    if not header:
        return TraceContext.start()

    context = TraceContext.from_traceparent(header)
    if context is None:
        context = TraceContext.start()
        logger.warning(
            "traceparent_rejected", traceparent=header, **{"trace.id": context.trace_id}
        )
    return context


class TracingMiddleware(BaseHTTPMiddleware):
    """Outermost middleware: add it after LoggingMiddleware and MetricsMiddleware."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Response]
    ) -> Response:
        request_id = str(uuid.uuid4())
        with trace_scope(_inbound_trace(request), request_id=request_id) as trace:
            response = await call_next(request)

        response.headers["X-Trace-Id"] = trace.trace_id
        response.headers["X-Request-Id"] = request_id
        response.headers["traceparent"] = trace.traceparent
        return response
