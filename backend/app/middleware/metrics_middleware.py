"""
HTTP request metrics.

Paths are templated before they become label values; order ids, customer
ids and seller ids would otherwise create one time series per entity.
"""

import re
import time
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from app.core.metrics import (
    http_request_duration_seconds,
    http_requests_in_progress,
    http_requests_total,
)

# /orders/{owner route}/{customer or seller id}
_OWNER_SEGMENT = re.compile(r"/(customer|seller|seller-stats|seller-earnings)/[^/]+")
# /orders/{order id}[/cancel|/status|...]; static routes are listed so they survive
_ORDER_SEGMENT = re.compile(r"^(.*/orders)/(?!admin-stats(?:/|$))([^/]+)(/[a-z]+)?$")


def template_path(path: str) -> str:
    """
    Examples:
        /api/v1/orders/3f0e9a56-...-444455556666/cancel -> /api/v1/orders/{id}/cancel
        /api/v1/orders/seller-earnings/S1 -> /api/v1/orders/seller-earnings/{id}
        /api/v1/orders/admin-stats -> unchanged
    """
    templated, owner_matches = _OWNER_SEGMENT.subn(r"/\1/{id}", path)
    if owner_matches:
        return templated
    return _ORDER_SEGMENT.sub(lambda m: f"{m[1]}/{{id}}{m[3] or ''}", templated)


class MetricsMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        method = request.method
        endpoint = template_path(request.url.path)
        in_progress = http_requests_in_progress.labels(method=method, endpoint=endpoint)

        in_progress.inc()
        started = time.perf_counter()
        # Stays 500 if call_next raises
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            http_requests_total.labels(
                method=method, endpoint=endpoint, status_code=f"{status_code // 100}xx"
            ).inc()
            http_request_duration_seconds.labels(
                method=method, endpoint=endpoint
            ).observe(time.perf_counter() - started)
            in_progress.dec()
