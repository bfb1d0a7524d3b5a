"""Prometheus middleware for HTTP request metrics."""

from __future__ import annotations

import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from ..routes_metrics import http_request_duration_seconds, http_requests_total


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Count requests and time them, labelled by route template.

    Unmatched paths collapse into one label so scanners cannot grow the
    series set.
    """

    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        route = request.scope.get("route")
        path = route.path if route else "unmatched"
        http_requests_total.labels(
            path=path,
            method=request.method,
            status=str(response.status_code),
        ).inc()
        if path != "/metrics":
            http_request_duration_seconds.labels(
                path=path, method=request.method
            ).observe(time.perf_counter() - start)
        return response
