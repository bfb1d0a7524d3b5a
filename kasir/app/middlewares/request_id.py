"""Request id propagation for logs, error envelopes and receipts."""

from __future__ import annotations

import re
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

# Read by the log filter and the error envelope
request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)

# Tablets send their own ids; anything else is replaced
_CLIENT_ID = re.compile(r"^[A-Za-z0-9._-]{1,64}$")


def _client_request_id(request: Request) -> str | None:
    value = request.headers.get("X-Request-ID")
    if value and _CLIENT_ID.match(value):
        return value
    return None


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Bind a request id for the duration of the request and echo it back."""

    async def dispatch(self, request: Request, call_next):
        req_id = _client_request_id(request) or uuid.uuid4().hex
        token = request_id_ctx.set(req_id)
        request.state.request_id = req_id
        try:
            response = await call_next(request)
        finally:
            request_id_ctx.reset(token)
        response.headers["X-Request-ID"] = req_id
        return response
