from __future__ import annotations

import base64
import hashlib
import json

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from config import get_settings

from ..routes_metrics import idempotency_hits_total
from ..utils.responses import err

IDEMPOTENT_PREFIXES = ("/api/orders", "/api/open-bills")


class IdempotencyMiddleware(BaseHTTPMiddleware):
    """Cache responses for POSTs with an ``Idempotency-Key`` header.

    Keys are stored in Redis so that a cashier terminal retrying on a flaky
    network replays the first response instead of creating a second order.
    Only successful responses are cached; a failed attempt may be retried.
    A key belongs to the caller that sent it, and reusing it with another
    body is refused rather than answered with the earlier order.
    """

    async def dispatch(self, request: Request, call_next):
        if (
            request.method == "POST"
            and request.url.path.startswith(IDEMPOTENT_PREFIXES)
            and (key := request.headers.get("Idempotency-Key"))
        ):
            redis = request.app.state.redis
            # Keys are scoped to the caller's credentials
            caller = request.headers.get("Authorization", "anonymous")
            scope = hashlib.sha256(f"{caller}\n{key}".encode()).hexdigest()
            body_hash = hashlib.sha256(await request.body()).hexdigest()
            cache_key = f"idem:{request.url.path}:{scope}"
            cached = await redis.get(cache_key)
            if cached:
                data = json.loads(cached)
                if data.get("body_hash") != body_hash:
                    return JSONResponse(
                        err(
                            "IDEMPOTENCY_KEY_REUSED",
                            "Idempotency-Key was already used with a different body",
                        ),
                        status_code=409,
                    )
                idempotency_hits_total.inc()
                body = base64.b64decode(data["body"])
                return Response(
                    content=body,
                    status_code=data["status"],
                    headers=data.get("headers"),
                    media_type=data.get("media_type", "application/json"),
                )

            response = await call_next(request)
            body = b"".join([section async for section in response.body_iterator])
            headers = dict(response.headers)
            if response.status_code < 400:
                payload = {
                    "status": response.status_code,
                    "body": base64.b64encode(body).decode(),
                    "body_hash": body_hash,
                    "headers": headers,
                    "media_type": response.media_type,
                }
                await redis.set(
                    cache_key,
                    json.dumps(payload),
                    ex=get_settings().idempotency_ttl_secs,
                )
            return Response(
                content=body,
                status_code=response.status_code,
                headers=headers,
                media_type=response.media_type,
            )

        return await call_next(request)
