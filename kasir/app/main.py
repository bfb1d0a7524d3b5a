# main.py

"""FastAPI application for the Kasir order ledger and shift reconciliation."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from redis.asyncio import from_url
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import get_settings

from .db import resolve_engine, session_factory
from .domain.errors import DomainError
from .hooks import register_default_hooks
from .middlewares import (
    IdempotencyMiddleware,
    LoggingMiddleware,
    PrometheusMiddleware,
    RequestIdMiddleware,
)
from .obs.logging import configure_logging
from .routes_deletions import router as deletions_router
from .routes_expenses import router as expenses_router
from .routes_inventory import router as inventory_router
from .routes_metrics import router as metrics_router
from .routes_open_bills import router as open_bills_router
from .routes_orders import router as orders_router
from .routes_payments import router as payments_router
from .routes_refunds import router as refunds_router
from .routes_reports import router as reports_router
from .routes_shifts import router as shifts_router
from .utils.responses import err, ok

settings = get_settings()
configure_logging(settings.log_level.upper())
logger = logging.getLogger("kasir")

register_default_hooks()


@asynccontextmanager
async def lifespan(app: FastAPI):
    engine, fallback = await resolve_engine()
    app.state.engine = engine
    app.state.session_factory = session_factory(engine)
    app.state.db_fallback = fallback
    try:
        yield
    finally:
        await engine.dispose()
        await app.state.redis.aclose()


app = FastAPI(title="Kasir API", version="1.0.0", lifespan=lifespan)
app.state.redis = from_url(settings.redis_url, decode_responses=True)
app.state.db_fallback = None

# Last added runs first.
app.add_middleware(PrometheusMiddleware)
app.add_middleware(IdempotencyMiddleware)
app.add_middleware(LoggingMiddleware)
app.add_middleware(RequestIdMiddleware)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    logger.info(
        "%s: %s",
        exc.code,
        exc.message,
        extra={"status": exc.status_code, "route": request.url.path},
    )
    return JSONResponse(
        err(exc.code, exc.message, exc.details), status_code=exc.status_code
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        err(
            "VALIDATION_FAILED",
            "invalid request",
            {"errors": jsonable_errors(exc)},
        ),
        status_code=422,
    )


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    return [
        {"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")}
        for e in exc.errors()
    ]


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    logger.warning(
        exc.detail,
        extra={"status": exc.status_code, "route": request.url.path},
    )
    return JSONResponse(
        err(exc.status_code, str(exc.detail)),
        status_code=exc.status_code,
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def general_error_handler(request: Request, exc: Exception):
    logger.exception(
        "unhandled_error", extra={"status": 500, "route": request.url.path}
    )
    return JSONResponse(err(500, "Internal Server Error"), status_code=500)


@app.get("/health")
async def health() -> dict:
    return ok({"status": "ok", "db_fallback": app.state.db_fallback})


app.include_router(orders_router)
app.include_router(open_bills_router)
app.include_router(payments_router)
app.include_router(shifts_router)
app.include_router(expenses_router)
app.include_router(refunds_router)
app.include_router(deletions_router)
app.include_router(inventory_router)
app.include_router(reports_router)
app.include_router(metrics_router)
