"""Gateway push notifications and client configuration."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from config import get_settings

from .db import get_session
from .repos_sqlalchemy import orders_repo_sql
from .routes_metrics import webhook_rejected_total
from .services.payment_gateway import verify_signature
from .services.reconciliation import merge_gateway_status
from .utils.responses import ok

router = APIRouter()
logger = logging.getLogger(__name__)


def _not_applied(reason: str) -> dict:
    webhook_rejected_total.labels(reason=reason).inc()
    return ok({"applied": False, "reason": reason})


@router.post("/api/payments/webhook")
async def payment_webhook(
    request: Request, session: AsyncSession = Depends(get_session)
) -> dict:
    """Apply a gateway notification.

    Deliveries that cannot be parsed, fail the signature check or name an
    unknown order are acknowledged with 200 and not applied, so the gateway
    stops retrying them. Errors while applying a valid notification
    propagate as 500 so the gateway retries later.
    """

    try:
        payload = await request.json()
    except ValueError:
        logger.warning("webhook body is not JSON")
        return _not_applied("parse")
    if not isinstance(payload, dict) or not payload.get("order_id"):
        logger.warning("webhook body missing order_id")
        return _not_applied("parse")

    server_key = get_settings().gateway_server_key
    if not server_key or not verify_signature(payload, server_key):
        logger.warning("webhook signature rejected for %s", payload.get("order_id"))
        return _not_applied("signature")

    order = await orders_repo_sql.get_by_gateway_order_id(session, payload["order_id"])
    if order is None:
        logger.warning("webhook for unknown order %s", payload["order_id"])
        return _not_applied("unknown_order")

    result = await merge_gateway_status(
        session,
        order.id,
        payload.get("transaction_status"),
        transaction_id=payload.get("transaction_id"),
        source="webhook",
    )
    return ok(
        {
            "applied": result.changed,
            "order_id": result.order_id,
            "payment_status": result.payment_status.value,
        },
        result.warnings,
    )


@router.get("/api/payments/config")
async def payment_config() -> dict:
    settings = get_settings()
    return ok(
        {
            "client_key": settings.gateway_client_key,
            "is_production": settings.gateway_production,
            "enabled": bool(settings.gateway_server_key),
        }
    )


__all__ = ["router"]
