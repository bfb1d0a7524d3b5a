"""Order creation, listing, status changes and payment polling."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from config import get_settings

from .auth import Capability, User, require
from .db import get_session
from .domain.errors import Conflict, ValidationFailed
from .domain.order_status import (
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    StockStatus,
)
from .hooks import ORDER_PAID, ORDER_SERVED, hooks
from .hooks.stock import deduct_for_served_order
from .repos_sqlalchemy import orders_repo_sql
from .routes_metrics import orders_created_total
from .schemas import CashOrderIn, OrderIn, OrderStatusIn
from .services.payment_gateway import GatewayAdapter, GatewayError, get_gateway
from .services.reconciliation import merge_gateway_status
from .utils.responses import ok

router = APIRouter()
logger = logging.getLogger(__name__)


def _lines(body) -> list[dict]:
    return [line.model_dump() for line in body.items]


@router.post("/api/orders")
async def create_qris_order(
    body: OrderIn,
    session: AsyncSession = Depends(get_session),
    gateway: Optional[GatewayAdapter] = Depends(get_gateway),
) -> dict:
    """Create a QRIS order and request a charge from the gateway.

    The order is stored before the gateway is called. If the gateway is not
    configured, times out or refuses, the order keeps a mock pending payment
    so the kitchen still receives it.
    """

    order = await orders_repo_sql.create_order(
        session,
        _lines(body),
        payment_method=PaymentMethod.QRIS,
        payment_status=PaymentStatus.PENDING,
        order_status=OrderStatus.PENDING,
        discount=body.discount,
        customer_name=body.customer_name,
        table_number=body.table_number,
    )
    await session.commit()
    orders_created_total.labels(method="qris").inc()

    settings = get_settings()
    expires_at = datetime.now(timezone.utc) + timedelta(
        minutes=settings.qris_expiry_minutes
    )
    values: dict = {}
    warnings: list[str] = []
    if gateway is not None:
        gateway_order_id = f"ORDER-{order.id}"
        try:
            charge = await gateway.create_charge(
                gateway_order_id,
                order.total,
                order.items,
                {"name": body.customer_name, "phone": body.customer_phone},
            )
        except GatewayError as exc:
            logger.warning(
                "charge failed, using mock payment: %s",
                exc,
                extra={"order_id": order.id},
            )
            warnings.append("payment gateway unavailable; mock payment created")
        else:
            values = {
                "gateway_order_id": gateway_order_id,
                "gateway_transaction_id": charge.charge_id,
                "gateway_transaction_status": charge.transaction_status,
                "qris_url": charge.qr_url,
                "qris_string": charge.qr_string,
                "payment_expires_at": charge.expires_at or expires_at,
            }
    if not values:
        values = {
            "gateway_order_id": f"MOCK-{uuid.uuid4().hex[:16]}",
            "gateway_mock": True,
            "payment_expires_at": expires_at,
        }
    await orders_repo_sql.set_gateway_fields(session, order.id, **values)
    await session.commit()
    order = await orders_repo_sql.get_order(session, order.id)
    return ok(orders_repo_sql.serialize(order), warnings)


@router.post("/api/orders/cash")
async def create_cash_order(
    body: CashOrderIn,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(require(Capability.ORDERS_CREATE)),
) -> dict:
    """Create an order paid in cash at the counter."""

    order = await orders_repo_sql.create_order(
        session,
        _lines(body),
        payment_method=PaymentMethod.CASH,
        payment_status=PaymentStatus.PAID,
        order_status=OrderStatus.PENDING,
        discount=body.discount,
        customer_name=body.customer_name,
        table_number=body.table_number,
        created_by=user.id,
    )
    received = order.total if body.cash_received is None else body.cash_received
    if received < order.total:
        raise ValidationFailed(
            "cash received is less than the total",
            {"total": order.total, "cash_received": received},
        )
    await session.commit()
    orders_created_total.labels(method="cash").inc()
    warnings = await hooks.run(ORDER_PAID, session, order.id)
    order = await orders_repo_sql.get_order(session, order.id)
    return ok(
        {
            "order": orders_repo_sql.serialize(order),
            "payment": {
                "method": "cash",
                "received": received,
                "change": received - order.total,
                "status": PaymentStatus.PAID.value,
            },
        },
        warnings,
    )


@router.get("/api/orders")
async def list_orders(
    order_status: Optional[OrderStatus] = None,
    payment_status: Optional[PaymentStatus] = None,
    limit: int = 100,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(require(Capability.ORDERS_VIEW)),
) -> dict:
    orders = await orders_repo_sql.list_orders(
        session,
        order_status=order_status,
        payment_status=payment_status,
        limit=min(max(limit, 1), 500),
    )
    return ok([orders_repo_sql.serialize(o) for o in orders])


@router.get("/api/orders/{order_id}")
async def get_order(
    order_id: str,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(require(Capability.ORDERS_VIEW)),
) -> dict:
    order = await orders_repo_sql.get_order(session, order_id)
    return ok(orders_repo_sql.serialize(order))


@router.patch("/api/orders/{order_id}/status")
async def update_order_status(
    order_id: str,
    body: OrderStatusIn,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(require(Capability.ORDERS_UPDATE_STATUS)),
) -> dict:
    """Advance the kitchen status; entering ``served`` deducts stock."""

    await orders_repo_sql.advance_status(session, order_id, body.status)
    await session.commit()
    logger.info(
        "order status -> %s",
        body.status.value,
        extra={"order_id": order_id, "user": user.id},
    )
    warnings: list[str] = []
    if body.status is OrderStatus.SERVED:
        warnings = await hooks.run(ORDER_SERVED, session, order_id)
    order = await orders_repo_sql.get_order(session, order_id)
    return ok(orders_repo_sql.serialize(order), warnings)


@router.get("/api/orders/{order_id}/payment-status")
async def payment_status(
    order_id: str,
    session: AsyncSession = Depends(get_session),
    gateway: Optional[GatewayAdapter] = Depends(get_gateway),
) -> dict:
    """Return the payment state, asking the gateway while it is pending."""

    order = await orders_repo_sql.get_order(session, order_id)
    warnings: list[str] = []
    if (
        gateway is not None
        and order.payment_method is PaymentMethod.QRIS
        and order.payment_status is PaymentStatus.PENDING
        and not order.gateway_mock
        and order.gateway_order_id
    ):
        try:
            status = await gateway.query_status(order.gateway_order_id)
        except GatewayError as exc:
            logger.warning(
                "status poll failed: %s", exc, extra={"order_id": order_id}
            )
            warnings.append("payment gateway unavailable; showing stored status")
        else:
            result = await merge_gateway_status(
                session, order_id, status, source="poll"
            )
            warnings.extend(result.warnings)
        order = await orders_repo_sql.get_order(session, order_id)
    return ok(
        {
            "order_id": order.id,
            "payment_status": order.payment_status.value,
            "transaction_status": order.gateway_transaction_status,
            "order_status": order.order_status.value,
            "total": order.total,
        },
        warnings,
    )


@router.post("/api/orders/{order_id}/stock/retry")
async def retry_stock_deduction(
    order_id: str,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(require(Capability.INVENTORY_MANAGE)),
) -> dict:
    """Retry a failed ingredient deduction for a served order."""

    order = await orders_repo_sql.get_order(session, order_id)
    if order.order_status is not OrderStatus.SERVED:
        raise Conflict("order has not been served", {"order_id": order_id})
    if order.stock_status is StockStatus.DEDUCTED:
        raise Conflict("stock already deducted", {"order_id": order_id})
    await deduct_for_served_order(session, order_id)
    order = await orders_repo_sql.get_order(session, order_id)
    return ok(orders_repo_sql.serialize(order))


__all__ = ["router"]
