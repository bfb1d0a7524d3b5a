"""Deduct ingredients when an order is served."""

from __future__ import annotations

import logging

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from ..domain.errors import InsufficientStock, NotFound
from ..domain.order_status import StockStatus
from ..models import Order
from ..routes_metrics import stock_deductions_total
from ..services import stock_engine

logger = logging.getLogger(__name__)


async def deduct_for_served_order(session: AsyncSession, order_id: str) -> bool:
    """Deduct stock for ``order_id`` once and record the outcome on the order.

    Returns ``False`` when the order was already deducted. On a shortfall the
    order is marked ``failed`` with the report in ``stock_error`` and
    :class:`InsufficientStock` is re-raised. Commits.
    """

    order = await session.get(Order, order_id, populate_existing=True)
    if order is None:
        raise NotFound("order not found")
    items = list(order.items)

    # Claim the deduction first so two concurrent completions cannot both
    # decrement; the loser sees zero rows and backs off.
    claim = await session.execute(
        update(Order)
        .where(Order.id == order_id, Order.stock_status != StockStatus.DEDUCTED)
        .values(stock_status=StockStatus.DEDUCTED, stock_error=None)
        .execution_options(synchronize_session=False)
    )
    if claim.rowcount == 0:
        await session.rollback()
        return False

    try:
        result = await stock_engine.deduct(session, items)
    except InsufficientStock as exc:
        await session.rollback()
        await session.execute(
            update(Order)
            .where(Order.id == order_id, Order.stock_status != StockStatus.DEDUCTED)
            .values(stock_status=StockStatus.FAILED, stock_error=exc.details)
            .execution_options(synchronize_session=False)
        )
        await session.commit()
        stock_deductions_total.labels(outcome="failed").inc()
        logger.warning(
            "stock deduction failed for order %s",
            order_id,
            extra={"order_id": order_id},
        )
        raise

    await session.commit()
    stock_deductions_total.labels(outcome="deducted").inc()
    logger.info(
        "deducted %d ingredients for order %s",
        len(result.deductions),
        order_id,
        extra={"order_id": order_id},
    )
    return True
