"""Recount the daily revenue report when an order is paid."""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from ..models import Order
from ..repos_sqlalchemy import reports_repo_sql


async def recount_for_paid_order(session: AsyncSession, order_id: str) -> None:
    order = await session.get(Order, order_id, populate_existing=True)
    if order is None or order.paid_at is None:
        return
    await reports_repo_sql.recount(session, order.paid_at.date())
    await session.commit()
