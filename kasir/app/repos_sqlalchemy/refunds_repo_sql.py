"""Refund ledger with a per-order cap.

Approved and completed refunds for an order may never add up to more than
the order total. The cap is checked when a refund is requested and again,
under a lock on the order row, when it is approved.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..domain.errors import Conflict, NotFound, ValidationFailed
from ..domain.order_status import (
    COMMITTED_REFUND_STATUSES,
    PaymentStatus,
    RefundStatus,
    RefundType,
    can_transition_refund,
)
from ..models import Order, Refund


def _now() -> datetime:
    return datetime.now(timezone.utc)


def serialize(refund: Refund) -> dict:
    return {
        "id": refund.id,
        "order_id": refund.order_id,
        "refund_amount": refund.refund_amount,
        "refund_type": refund.refund_type.value,
        "status": refund.status.value,
        "reason": refund.reason,
        "requested_by": refund.requested_by,
        "authorized_by": refund.authorized_by,
        "requested_at": refund.requested_at.isoformat(),
        "processed_at": refund.processed_at.isoformat() if refund.processed_at else None,
    }


async def committed_amount(session: AsyncSession, order_id: str) -> int:
    """Sum of approved and completed refunds for ``order_id``."""

    total = await session.scalar(
        select(func.coalesce(func.sum(Refund.refund_amount), 0)).where(
            Refund.order_id == order_id,
            Refund.status.in_(COMMITTED_REFUND_STATUSES),
        )
    )
    return int(total or 0)


async def _locked_order(session: AsyncSession, order_id: str) -> Order:
    result = await session.execute(
        select(Order)
        .where(Order.id == order_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    order = result.scalar_one_or_none()
    if order is None:
        raise NotFound("order not found", {"order_id": order_id})
    return order


async def _check_cap(session: AsyncSession, order: Order, amount: int) -> None:
    refundable = order.total - await committed_amount(session, order.id)
    if amount > refundable:
        raise ValidationFailed(
            "refund exceeds the refundable amount",
            {"refundable": refundable, "requested": amount},
        )


async def request_refund(
    session: AsyncSession,
    order_id: str,
    refund_amount: int,
    refund_type: RefundType,
    reason: str,
    requested_by: str,
) -> Refund:
    """Stage a pending refund. Does not commit."""

    if refund_amount <= 0:
        raise ValidationFailed("refund amount must be positive")
    order = await _locked_order(session, order_id)
    if order.payment_status is not PaymentStatus.PAID:
        raise Conflict("only paid orders can be refunded", {"order_id": order_id})
    await _check_cap(session, order, refund_amount)
    refund = Refund(
        order_id=order_id,
        refund_amount=refund_amount,
        refund_type=refund_type,
        status=RefundStatus.PENDING,
        reason=reason,
        requested_by=requested_by,
        requested_at=_now(),
    )
    session.add(refund)
    await session.flush()
    return refund


async def get_refund(session: AsyncSession, refund_id: int) -> Refund:
    refund = await session.get(Refund, refund_id, populate_existing=True)
    if refund is None:
        raise NotFound("refund not found", {"refund_id": refund_id})
    return refund


async def _move(
    session: AsyncSession,
    refund: Refund,
    dst: RefundStatus,
    authorized_by: str,
) -> Refund:
    src = refund.status
    if not can_transition_refund(src, dst):
        raise Conflict(
            f"cannot move refund from {src.value} to {dst.value}",
            {"from": src.value, "to": dst.value},
        )
    res = await session.execute(
        update(Refund)
        .where(Refund.id == refund.id, Refund.status == src)
        .values(status=dst, authorized_by=authorized_by, processed_at=_now())
        .execution_options(synchronize_session=False)
    )
    if res.rowcount == 0:
        raise Conflict("refund changed concurrently", {"refund_id": refund.id})
    return await get_refund(session, refund.id)


async def approve_refund(session: AsyncSession, refund_id: int, authorized_by: str) -> Refund:
    refund = await get_refund(session, refund_id)
    if refund.status is RefundStatus.PENDING:
        order = await _locked_order(session, refund.order_id)
        await _check_cap(session, order, refund.refund_amount)
    return await _move(session, refund, RefundStatus.APPROVED, authorized_by)


async def reject_refund(session: AsyncSession, refund_id: int, authorized_by: str) -> Refund:
    refund = await get_refund(session, refund_id)
    return await _move(session, refund, RefundStatus.REJECTED, authorized_by)


async def complete_refund(session: AsyncSession, refund_id: int, authorized_by: str) -> Refund:
    refund = await get_refund(session, refund_id)
    return await _move(session, refund, RefundStatus.COMPLETED, authorized_by)


async def list_refunds(session: AsyncSession, order_id: str) -> List[Refund]:
    result = await session.execute(
        select(Refund).where(Refund.order_id == order_id).order_by(Refund.id)
    )
    return list(result.scalars())
