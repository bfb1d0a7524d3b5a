"""Converge stored payment state with the gateway's transaction status.

The webhook and the client poll both call :func:`merge_gateway_status`.
The write is a compare-and-set on the stored ``payment_status`` so two
deliveries racing on the same order apply the change once; the loser sees
zero affected rows and reports no change.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from ..domain.errors import NotFound
from ..domain.order_status import OrderStatus, PaymentStatus
from ..domain.payment import is_downgrade, map_transaction_status
from ..hooks import ORDER_PAID, PostCommitHooks, hooks
from ..models import Order
from ..routes_metrics import payment_reconciliations_total

logger = logging.getLogger(__name__)


@dataclass
class MergeResult:
    order_id: str
    changed: bool
    payment_status: PaymentStatus
    order_status: OrderStatus
    transaction_status: str | None
    warnings: list[str] = field(default_factory=list)


def _result(order: Order, changed: bool, warnings: list[str] | None = None) -> MergeResult:
    return MergeResult(
        order_id=order.id,
        changed=changed,
        payment_status=order.payment_status,
        order_status=order.order_status,
        transaction_status=order.gateway_transaction_status,
        warnings=warnings or [],
    )


async def merge_gateway_status(
    session: AsyncSession,
    order_id: str,
    transaction_status: str | None,
    *,
    transaction_id: str | None = None,
    source: str = "poll",
    registry: PostCommitHooks = hooks,
) -> MergeResult:
    """Apply ``transaction_status`` to ``order_id`` if it changes anything.

    Unknown statuses are ignored, pay-later orders are left alone and a paid
    order never moves back. Moving to ``paid`` stamps ``paid_at``, advances a
    ``queued`` or ``pending`` order to ``preparing`` and, after commit, runs
    the ``order.paid`` hooks. Commits.
    """

    order = await session.get(Order, order_id, populate_existing=True)
    if order is None:
        raise NotFound("order not found", {"order_id": order_id})

    mapped = map_transaction_status(transaction_status)
    stored = order.payment_status
    if order.pay_later or mapped is None:
        payment_reconciliations_total.labels(source=source, outcome="ignored").inc()
        return _result(order, False)
    if mapped == stored or is_downgrade(stored, mapped):
        payment_reconciliations_total.labels(source=source, outcome="noop").inc()
        return _result(order, False)

    now = datetime.now(timezone.utc)
    values: dict = {
        "payment_status": mapped,
        "updated_at": now,
        "gateway_transaction_status": transaction_status,
    }
    if transaction_id:
        values["gateway_transaction_id"] = transaction_id
    if mapped is PaymentStatus.PAID:
        values["paid_at"] = now

    res = await session.execute(
        update(Order)
        .where(Order.id == order_id, Order.payment_status == stored)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount == 0:
        await session.rollback()
        order = await session.get(Order, order_id, populate_existing=True)
        payment_reconciliations_total.labels(source=source, outcome="raced").inc()
        logger.info(
            "payment merge for %s lost a race", order_id, extra={"order_id": order_id}
        )
        return _result(order, False)

    if mapped is PaymentStatus.PAID:
        await session.execute(
            update(Order)
            .where(
                Order.id == order_id,
                Order.order_status.in_([OrderStatus.QUEUED, OrderStatus.PENDING]),
            )
            .values(order_status=OrderStatus.PREPARING, updated_at=now)
            .execution_options(synchronize_session=False)
        )
    await session.commit()
    payment_reconciliations_total.labels(source=source, outcome="applied").inc()
    logger.info(
        "payment %s -> %s via %s",
        stored.value,
        mapped.value,
        source,
        extra={"order_id": order_id},
    )

    warnings: list[str] = []
    if mapped is PaymentStatus.PAID:
        warnings = await registry.run(ORDER_PAID, session, order_id)
    order = await session.get(Order, order_id, populate_existing=True)
    return _result(order, True, warnings)


__all__ = ["MergeResult", "merge_gateway_status"]
