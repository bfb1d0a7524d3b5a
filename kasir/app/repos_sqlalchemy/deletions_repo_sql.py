"""Two-party removal of a line item from an unpaid open bill.

A cashier raises a request which snapshots the targeted item into a
notification. An authorizer approves or rejects it. Approval re-checks the
order because it may have been edited after the request was raised; if the
index no longer points at the same item the approval is refused and nothing
changes.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..domain.errors import Conflict, NotFound, ValidationFailed
from ..domain.order_status import NotificationStatus, PaymentStatus
from ..domain.pricing import clamp_totals
from ..models import DeletionLog, Notification, Order
from . import orders_repo_sql

DELETION_REQUEST = "deletion_request"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def serialize_notification(notification: Notification) -> dict:
    return {
        "id": notification.id,
        "type": notification.type,
        "title": notification.title,
        "message": notification.message,
        "status": notification.status.value,
        "requested_by": notification.requested_by,
        "processed_by": notification.processed_by,
        "processed_at": (
            notification.processed_at.isoformat() if notification.processed_at else None
        ),
        "related_data": notification.related_data,
        "created_at": notification.created_at.isoformat(),
    }


def serialize_log(log: DeletionLog) -> dict:
    return {
        "id": log.id,
        "order_id": log.order_id,
        "notification_id": log.notification_id,
        "item_index": log.item_index,
        "deleted_item": log.deleted_item,
        "items_before": log.items_before,
        "items_after": log.items_after,
        "reason": log.reason,
        "requested_by": log.requested_by,
        "authorized_by": log.authorized_by,
        "created_at": log.created_at.isoformat(),
    }


def _check_editable(order: Order) -> None:
    if not order.pay_later:
        raise Conflict("only open bills can lose items", {"order_id": order.id})
    if order.payment_status is PaymentStatus.PAID:
        raise Conflict("open bill already paid", {"order_id": order.id})


async def request_deletion(
    session: AsyncSession,
    order_id: str,
    item_index: int,
    reason: str,
    requested_by: str,
) -> Notification:
    """Stage a pending deletion request. Does not commit."""

    if not reason or not reason.strip():
        raise ValidationFailed("reason is required")
    order = await orders_repo_sql.get_order(session, order_id)
    _check_editable(order)
    items = list(order.items)
    if not 0 <= item_index < len(items):
        raise ValidationFailed(
            "item index out of range",
            {"item_index": item_index, "item_count": len(items)},
        )
    if len(items) == 1:
        raise ValidationFailed(
            "cannot remove the only item of an order", {"order_id": order_id}
        )
    item = items[item_index]
    notification = Notification(
        type=DELETION_REQUEST,
        title="Item deletion request",
        message=(
            f"Remove {item['quantity']} x {item['name']} from order "
            f"{order_id[:8]} (table {order.table_number or '-'})"
        ),
        status=NotificationStatus.PENDING,
        requested_by=requested_by,
        related_data={
            "order_id": order_id,
            "item_index": item_index,
            "item": item,
            "reason": reason.strip(),
        },
        created_at=_now(),
    )
    session.add(notification)
    await session.flush()
    return notification


async def get_notification(session: AsyncSession, notification_id: int) -> Notification:
    notification = await session.get(
        Notification, notification_id, populate_existing=True
    )
    if notification is None:
        raise NotFound("notification not found", {"notification_id": notification_id})
    return notification


async def _decide(
    session: AsyncSession,
    notification_id: int,
    dst: NotificationStatus,
    authorized_by: str,
) -> Notification:
    res = await session.execute(
        update(Notification)
        .where(
            Notification.id == notification_id,
            Notification.status == NotificationStatus.PENDING,
        )
        .values(status=dst, processed_by=authorized_by, processed_at=_now())
        .execution_options(synchronize_session=False)
    )
    if res.rowcount == 0:
        await get_notification(session, notification_id)
        raise Conflict(
            "request was already decided", {"notification_id": notification_id}
        )
    return await get_notification(session, notification_id)


async def approve_deletion(
    session: AsyncSession, notification_id: int, authorized_by: str
) -> tuple[Order, DeletionLog]:
    """Approve the request and remove the item. Does not commit.

    Raises :class:`Conflict` when the request was already decided, the bill
    has been paid, or the item at the recorded index is no longer the one
    that was requested.
    """

    notification = await _decide(
        session, notification_id, NotificationStatus.APPROVED, authorized_by
    )
    data = notification.related_data
    index = int(data["item_index"])
    order = await orders_repo_sql.get_order(session, data["order_id"])
    _check_editable(order)

    before = list(order.items)
    if not 0 <= index < len(before):
        raise Conflict(
            "item index no longer valid",
            {"item_index": index, "item_count": len(before)},
        )
    if before[index] != data["item"]:
        raise Conflict("order items changed since the request", {"item_index": index})
    if len(before) == 1:
        raise Conflict("cannot remove the only item of an order", {"order_id": order.id})

    after = before[:index] + before[index + 1 :]
    totals = clamp_totals(after, order.discount)
    order = await orders_repo_sql.remove_item(session, order, after, totals)

    log = DeletionLog(
        order_id=order.id,
        notification_id=notification.id,
        item_index=index,
        deleted_item=before[index],
        items_before=before,
        items_after=after,
        reason=data.get("reason", ""),
        requested_by=notification.requested_by,
        authorized_by=authorized_by,
        created_at=_now(),
    )
    session.add(log)
    await session.flush()
    return order, log


async def reject_deletion(
    session: AsyncSession, notification_id: int, authorized_by: str
) -> Notification:
    return await _decide(
        session, notification_id, NotificationStatus.REJECTED, authorized_by
    )


async def list_notifications(
    session: AsyncSession, status: NotificationStatus | None = None
) -> List[Notification]:
    stmt = select(Notification).order_by(Notification.created_at.desc())
    if status is not None:
        stmt = stmt.where(Notification.status == status)
    result = await session.execute(stmt)
    return list(result.scalars())


async def list_deletion_logs(
    session: AsyncSession, order_id: str | None = None
) -> List[DeletionLog]:
    stmt = select(DeletionLog).order_by(DeletionLog.created_at.desc())
    if order_id is not None:
        stmt = stmt.where(DeletionLog.order_id == order_id)
    result = await session.execute(stmt)
    return list(result.scalars())
