"""Item deletion requests on open bills and their approval."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from .auth import Capability, User, require
from .db import get_session
from .domain.order_status import NotificationStatus
from .repos_sqlalchemy import deletions_repo_sql, orders_repo_sql
from .schemas import DeletionRequestIn
from .services import notifications
from .utils.responses import ok

router = APIRouter()
logger = logging.getLogger(__name__)

authorize = require(Capability.DELETIONS_AUTHORIZE)


@router.post("/api/orders/{order_id}/deletion-requests")
async def request_deletion(
    order_id: str,
    body: DeletionRequestIn,
    request: Request,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(require(Capability.DELETIONS_REQUEST)),
) -> dict:
    notification = await deletions_repo_sql.request_deletion(
        session, order_id, body.item_index, body.reason, user.id
    )
    await session.commit()
    data = deletions_repo_sql.serialize_notification(notification)
    await notifications.notify(
        getattr(request.app.state, "redis", None), notification.type, data
    )
    return ok(data)


@router.get("/api/notifications")
async def list_notifications(
    status: Optional[NotificationStatus] = None,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(authorize),
) -> dict:
    items = await deletions_repo_sql.list_notifications(session, status)
    return ok([deletions_repo_sql.serialize_notification(n) for n in items])


@router.post("/api/notifications/{notification_id}/approve")
async def approve_deletion(
    notification_id: int,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(authorize),
) -> dict:
    """Remove the requested item and write the deletion log."""

    order, log = await deletions_repo_sql.approve_deletion(
        session, notification_id, user.id
    )
    await session.commit()
    logger.info(
        "deletion %s approved", notification_id, extra={"order_id": order.id, "user": user.id}
    )
    return ok(
        {
            "order": orders_repo_sql.serialize(order),
            "log": deletions_repo_sql.serialize_log(log),
        }
    )


@router.post("/api/notifications/{notification_id}/reject")
async def reject_deletion(
    notification_id: int,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(authorize),
) -> dict:
    notification = await deletions_repo_sql.reject_deletion(
        session, notification_id, user.id
    )
    await session.commit()
    return ok(deletions_repo_sql.serialize_notification(notification))


@router.get("/api/deletion-logs")
async def list_deletion_logs(
    order_id: Optional[str] = None,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(authorize),
) -> dict:
    logs = await deletions_repo_sql.list_deletion_logs(session, order_id)
    return ok([deletions_repo_sql.serialize_log(log) for log in logs])


__all__ = ["router"]
