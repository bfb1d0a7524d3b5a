"""Refund requests and their authorisation."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from .auth import Capability, User, require
from .db import get_session
from .repos_sqlalchemy import refunds_repo_sql
from .schemas import RefundIn
from .utils.responses import ok

router = APIRouter()
logger = logging.getLogger(__name__)

authorize = require(Capability.REFUNDS_AUTHORIZE)


@router.post("/api/refunds")
async def request_refund(
    body: RefundIn,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(require(Capability.REFUNDS_REQUEST)),
) -> dict:
    refund = await refunds_repo_sql.request_refund(
        session,
        body.order_id,
        body.refund_amount,
        body.refund_type,
        body.reason,
        user.id,
    )
    await session.commit()
    logger.info(
        "refund %s requested for %s",
        refund.id,
        body.refund_amount,
        extra={"order_id": body.order_id, "user": user.id},
    )
    return ok(refunds_repo_sql.serialize(refund))


@router.get("/api/refunds")
async def list_refunds(
    order_id: str,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(require(Capability.REFUNDS_REQUEST)),
) -> dict:
    refunds = await refunds_repo_sql.list_refunds(session, order_id)
    return ok([refunds_repo_sql.serialize(r) for r in refunds])


@router.post("/api/refunds/{refund_id}/approve")
async def approve_refund(
    refund_id: int,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(authorize),
) -> dict:
    refund = await refunds_repo_sql.approve_refund(session, refund_id, user.id)
    await session.commit()
    return ok(refunds_repo_sql.serialize(refund))


@router.post("/api/refunds/{refund_id}/reject")
async def reject_refund(
    refund_id: int,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(authorize),
) -> dict:
    refund = await refunds_repo_sql.reject_refund(session, refund_id, user.id)
    await session.commit()
    return ok(refunds_repo_sql.serialize(refund))


@router.post("/api/refunds/{refund_id}/complete")
async def complete_refund(
    refund_id: int,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(authorize),
) -> dict:
    """Mark an approved refund as handed over to the customer."""

    refund = await refunds_repo_sql.complete_refund(session, refund_id, user.id)
    await session.commit()
    return ok(refunds_repo_sql.serialize(refund))


__all__ = ["router"]
