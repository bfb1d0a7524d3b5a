"""Cashier shifts, cash movements and the closing reconciliation."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from .auth import Capability, Role, User, require
from .db import get_session
from .repos_sqlalchemy import shifts_repo_sql
from .schemas import CashMovementIn, ShiftCloseIn, ShiftOpenIn
from .utils.responses import ok

router = APIRouter()
logger = logging.getLogger(__name__)

operate = require(Capability.SHIFTS_OPERATE)


@router.post("/api/shifts")
async def open_shift(
    body: ShiftOpenIn,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(operate),
) -> dict:
    shift = await shifts_repo_sql.open_shift(session, user.id, body.initial_cash)
    logger.info("shift opened", extra={"shift_id": shift.id, "user": user.id})
    return ok(shifts_repo_sql.serialize(shift))


@router.get("/api/shifts/active")
async def active_shift(
    session: AsyncSession = Depends(get_session),
    user: User = Depends(operate),
) -> dict:
    shift = await shifts_repo_sql.get_open_shift(session, user.id)
    return ok(shifts_repo_sql.serialize(shift) if shift else None)


@router.post("/api/cash-movements")
async def record_cash_movement(
    body: CashMovementIn,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(operate),
) -> dict:
    movement = await shifts_repo_sql.record_movement(
        session,
        user.id,
        body.type,
        body.amount,
        body.description,
        shift_id=body.shift_id,
    )
    await session.commit()
    return ok(shifts_repo_sql.serialize_movement(movement))


@router.get("/api/shifts/{shift_id}/cash-movements")
async def list_cash_movements(
    shift_id: str,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(operate),
) -> dict:
    await shifts_repo_sql.get_shift(session, shift_id)
    movements = await shifts_repo_sql.list_movements(session, shift_id)
    return ok([shifts_repo_sql.serialize_movement(m) for m in movements])


@router.post("/api/shifts/{shift_id}/close")
async def close_shift(
    shift_id: str,
    body: ShiftCloseIn,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(operate),
) -> dict:
    """Close the shift with the physically counted cash."""

    owner = None if user.role is Role.ADMIN else user.id
    shift = await shifts_repo_sql.close_shift(
        session, shift_id, body.final_cash, body.notes, cashier_id=owner
    )
    logger.info(
        "shift closed difference=%s",
        shift.cash_difference,
        extra={"shift_id": shift.id, "user": user.id},
    )
    return ok(shifts_repo_sql.serialize(shift))


@router.get("/api/shifts/{shift_id}/reconciliation")
async def shift_reconciliation(
    shift_id: str,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(operate),
) -> dict:
    return ok(await shifts_repo_sql.reconciliation(session, shift_id))


__all__ = ["router"]
