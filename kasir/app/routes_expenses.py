from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from .auth import Capability, Role, User, require
from .db import get_session
from .repos_sqlalchemy import expenses_repo_sql
from .schemas import ExpenseIn
from .utils.responses import ok

router = APIRouter()


@router.post("/api/expenses")
async def record_expense(
    body: ExpenseIn,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(require(Capability.SHIFTS_OPERATE)),
) -> dict:
    expense = await expenses_repo_sql.record_expense(
        session, user.id, body.amount, body.category, body.description
    )
    await session.commit()
    return ok(expenses_repo_sql.serialize(expense))


@router.get("/api/expenses")
async def list_expenses(
    cashier_id: Optional[str] = None,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(require(Capability.SHIFTS_OPERATE)),
) -> dict:
    """Cashiers see their own expenses; admins may filter by cashier."""

    if user.role is not Role.ADMIN:
        cashier_id = user.id
    expenses = await expenses_repo_sql.list_expenses(session, cashier_id=cashier_id)
    return ok([expenses_repo_sql.serialize(e) for e in expenses])


__all__ = ["router"]
