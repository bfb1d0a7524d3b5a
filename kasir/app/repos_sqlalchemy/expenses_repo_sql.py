"""Expense ledger; every expense is paid from the till."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..domain.errors import ValidationFailed
from ..models import Expense


def serialize(expense: Expense) -> dict:
    return {
        "id": expense.id,
        "cashier_id": expense.cashier_id,
        "amount": expense.amount,
        "category": expense.category,
        "description": expense.description,
        "created_at": expense.created_at.isoformat(),
    }


async def record_expense(
    session: AsyncSession,
    cashier_id: str,
    amount: int,
    category: str,
    description: str,
) -> Expense:
    if amount <= 0:
        raise ValidationFailed("amount must be positive")
    if not description or not description.strip():
        raise ValidationFailed("description is required")
    expense = Expense(
        cashier_id=cashier_id,
        amount=amount,
        category=category,
        description=description.strip(),
        created_at=datetime.now(timezone.utc),
    )
    session.add(expense)
    await session.flush()
    return expense


async def list_expenses(
    session: AsyncSession,
    cashier_id: str | None = None,
    since: datetime | None = None,
    until: datetime | None = None,
) -> List[Expense]:
    stmt = select(Expense).order_by(Expense.created_at.desc())
    if cashier_id is not None:
        stmt = stmt.where(Expense.cashier_id == cashier_id)
    if since is not None:
        stmt = stmt.where(Expense.created_at >= since)
    if until is not None:
        stmt = stmt.where(Expense.created_at <= until)
    result = await session.execute(stmt)
    return list(result.scalars())
