from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from .auth import Capability, User, require
from .db import get_session
from .repos_sqlalchemy import reports_repo_sql
from .utils.responses import ok

router = APIRouter()


@router.get("/api/daily-reports/{report_date}")
async def daily_report(
    report_date: date,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(require(Capability.REPORTS_VIEW)),
) -> dict:
    """Recount and return the revenue report for ``report_date`` (UTC)."""

    report = await reports_repo_sql.recount(session, report_date)
    await session.commit()
    return ok(reports_repo_sql.serialize(report))


__all__ = ["router"]
