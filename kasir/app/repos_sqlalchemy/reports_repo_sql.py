"""Daily revenue report, always recomputed from paid orders."""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..domain.order_status import PaymentMethod, PaymentStatus
from ..models import DailyReport, Order


def _day_bounds(day: date) -> tuple[datetime, datetime]:
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    return start, start + timedelta(days=1)


async def recount(session: AsyncSession, day: date) -> DailyReport:
    """Recompute the report for ``day`` from scratch. Does not commit.

    A full recount keeps the report correct no matter how many times the
    payment that triggered it is replayed.
    """

    start, end = _day_bounds(day)
    result = await session.execute(
        select(Order.total, Order.payment_method).where(
            Order.payment_status == PaymentStatus.PAID,
            Order.paid_at >= start,
            Order.paid_at < end,
        )
    )
    rows = result.all()
    cash = sum(r.total for r in rows if r.payment_method == PaymentMethod.CASH)
    non_cash = sum(r.total for r in rows if r.payment_method != PaymentMethod.CASH)

    report = await session.get(DailyReport, day)
    if report is None:
        report = DailyReport(report_date=day)
        session.add(report)
    report.total_orders = len(rows)
    report.cash_revenue = cash
    report.non_cash_revenue = non_cash
    report.total_revenue = cash + non_cash
    report.updated_at = datetime.now(timezone.utc)
    await session.flush()
    return report


def serialize(report: DailyReport) -> dict:
    return {
        "report_date": report.report_date.isoformat(),
        "total_orders": report.total_orders,
        "total_revenue": report.total_revenue,
        "cash_revenue": report.cash_revenue,
        "non_cash_revenue": report.non_cash_revenue,
        "updated_at": report.updated_at.isoformat() if report.updated_at else None,
    }
