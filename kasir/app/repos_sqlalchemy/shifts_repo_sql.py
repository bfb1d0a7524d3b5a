"""Shift ledger: opening, cash movements and the closing reconciliation."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import List

from sqlalchemy import select, update
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..domain.cash import (
    MovementLedgerRow,
    OrderLedgerRow,
    RefundLedgerRow,
    ShiftFigures,
    reconcile,
)
from ..domain.errors import Conflict, NotFound, ValidationFailed
from ..domain.order_status import (
    CashMovementType,
    OrderStatus,
    PaymentStatus,
    RefundStatus,
    ShiftStatus,
)
from ..models import CashMovement, Expense, Order, Refund, Shift


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


FIGURE_FIELDS = (
    "total_orders",
    "total_revenue",
    "total_cash_revenue",
    "total_non_cash_revenue",
    "cash_in",
    "cash_out",
    "cash_expenses",
    "cash_refunds",
    "non_cash_refunds",
    "system_cash",
    "final_cash",
    "cash_difference",
)


def serialize(shift: Shift) -> dict:
    data = {
        "id": shift.id,
        "cashier_id": shift.cashier_id,
        "initial_cash": shift.initial_cash,
        "start_time": _iso(shift.start_time),
        "end_time": _iso(shift.end_time),
        "last_movement_at": _iso(shift.last_movement_at),
        "status": shift.status.value,
        "notes": shift.notes,
    }
    for name in FIGURE_FIELDS:
        data[name] = getattr(shift, name)
    return data


def serialize_movement(movement: CashMovement) -> dict:
    return {
        "id": movement.id,
        "shift_id": movement.shift_id,
        "cashier_id": movement.cashier_id,
        "type": movement.type.value,
        "amount": movement.amount,
        "description": movement.description,
        "created_at": _iso(movement.created_at),
    }


async def get_shift(session: AsyncSession, shift_id: str) -> Shift:
    shift = await session.get(Shift, shift_id, populate_existing=True)
    if shift is None:
        raise NotFound("shift not found", {"shift_id": shift_id})
    return shift


async def get_open_shift(session: AsyncSession, cashier_id: str) -> Shift | None:
    result = await session.execute(
        select(Shift).where(
            Shift.cashier_id == cashier_id, Shift.status == ShiftStatus.OPEN
        )
    )
    return result.scalar_one_or_none()


async def open_shift(session: AsyncSession, cashier_id: str, initial_cash: int) -> Shift:
    """Open a shift for ``cashier_id``. Commits.

    The partial unique index on open shifts backs up the explicit check when
    two terminals race to open for the same cashier.
    """

    if initial_cash < 0:
        raise ValidationFailed("initial cash cannot be negative")
    if await get_open_shift(session, cashier_id) is not None:
        raise Conflict("cashier already has an open shift", {"cashier_id": cashier_id})
    shift = Shift(
        id=str(uuid.uuid4()),
        cashier_id=cashier_id,
        initial_cash=initial_cash,
        start_time=_now(),
        status=ShiftStatus.OPEN,
    )
    session.add(shift)
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        raise Conflict(
            "cashier already has an open shift", {"cashier_id": cashier_id}
        ) from exc
    return shift


async def _claim_open_shift(session: AsyncSession, shift_id: str, now: datetime) -> None:
    # A real write to the shift row: a concurrent close either waits for it
    # or fails serialisation instead of missing the movement.
    res = await session.execute(
        update(Shift)
        .where(Shift.id == shift_id, Shift.status == ShiftStatus.OPEN)
        .values(last_movement_at=now)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount == 0:
        raise Conflict("shift is closed", {"shift_id": shift_id})


async def record_movement(
    session: AsyncSession,
    cashier_id: str,
    type: CashMovementType,
    amount: int,
    description: str,
    shift_id: str | None = None,
) -> CashMovement:
    """Append a cash movement to the cashier's open shift. Does not commit."""

    if amount <= 0:
        raise ValidationFailed("amount must be positive")
    if not description or not description.strip():
        raise ValidationFailed("description is required")
    if shift_id is None:
        shift = await get_open_shift(session, cashier_id)
        if shift is None:
            raise Conflict("no open shift", {"cashier_id": cashier_id})
    else:
        shift = await get_shift(session, shift_id)
        if shift.status is not ShiftStatus.OPEN:
            raise Conflict("shift is closed", {"shift_id": shift_id})
    now = _now()
    await _claim_open_shift(session, shift.id, now)
    movement = CashMovement(
        shift_id=shift.id,
        cashier_id=cashier_id,
        type=type,
        amount=amount,
        description=description.strip(),
        created_at=now,
    )
    session.add(movement)
    await session.flush()
    return movement


async def compute_figures(
    session: AsyncSession,
    shift: Shift,
    end_time: datetime,
    final_cash: int | None = None,
) -> ShiftFigures:
    """Read the ledgers for ``shift`` up to ``end_time`` and reconcile them."""

    start = shift.start_time
    orders = await session.execute(
        select(Order.total, Order.payment_method).where(
            Order.payment_status == PaymentStatus.PAID,
            Order.order_status == OrderStatus.SERVED,
            Order.paid_at >= start,
            Order.paid_at <= end_time,
        )
    )
    movements = await session.execute(
        select(CashMovement.type, CashMovement.amount).where(
            CashMovement.shift_id == shift.id
        )
    )
    expenses = await session.execute(
        select(Expense.amount).where(
            Expense.cashier_id == shift.cashier_id,
            Expense.created_at >= start,
            Expense.created_at <= end_time,
        )
    )
    refunds = await session.execute(
        select(Refund.refund_amount, Refund.refund_type).where(
            Refund.requested_by == shift.cashier_id,
            Refund.status == RefundStatus.COMPLETED,
            Refund.requested_at >= start,
            Refund.requested_at <= end_time,
        )
    )
    return reconcile(
        shift.initial_cash,
        [OrderLedgerRow(r.total, r.payment_method) for r in orders],
        [MovementLedgerRow(r.type, r.amount) for r in movements],
        [r.amount for r in expenses],
        [RefundLedgerRow(r.refund_amount, r.refund_type) for r in refunds],
        final_cash=final_cash,
    )


async def _begin_snapshot(session: AsyncSession) -> None:
    # Same snapshot for every ledger read on PostgreSQL; SQLite already
    # serialises writers.
    if session.get_bind().dialect.name == "postgresql":
        await session.connection(
            execution_options={"isolation_level": "REPEATABLE READ"}
        )


def is_serialization_failure(exc: DBAPIError) -> bool:
    orig = exc.orig
    return "40001" in (getattr(orig, "sqlstate", None), getattr(orig, "pgcode", None))


async def _locked_shift(session: AsyncSession, shift_id: str) -> Shift:
    result = await session.execute(
        select(Shift)
        .where(Shift.id == shift_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    shift = result.scalar_one_or_none()
    if shift is None:
        raise NotFound("shift not found", {"shift_id": shift_id})
    return shift


async def close_shift(
    session: AsyncSession,
    shift_id: str,
    final_cash: int,
    notes: str | None = None,
    cashier_id: str | None = None,
) -> Shift:
    """Close ``shift_id`` exactly once and persist the figures. Commits.

    The shift row is locked before any ledger is read. A movement committed
    after the snapshot was taken surfaces as a serialisation failure and is
    reported as a conflict so the cashier can retry the close.
    """

    if final_cash < 0:
        raise ValidationFailed("final cash cannot be negative")
    await session.rollback()
    await _begin_snapshot(session)
    try:
        shift = await _locked_shift(session, shift_id)
        if cashier_id is not None and shift.cashier_id != cashier_id:
            raise Conflict("shift belongs to another cashier", {"shift_id": shift_id})
        if shift.status is not ShiftStatus.OPEN:
            raise Conflict("shift already closed", {"shift_id": shift_id})

        end_time = _now()
        figures = await compute_figures(session, shift, end_time, final_cash)
        values = {name: getattr(figures, name) for name in FIGURE_FIELDS}
        res = await session.execute(
            update(Shift)
            .where(Shift.id == shift_id, Shift.status == ShiftStatus.OPEN)
            .values(status=ShiftStatus.CLOSED, end_time=end_time, notes=notes, **values)
            .execution_options(synchronize_session=False)
        )
        if res.rowcount == 0:
            raise Conflict("shift already closed", {"shift_id": shift_id})
        await session.commit()
    except DBAPIError as exc:
        await session.rollback()
        if is_serialization_failure(exc):
            raise Conflict(
                "shift changed while closing, retry", {"shift_id": shift_id}
            ) from exc
        raise
    except Conflict:
        await session.rollback()
        raise
    return await get_shift(session, shift_id)


async def reconciliation(session: AsyncSession, shift_id: str) -> dict:
    """Re-derive the figures for an audit without changing the shift.

    A closed shift is recomputed over its recorded window and compared with
    the stored values; an open one is previewed up to now.
    """

    shift = await get_shift(session, shift_id)
    end_time = shift.end_time or _now()
    figures = await compute_figures(session, shift, end_time, shift.final_cash)
    data = {"shift_id": shift.id, "status": shift.status.value, **figures.as_dict()}
    if shift.status is ShiftStatus.CLOSED:
        data["matches_stored"] = all(
            getattr(shift, name) == getattr(figures, name) for name in FIGURE_FIELDS
        )
    return data


async def list_movements(session: AsyncSession, shift_id: str) -> List[CashMovement]:
    result = await session.execute(
        select(CashMovement)
        .where(CashMovement.shift_id == shift_id)
        .order_by(CashMovement.id)
    )
    return list(result.scalars())
