"""SQLAlchemy-backed repository helpers for orders and open bills.

Line items are snapshotted from the menu when they are added so historical
names and prices survive later menu edits. All mutations of an existing
order are conditional updates: status changes compare on the current status
and item edits compare on ``version``. None of the helpers commit.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Iterable, List, Mapping

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..domain.errors import Conflict, NotFound, ValidationFailed
from ..domain.order_status import (
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    can_transition,
)
from ..domain.pricing import Totals, compute_totals
from ..models import Order
from . import menu_repo_sql


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def serialize(order: Order) -> dict:
    return {
        "id": order.id,
        "customer_name": order.customer_name,
        "table_number": order.table_number,
        "items": order.items,
        "subtotal": order.subtotal,
        "discount": order.discount,
        "total": order.total,
        "payment_method": order.payment_method.value,
        "payment_status": order.payment_status.value,
        "order_status": order.order_status.value,
        "pay_later": order.pay_later,
        "gateway_order_id": order.gateway_order_id,
        "gateway_transaction_status": order.gateway_transaction_status,
        "gateway_mock": order.gateway_mock,
        "qris_url": order.qris_url,
        "qris_string": order.qris_string,
        "payment_expires_at": _iso(order.payment_expires_at),
        "stock_status": order.stock_status.value,
        "stock_error": order.stock_error,
        "version": order.version,
        "paid_at": _iso(order.paid_at),
        "created_at": _iso(order.created_at),
        "updated_at": _iso(order.updated_at),
    }


async def snapshot_lines(session: AsyncSession, lines: Iterable[Mapping]) -> List[dict]:
    """Resolve ``lines`` against the menu and return item snapshots.

    Each entry needs ``item_id`` and ``quantity`` and may carry ``notes``.
    """

    lines = list(lines)
    menu = await menu_repo_sql.get_menu_items(session, (l["item_id"] for l in lines))
    snapshots = []
    for line in lines:
        item = menu.get(line["item_id"])
        if item is None:
            raise ValidationFailed("menu item not found", {"item_id": line["item_id"]})
        if not item.is_available:
            raise ValidationFailed("menu item unavailable", {"item_id": item.id})
        quantity = int(line["quantity"])
        if quantity < 1:
            raise ValidationFailed("quantity must be at least 1", {"item_id": item.id})
        snapshots.append(
            {
                "item_id": item.id,
                "name": item.name,
                "price": int(item.price),
                "quantity": quantity,
                "notes": line.get("notes"),
            }
        )
    return snapshots


async def create_order(
    session: AsyncSession,
    lines: Iterable[Mapping],
    *,
    payment_method: PaymentMethod,
    payment_status: PaymentStatus,
    order_status: OrderStatus,
    pay_later: bool = False,
    discount: int = 0,
    customer_name: str | None = None,
    table_number: str | None = None,
    created_by: str | None = None,
) -> Order:
    """Stage a new order and flush to obtain its id."""

    items = await snapshot_lines(session, lines)
    if not items:
        raise ValidationFailed("an order needs at least one item")
    totals = compute_totals(items, discount)
    order = Order(
        id=str(uuid.uuid4()),
        customer_name=customer_name,
        table_number=table_number,
        items=items,
        subtotal=totals.subtotal,
        discount=totals.discount,
        total=totals.total,
        payment_method=payment_method,
        payment_status=payment_status,
        order_status=order_status,
        pay_later=pay_later,
        created_by=created_by,
        paid_at=_now() if payment_status is PaymentStatus.PAID else None,
        version=1,
        created_at=_now(),
    )
    session.add(order)
    await session.flush()
    return order


async def get_order(session: AsyncSession, order_id: str) -> Order:
    order = await session.get(Order, order_id, populate_existing=True)
    if order is None:
        raise NotFound("order not found", {"order_id": order_id})
    return order


async def get_by_gateway_order_id(
    session: AsyncSession, gateway_order_id: str
) -> Order | None:
    result = await session.execute(
        select(Order).where(Order.gateway_order_id == gateway_order_id)
    )
    return result.scalar_one_or_none()


async def list_orders(
    session: AsyncSession,
    *,
    order_status: OrderStatus | None = None,
    payment_status: PaymentStatus | None = None,
    limit: int = 100,
) -> List[Order]:
    stmt = select(Order).order_by(Order.created_at.desc()).limit(limit)
    if order_status is not None:
        stmt = stmt.where(Order.order_status == order_status)
    if payment_status is not None:
        stmt = stmt.where(Order.payment_status == payment_status)
    result = await session.execute(stmt)
    return list(result.scalars())


async def set_gateway_fields(session: AsyncSession, order_id: str, **values) -> None:
    await session.execute(
        update(Order)
        .where(Order.id == order_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )


async def _cas_status(
    session: AsyncSession, order_id: str, src: OrderStatus, dst: OrderStatus, *extra
) -> bool:
    res = await session.execute(
        update(Order)
        .where(Order.id == order_id, Order.order_status == src, *extra)
        .values(order_status=dst, updated_at=_now())
        .execution_options(synchronize_session=False)
    )
    return res.rowcount == 1


async def advance_status(
    session: AsyncSession, order_id: str, dst: OrderStatus
) -> Order:
    """Move ``order_id`` forward to ``dst``.

    Raises :class:`Conflict` for a backwards or skipped edge, for a queued
    open bill (it leaves the queue through submit) and when another request
    changed the status first.
    """

    order = await get_order(session, order_id)
    src = order.order_status
    if src is OrderStatus.QUEUED:
        raise Conflict(
            "queued orders are released by submitting the open bill",
            {"order_status": src.value},
        )
    if not can_transition(src, dst):
        raise Conflict(
            f"cannot move order from {src.value} to {dst.value}",
            {"from": src.value, "to": dst.value},
        )
    if not await _cas_status(session, order_id, src, dst):
        raise Conflict("order status changed concurrently", {"expected": src.value})
    return await get_order(session, order_id)


# Open bills


def _is_open(order: Order) -> bool:
    return (
        order.pay_later
        and order.order_status is OrderStatus.QUEUED
        and order.payment_status is PaymentStatus.UNPAID
    )


def _open_bill_filter():
    return (
        Order.pay_later.is_(True),
        Order.order_status == OrderStatus.QUEUED,
        Order.payment_status == PaymentStatus.UNPAID,
    )


async def create_open_bill(
    session: AsyncSession,
    lines: Iterable[Mapping],
    *,
    table_number: str | None,
    customer_name: str | None = None,
    discount: int = 0,
    created_by: str | None = None,
) -> Order:
    return await create_order(
        session,
        lines,
        payment_method=PaymentMethod.CASH,
        payment_status=PaymentStatus.UNPAID,
        order_status=OrderStatus.QUEUED,
        pay_later=True,
        discount=discount,
        customer_name=customer_name,
        table_number=table_number,
        created_by=created_by,
    )


async def find_open_bill(session: AsyncSession, table_number: str) -> Order | None:
    """Return the newest open bill for ``table_number``."""

    result = await session.execute(
        select(Order)
        .where(Order.table_number == table_number, *_open_bill_filter())
        .order_by(Order.created_at.desc(), Order.id)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def list_open_bills(session: AsyncSession) -> List[Order]:
    result = await session.execute(
        select(Order).where(*_open_bill_filter()).order_by(Order.created_at)
    )
    return list(result.scalars())


async def _write_items(
    session: AsyncSession,
    order: Order,
    items: List[dict],
    totals: Totals,
    expected_version: int,
    *,
    require_open: bool = True,
) -> Order:
    conditions = [Order.id == order.id, Order.version == expected_version]
    if require_open:
        conditions.extend(_open_bill_filter())
    else:
        conditions.append(Order.payment_status != PaymentStatus.PAID)
    res = await session.execute(
        update(Order)
        .where(*conditions)
        .values(
            items=items,
            subtotal=totals.subtotal,
            discount=totals.discount,
            total=totals.total,
            version=Order.version + 1,
            updated_at=_now(),
        )
        .execution_options(synchronize_session=False)
    )
    if res.rowcount == 0:
        raise Conflict(
            "order changed since it was read; reload and retry",
            {"order_id": order.id, "expected_version": expected_version},
        )
    return await get_order(session, order.id)


async def _load_open_bill(
    session: AsyncSession, order_id: str, expected_version: int | None
) -> Order:
    order = await get_order(session, order_id)
    if not order.pay_later:
        raise Conflict("order is not an open bill", {"order_id": order_id})
    if order.payment_status is PaymentStatus.PAID:
        raise Conflict("open bill already paid", {"order_id": order_id})
    if not _is_open(order):
        raise Conflict("open bill is no longer open", {"order_id": order_id})
    if expected_version is not None and expected_version != order.version:
        raise Conflict(
            "order changed since it was read; reload and retry",
            {"order_id": order_id, "version": order.version},
        )
    return order


async def append_items(
    session: AsyncSession,
    order_id: str,
    lines: Iterable[Mapping],
    expected_version: int | None = None,
) -> Order:
    order = await _load_open_bill(session, order_id, expected_version)
    added = await snapshot_lines(session, lines)
    if not added:
        raise ValidationFailed("no items to add")
    items = list(order.items) + added
    totals = compute_totals(items, order.discount)
    return await _write_items(session, order, items, totals, order.version)


async def replace_items(
    session: AsyncSession,
    order_id: str,
    lines: Iterable[Mapping],
    expected_version: int | None = None,
    discount: int | None = None,
) -> Order:
    order = await _load_open_bill(session, order_id, expected_version)
    items = await snapshot_lines(session, lines)
    if not items:
        raise ValidationFailed("an order needs at least one item")
    totals = compute_totals(items, order.discount if discount is None else discount)
    return await _write_items(session, order, items, totals, order.version)


async def submit_open_bill(session: AsyncSession, order_id: str) -> Order:
    """Release an open bill to the kitchen (``queued`` to ``pending``)."""

    order = await get_order(session, order_id)
    if not order.pay_later:
        raise Conflict("order is not an open bill", {"order_id": order_id})
    if not await _cas_status(
        session,
        order_id,
        OrderStatus.QUEUED,
        OrderStatus.PENDING,
        Order.pay_later.is_(True),
    ):
        raise Conflict(
            "open bill was already submitted",
            {"order_status": order.order_status.value},
        )
    return await get_order(session, order_id)


async def pay_open_bill(
    session: AsyncSession, order_id: str, payment_method: PaymentMethod
) -> Order:
    """Mark an open bill paid in place; no new order row is written."""

    res = await session.execute(
        update(Order)
        .where(
            Order.id == order_id,
            Order.pay_later.is_(True),
            Order.payment_status == PaymentStatus.UNPAID,
        )
        .values(
            payment_status=PaymentStatus.PAID,
            payment_method=payment_method,
            paid_at=_now(),
            updated_at=_now(),
        )
        .execution_options(synchronize_session=False)
    )
    if res.rowcount == 0:
        order = await get_order(session, order_id)
        if not order.pay_later:
            raise Conflict("order is not an open bill", {"order_id": order_id})
        raise Conflict(
            "open bill already paid",
            {"payment_status": order.payment_status.value},
        )
    return await get_order(session, order_id)


async def remove_item(
    session: AsyncSession, order: Order, items: List[dict], totals: Totals
) -> Order:
    """Write ``items`` (one entry shorter) guarded by the order's version."""

    return await _write_items(
        session, order, items, totals, order.version, require_open=False
    )
