"""Pay-later tabs per table."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from .auth import Capability, User, require
from .db import get_session
from .hooks import ORDER_PAID, hooks
from .repos_sqlalchemy import orders_repo_sql
from .schemas import OpenBillIn, OpenBillItemsIn, PayOpenBillIn
from .utils.responses import ok

router = APIRouter()
logger = logging.getLogger(__name__)


def _lines(body) -> list[dict]:
    return [line.model_dump() for line in body.items]


@router.post("/api/open-bills")
async def create_open_bill(
    body: OpenBillIn,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(require(Capability.ORDERS_CREATE)),
) -> dict:
    order = await orders_repo_sql.create_open_bill(
        session,
        _lines(body),
        table_number=body.table_number,
        customer_name=body.customer_name,
        discount=body.discount,
        created_by=user.id,
    )
    await session.commit()
    return ok(orders_repo_sql.serialize(order))


@router.post("/api/open-bills/smart")
async def smart_open_bill(
    body: OpenBillIn,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(require(Capability.ORDERS_CREATE)),
) -> dict:
    """Append to the table's open bill, or start one if there is none."""

    existing = await orders_repo_sql.find_open_bill(session, body.table_number)
    if existing is not None:
        order = await orders_repo_sql.append_items(session, existing.id, _lines(body))
        mode = "appended"
    else:
        order = await orders_repo_sql.create_open_bill(
            session,
            _lines(body),
            table_number=body.table_number,
            customer_name=body.customer_name,
            discount=body.discount,
            created_by=user.id,
        )
        mode = "created"
    await session.commit()
    logger.info(
        "open bill %s for table %s", mode, body.table_number, extra={"order_id": order.id}
    )
    return ok({"mode": mode, "order": orders_repo_sql.serialize(order)})


@router.get("/api/open-bills")
async def list_open_bills(
    session: AsyncSession = Depends(get_session),
    user: User = Depends(require(Capability.ORDERS_VIEW)),
) -> dict:
    bills = await orders_repo_sql.list_open_bills(session)
    return ok([orders_repo_sql.serialize(b) for b in bills])


@router.post("/api/open-bills/{order_id}/items")
async def append_items(
    order_id: str,
    body: OpenBillItemsIn,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(require(Capability.ORDERS_CREATE)),
) -> dict:
    order = await orders_repo_sql.append_items(
        session, order_id, _lines(body), body.version
    )
    await session.commit()
    return ok(orders_repo_sql.serialize(order))


@router.put("/api/open-bills/{order_id}/items")
async def replace_items(
    order_id: str,
    body: OpenBillItemsIn,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(require(Capability.ORDERS_CREATE)),
) -> dict:
    """Overwrite the item list of the named bill."""

    order = await orders_repo_sql.replace_items(
        session, order_id, _lines(body), body.version, body.discount
    )
    await session.commit()
    return ok(orders_repo_sql.serialize(order))


@router.post("/api/open-bills/{order_id}/submit")
async def submit_open_bill(
    order_id: str,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(require(Capability.ORDERS_CREATE)),
) -> dict:
    order = await orders_repo_sql.submit_open_bill(session, order_id)
    await session.commit()
    return ok(orders_repo_sql.serialize(order))


@router.post("/api/open-bills/{order_id}/pay")
async def pay_open_bill(
    order_id: str,
    body: PayOpenBillIn,
    session: AsyncSession = Depends(get_session),
    user: User = Depends(require(Capability.PAYMENTS_COLLECT)),
) -> dict:
    """Settle the bill in place; the existing order row is marked paid."""

    await orders_repo_sql.pay_open_bill(session, order_id, body.payment_method)
    await session.commit()
    logger.info("open bill paid", extra={"order_id": order_id, "user": user.id})
    warnings = await hooks.run(ORDER_PAID, session, order_id)
    order = await orders_repo_sql.get_order(session, order_id)
    return ok(orders_repo_sql.serialize(order), warnings)


__all__ = ["router"]
