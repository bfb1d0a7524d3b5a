"""Inventory lookups and the conditional stock decrement."""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import InventoryItem


async def get_items(
    session: AsyncSession, item_ids: Iterable[str]
) -> dict[str, InventoryItem]:
    ids = list(set(item_ids))
    if not ids:
        return {}
    result = await session.execute(
        select(InventoryItem)
        .where(InventoryItem.id.in_(ids))
        .execution_options(populate_existing=True)
    )
    return {item.id: item for item in result.scalars()}


async def decrement(session: AsyncSession, item_id: str, quantity: Decimal) -> bool:
    """Subtract ``quantity`` from ``item_id`` only if enough stock remains.

    Returns ``False`` when the guard failed, i.e. a concurrent deduction got
    there first. Does not commit.
    """

    result = await session.execute(
        update(InventoryItem)
        .where(
            InventoryItem.id == item_id,
            InventoryItem.current_stock >= quantity,
        )
        .values(current_stock=InventoryItem.current_stock - quantity)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def list_low_stock(session: AsyncSession) -> list[dict]:
    """Return items whose stock is at or below their minimum."""

    result = await session.execute(
        select(InventoryItem)
        .where(InventoryItem.current_stock <= InventoryItem.min_stock)
        .order_by(InventoryItem.name)
    )
    return [
        {
            "id": item.id,
            "name": item.name,
            "category": item.category,
            "current_stock": float(item.current_stock),
            "min_stock": float(item.min_stock),
            "unit": item.unit,
        }
        for item in result.scalars()
    ]
