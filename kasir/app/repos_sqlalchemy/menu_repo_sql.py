"""Read-only access to menu items and their recipes."""

from __future__ import annotations

from typing import Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import MenuItem, RecipeLine


async def get_menu_items(
    session: AsyncSession, item_ids: Iterable[str]
) -> dict[str, MenuItem]:
    """Return the menu items for ``item_ids`` keyed by id."""

    ids = list(set(item_ids))
    if not ids:
        return {}
    result = await session.execute(select(MenuItem).where(MenuItem.id.in_(ids)))
    return {item.id: item for item in result.scalars()}


async def get_recipes(
    session: AsyncSession, item_ids: Iterable[str]
) -> dict[str, list[RecipeLine]]:
    """Return recipe lines grouped by menu item id.

    Menu items without a recipe are absent from the mapping.
    """

    ids = list(set(item_ids))
    if not ids:
        return {}
    result = await session.execute(
        select(RecipeLine).where(RecipeLine.menu_item_id.in_(ids))
    )
    recipes: dict[str, list[RecipeLine]] = {}
    for line in result.scalars():
        recipes.setdefault(line.menu_item_id, []).append(line)
    return recipes
