"""Ingredient-based stock validation and deduction.

Order lines are expanded through their recipes and the requirements are
summed per inventory item before anything is compared, so two lines sharing
an ingredient are checked against their combined need. Deduction is all or
nothing: each ingredient is decremented with a guarded ``UPDATE`` and the
first guard that fails aborts the batch.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Mapping

from sqlalchemy.ext.asyncio import AsyncSession

from ..domain.errors import InsufficientStock
from ..repos_sqlalchemy import inventory_repo_sql, menu_repo_sql

logger = logging.getLogger(__name__)


@dataclass
class Requirement:
    inventory_item_id: str
    name: str
    unit: str
    required: Decimal
    available: Decimal


@dataclass
class StockDeductionResult:
    success: bool
    insufficient_stock: list[dict] = field(default_factory=list)
    deductions: list[dict] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "success": self.success,
            "insufficient_stock": self.insufficient_stock,
            "deductions": self.deductions,
        }


def _shortfall(req: Requirement) -> dict:
    return {
        "inventory_item_id": req.inventory_item_id,
        "name": req.name,
        "required": float(req.required),
        "available": float(req.available),
        "unit": req.unit,
    }


async def _requirements(
    session: AsyncSession, lines: Iterable[Mapping]
) -> list[Requirement]:
    lines = list(lines)
    recipes = await menu_repo_sql.get_recipes(session, (l["item_id"] for l in lines))

    needed: dict[str, Decimal] = {}
    for line in lines:
        quantity = int(line["quantity"])
        for recipe in recipes.get(line["item_id"], []):
            amount = Decimal(str(recipe.quantity_needed)) * quantity
            needed[recipe.inventory_item_id] = (
                needed.get(recipe.inventory_item_id, Decimal(0)) + amount
            )

    stock = await inventory_repo_sql.get_items(session, needed)
    requirements = []
    for inv_id, required in needed.items():
        item = stock.get(inv_id)
        if item is None:
            # Recipe points at an ingredient that no longer exists.
            logger.warning("recipe references unknown inventory item %s", inv_id)
            continue
        requirements.append(
            Requirement(
                inventory_item_id=inv_id,
                name=item.name,
                unit=item.unit,
                required=required,
                available=Decimal(str(item.current_stock)),
            )
        )
    return requirements


async def validate(session: AsyncSession, lines: Iterable[Mapping]) -> StockDeductionResult:
    """Check ``lines`` against current stock without changing anything."""

    requirements = await _requirements(session, lines)
    short = [_shortfall(r) for r in requirements if r.available < r.required]
    return StockDeductionResult(
        success=not short,
        insufficient_stock=short,
        deductions=[] if short else [_deduction(r) for r in requirements],
    )


def _deduction(req: Requirement) -> dict:
    return {
        "inventory_item_id": req.inventory_item_id,
        "name": req.name,
        "quantity": float(req.required),
        "unit": req.unit,
    }


async def deduct(session: AsyncSession, lines: Iterable[Mapping]) -> StockDeductionResult:
    """Validate and decrement stock for ``lines`` in the current transaction.

    Raises :class:`InsufficientStock` with the shortfall report when any
    ingredient cannot be covered; the caller must roll back. Does not commit.
    """

    requirements = await _requirements(session, lines)
    short = [_shortfall(r) for r in requirements if r.available < r.required]
    if short:
        raise InsufficientStock(short)

    for req in requirements:
        if not await inventory_repo_sql.decrement(
            session, req.inventory_item_id, req.required
        ):
            # Lost a race with another deduction; report what is left now.
            current = await inventory_repo_sql.get_items(
                session, [req.inventory_item_id]
            )
            item = current.get(req.inventory_item_id)
            req.available = (
                Decimal(str(item.current_stock)) if item is not None else Decimal(0)
            )
            raise InsufficientStock([_shortfall(req)])

    return StockDeductionResult(
        success=True, deductions=[_deduction(r) for r in requirements]
    )


__all__ = ["StockDeductionResult", "validate", "deduct"]
