from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from .auth import Capability, User, require
from .db import get_session
from .repos_sqlalchemy import inventory_repo_sql
from .schemas import StockCheckIn
from .services import stock_engine
from .utils.responses import ok

router = APIRouter()


@router.get("/api/inventory/low-stock")
async def low_stock(
    session: AsyncSession = Depends(get_session),
    user: User = Depends(require(Capability.INVENTORY_VIEW)),
) -> dict:
    return ok(await inventory_repo_sql.list_low_stock(session))


@router.post("/api/inventory/validate-stock")
async def validate_stock(
    body: StockCheckIn, session: AsyncSession = Depends(get_session)
) -> dict:
    """Dry run: report whether current stock covers ``items``."""

    result = await stock_engine.validate(
        session, [line.model_dump() for line in body.items]
    )
    return ok(result.as_dict())


__all__ = ["router"]
