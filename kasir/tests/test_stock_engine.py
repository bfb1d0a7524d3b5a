from decimal import Decimal

import pytest

from kasir.app.domain.errors import InsufficientStock
from kasir.app.models import InventoryItem
from kasir.app.services import stock_engine


async def _stock(sessions, inv_id):
    async with sessions() as session:
        item = await session.get(InventoryItem, inv_id)
        return Decimal(str(item.current_stock))


@pytest.mark.anyio
async def test_shared_ingredient_is_checked_against_combined_need(sessions):
    # 3 x 200 g + 3 x 150 g of rice is more than the 1000 g in stock even
    # though each line alone would fit.
    lines = [
        {"item_id": "nasi-goreng", "quantity": 3},
        {"item_id": "ayam-bakar", "quantity": 3},
    ]
    async with sessions() as session:
        result = await stock_engine.validate(session, lines)
    assert not result.success
    assert [s["inventory_item_id"] for s in result.insufficient_stock] == ["rice"]
    assert result.insufficient_stock[0]["required"] == 1050.0
    assert result.insufficient_stock[0]["available"] == 1000.0


@pytest.mark.anyio
async def test_deduct_is_all_or_nothing(sessions):
    lines = [
        {"item_id": "nasi-goreng", "quantity": 3},
        {"item_id": "ayam-bakar", "quantity": 3},
    ]
    async with sessions() as session:
        with pytest.raises(InsufficientStock) as info:
            await stock_engine.deduct(session, lines)
        await session.rollback()
    assert info.value.insufficient[0]["name"] == "Beras"
    assert await _stock(sessions, "rice") == Decimal("1000")
    assert await _stock(sessions, "egg") == Decimal("10")
    assert await _stock(sessions, "chicken") == Decimal("5")


@pytest.mark.anyio
async def test_deduct_decrements_every_ingredient(sessions):
    lines = [
        {"item_id": "nasi-goreng", "quantity": 2},
        {"item_id": "es-teh", "quantity": 1},
    ]
    async with sessions() as session:
        result = await stock_engine.deduct(session, lines)
        await session.commit()
    assert result.success
    assert {d["inventory_item_id"] for d in result.deductions} == {
        "rice",
        "egg",
        "tea",
        "sugar",
    }
    assert await _stock(sessions, "rice") == Decimal("600")
    assert await _stock(sessions, "egg") == Decimal("8")
    assert await _stock(sessions, "sugar") == Decimal("980")


@pytest.mark.anyio
async def test_validate_endpoint_reports_without_changing_stock(client, sessions):
    r = await client.post(
        "/api/inventory/validate-stock",
        json={"items": [{"item_id": "ayam-bakar", "quantity": 6}]},
    )
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["success"] is False
    assert data["insufficient_stock"][0]["inventory_item_id"] == "chicken"
    assert await _stock(sessions, "chicken") == Decimal("5")
