import uuid
from datetime import datetime, timezone
from types import SimpleNamespace

import pytest
from sqlalchemy.exc import DBAPIError, IntegrityError

from kasir.app.domain.errors import Conflict
from kasir.app.domain.order_status import CashMovementType, ShiftStatus
from kasir.app.models import Shift
from kasir.app.repos_sqlalchemy import shifts_repo_sql
from kasir.app.repos_sqlalchemy.shifts_repo_sql import is_serialization_failure
from kasir.tests._seed import auth

NASI_X2 = [{"item_id": "nasi-goreng", "quantity": 2}]


async def _open_shift(client, initial_cash=100000, headers=None):
    r = await client.post(
        "/api/shifts", json={"initial_cash": initial_cash}, headers=headers or auth()
    )
    assert r.status_code == 200
    return r.json()["data"]


async def _served_cash_order(client, items=NASI_X2):
    order = (
        await client.post("/api/orders/cash", json={"items": items}, headers=auth())
    ).json()["data"]["order"]
    r = await client.patch(
        f"/api/orders/{order['id']}/status",
        json={"status": "served"},
        headers=auth("kitchen", "chef-1"),
    )
    assert r.status_code == 200
    return order


@pytest.mark.anyio
async def test_close_balances_sales_and_expenses(client):
    shift = await _open_shift(client)
    await _served_cash_order(client)

    # Neither counts: one is not served, the other is not paid.
    await client.post(
        "/api/orders/cash",
        json={"items": [{"item_id": "es-teh", "quantity": 1}]},
        headers=auth(),
    )
    await client.post("/api/orders", json={"items": NASI_X2})

    r = await client.post(
        "/api/expenses",
        json={"amount": 20000, "description": "ice bought"},
        headers=auth(),
    )
    assert r.status_code == 200

    r = await client.post(
        f"/api/shifts/{shift['id']}/close",
        json={"final_cash": 130000, "notes": "ok"},
        headers=auth(),
    )
    assert r.status_code == 200
    closed = r.json()["data"]
    assert closed["status"] == "closed"
    assert closed["total_orders"] == 1
    assert closed["total_revenue"] == 50000
    assert closed["total_cash_revenue"] == 50000
    assert closed["cash_expenses"] == 20000
    assert closed["system_cash"] == 130000
    assert closed["cash_difference"] == 0

    r = await client.get(f"/api/shifts/{shift['id']}/reconciliation", headers=auth())
    audit = r.json()["data"]
    assert audit["matches_stored"] is True
    assert audit["system_cash"] == 130000


@pytest.mark.anyio
async def test_cash_movements_enter_system_cash(client):
    shift = await _open_shift(client, 50000)
    for kind, amount in (("cash_in", 30000), ("cash_out", 12000)):
        r = await client.post(
            "/api/cash-movements",
            json={"type": kind, "amount": amount, "description": "float"},
            headers=auth(),
        )
        assert r.status_code == 200
        assert r.json()["data"]["shift_id"] == shift["id"]

    r = await client.get(f"/api/shifts/{shift['id']}/cash-movements", headers=auth())
    assert [m["type"] for m in r.json()["data"]] == ["cash_in", "cash_out"]

    r = await client.get(f"/api/shifts/{shift['id']}/reconciliation", headers=auth())
    preview = r.json()["data"]
    assert preview["status"] == "open"
    assert "matches_stored" not in preview
    assert preview["system_cash"] == 68000

    r = await client.post(
        f"/api/shifts/{shift['id']}/close", json={"final_cash": 67000}, headers=auth()
    )
    assert r.json()["data"]["cash_difference"] == -1000


@pytest.mark.anyio
async def test_one_open_shift_per_cashier(client):
    await _open_shift(client)
    r = await client.post("/api/shifts", json={"initial_cash": 0}, headers=auth())
    assert r.status_code == 409

    other = auth("kasir", "kasir-2")
    await _open_shift(client, headers=other)

    r = await client.get("/api/shifts/active", headers=other)
    assert r.json()["data"]["cashier_id"] == "kasir-2"


@pytest.mark.anyio
async def test_open_shift_index_rejects_a_second_row(sessions):
    def shift():
        return Shift(
            id=str(uuid.uuid4()),
            cashier_id="kasir-9",
            initial_cash=0,
            start_time=datetime.now(timezone.utc),
            status=ShiftStatus.OPEN,
        )

    async with sessions() as session:
        session.add(shift())
        await session.commit()
        session.add(shift())
        with pytest.raises(IntegrityError):
            await session.commit()


@pytest.mark.anyio
async def test_close_is_single_and_owned(client):
    shift = await _open_shift(client)
    close = f"/api/shifts/{shift['id']}/close"

    r = await client.post(
        close, json={"final_cash": 100000}, headers=auth("kasir", "kasir-2")
    )
    assert r.status_code == 409

    r = await client.post(close, json={"final_cash": 100000}, headers=auth("admin", "owner"))
    assert r.status_code == 200
    assert r.json()["data"]["cash_difference"] == 0

    r = await client.post(close, json={"final_cash": 100000}, headers=auth())
    assert r.status_code == 409

    r = await client.post(
        "/api/cash-movements",
        json={"type": "cash_in", "amount": 1000, "description": "late"},
        headers=auth(),
    )
    assert r.status_code == 409


@pytest.mark.anyio
async def test_kitchen_cannot_operate_shifts(client):
    r = await client.post(
        "/api/shifts", json={"initial_cash": 0}, headers=auth("kitchen", "chef-1")
    )
    assert r.status_code == 403


@pytest.mark.anyio
async def test_expense_listing_is_scoped_to_the_cashier(client):
    for headers, amount in ((auth(), 5000), (auth("kasir", "kasir-2"), 7000)):
        r = await client.post(
            "/api/expenses",
            json={"amount": amount, "description": "gas refill"},
            headers=headers,
        )
        assert r.status_code == 200

    r = await client.get("/api/expenses?cashier_id=kasir-2", headers=auth())
    assert [e["amount"] for e in r.json()["data"]] == [5000]

    r = await client.get("/api/expenses?cashier_id=kasir-2", headers=auth("admin", "owner"))
    assert [e["amount"] for e in r.json()["data"]] == [7000]


@pytest.mark.anyio
async def test_movement_claims_the_shift_and_is_refused_once_closed(client):
    shift = await _open_shift(client)
    r = await client.post(
        "/api/cash-movements",
        json={"type": "cash_in", "amount": 5000, "description": "change float"},
        headers=auth(),
    )
    assert r.status_code == 200

    r = await client.get("/api/shifts/active", headers=auth())
    assert r.json()["data"]["last_movement_at"] is not None

    r = await client.post(
        f"/api/shifts/{shift['id']}/close", json={"final_cash": 105000}, headers=auth()
    )
    assert r.json()["data"]["system_cash"] == 105000

    r = await client.post(
        "/api/cash-movements",
        json={
            "type": "cash_out",
            "amount": 1000,
            "description": "late",
            "shift_id": shift["id"],
        },
        headers=auth(),
    )
    assert r.status_code == 409

    r = await client.get(f"/api/shifts/{shift['id']}/cash-movements", headers=auth())
    assert [m["amount"] for m in r.json()["data"]] == [5000]
    r = await client.get(f"/api/shifts/{shift['id']}/reconciliation", headers=auth())
    assert r.json()["data"]["matches_stored"] is True


def test_serialization_failures_are_recognised():
    class PgError(Exception):
        sqlstate = "40001"

    class OtherError(Exception):
        pgcode = "23505"

    assert is_serialization_failure(DBAPIError("UPDATE shifts", {}, PgError()))
    assert not is_serialization_failure(DBAPIError("UPDATE shifts", {}, OtherError()))


@pytest.mark.anyio
async def test_movement_read_before_a_close_is_refused(sessions, monkeypatch):
    async with sessions() as session:
        shift = await shifts_repo_sql.open_shift(session, "kasir-7", 10000)
        await shifts_repo_sql.close_shift(session, shift.id, 10000)

        async def read_while_open(session, shift_id):
            return SimpleNamespace(id=shift_id, status=ShiftStatus.OPEN)

        monkeypatch.setattr(shifts_repo_sql, "get_shift", read_while_open)
        with pytest.raises(Conflict):
            await shifts_repo_sql.record_movement(
                session,
                "kasir-7",
                CashMovementType.CASH_IN,
                500,
                "late float",
                shift_id=shift.id,
            )
