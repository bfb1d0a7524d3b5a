import pytest
from sqlalchemy import func, select

from kasir.app.models import Order
from kasir.tests._seed import auth


async def _orders_for_table(sessions, table: str) -> int:
    async with sessions() as session:
        return await session.scalar(
            select(func.count()).select_from(Order).where(Order.table_number == table)
        )


async def _open(client, table="7", items=None):
    r = await client.post(
        "/api/open-bills",
        json={
            "table_number": table,
            "items": items or [{"item_id": "nasi-goreng", "quantity": 1}],
        },
        headers=auth(),
    )
    assert r.status_code == 200
    return r.json()["data"]


@pytest.mark.anyio
async def test_open_bill_starts_queued_and_unpaid(client):
    bill = await _open(client)
    assert bill["pay_later"] is True
    assert bill["payment_status"] == "unpaid"
    assert bill["order_status"] == "queued"
    assert bill["version"] == 1
    assert bill["paid_at"] is None

    r = await client.get("/api/open-bills", headers=auth())
    assert [b["id"] for b in r.json()["data"]] == [bill["id"]]


@pytest.mark.anyio
async def test_smart_appends_to_the_tables_open_bill(client, sessions):
    r = await client.post(
        "/api/open-bills/smart",
        json={"table_number": "3", "items": [{"item_id": "es-teh", "quantity": 1}]},
        headers=auth(),
    )
    first = r.json()["data"]
    assert first["mode"] == "created"

    r = await client.post(
        "/api/open-bills/smart",
        json={"table_number": "3", "items": [{"item_id": "ayam-bakar", "quantity": 1}]},
        headers=auth(),
    )
    second = r.json()["data"]
    assert second["mode"] == "appended"
    assert second["order"]["id"] == first["order"]["id"]
    assert [i["item_id"] for i in second["order"]["items"]] == ["es-teh", "ayam-bakar"]
    assert second["order"]["subtotal"] == 29000
    assert second["order"]["version"] == 2
    assert await _orders_for_table(sessions, "3") == 1


@pytest.mark.anyio
async def test_stale_version_is_refused(client):
    bill = await _open(client)
    url = f"/api/open-bills/{bill['id']}/items"

    r = await client.put(
        url,
        json={"items": [{"item_id": "es-teh", "quantity": 2}], "version": 1},
        headers=auth(),
    )
    assert r.status_code == 200
    updated = r.json()["data"]
    assert updated["version"] == 2
    assert updated["total"] == 16000

    r = await client.post(
        url,
        json={"items": [{"item_id": "es-teh", "quantity": 1}], "version": 1},
        headers=auth(),
    )
    assert r.status_code == 409


@pytest.mark.anyio
async def test_replace_applies_new_discount(client):
    bill = await _open(client, items=[{"item_id": "nasi-goreng", "quantity": 2}])
    r = await client.put(
        f"/api/open-bills/{bill['id']}/items",
        json={"items": [{"item_id": "nasi-goreng", "quantity": 2}], "discount": 5000},
        headers=auth(),
    )
    order = r.json()["data"]
    assert (order["subtotal"], order["discount"], order["total"]) == (50000, 5000, 45000)


@pytest.mark.anyio
async def test_paying_marks_the_same_row_paid_once(client, sessions):
    bill = await _open(client, table="9")
    pay = f"/api/open-bills/{bill['id']}/pay"

    r = await client.post(pay, json={}, headers=auth())
    assert r.status_code == 200
    paid = r.json()["data"]
    assert paid["id"] == bill["id"]
    assert paid["payment_status"] == "paid"
    assert paid["payment_method"] == "cash"
    assert paid["paid_at"] is not None
    assert await _orders_for_table(sessions, "9") == 1

    r = await client.post(pay, json={}, headers=auth())
    assert r.status_code == 409
    assert r.json()["error"]["message"] == "open bill already paid"

    r = await client.post(
        f"/api/open-bills/{bill['id']}/items",
        json={"items": [{"item_id": "es-teh", "quantity": 1}]},
        headers=auth(),
    )
    assert r.status_code == 409
    assert await _orders_for_table(sessions, "9") == 1


@pytest.mark.anyio
async def test_submit_releases_the_bill_to_the_kitchen(client):
    bill = await _open(client)

    r = await client.patch(
        f"/api/orders/{bill['id']}/status",
        json={"status": "preparing"},
        headers=auth("kitchen"),
    )
    assert r.status_code == 409

    r = await client.post(f"/api/open-bills/{bill['id']}/submit", headers=auth())
    assert r.status_code == 200
    assert r.json()["data"]["order_status"] == "pending"

    r = await client.post(f"/api/open-bills/{bill['id']}/submit", headers=auth())
    assert r.status_code == 409

    r = await client.get("/api/open-bills", headers=auth())
    assert r.json()["data"] == []


@pytest.mark.anyio
async def test_new_bill_after_payment_is_a_new_order(client, sessions):
    bill = await _open(client, table="5")
    await client.post(f"/api/open-bills/{bill['id']}/pay", json={}, headers=auth())

    r = await client.post(
        "/api/open-bills/smart",
        json={"table_number": "5", "items": [{"item_id": "es-teh", "quantity": 1}]},
        headers=auth(),
    )
    data = r.json()["data"]
    assert data["mode"] == "created"
    assert data["order"]["id"] != bill["id"]
    assert await _orders_for_table(sessions, "5") == 2
