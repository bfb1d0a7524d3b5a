import pytest

from kasir.tests._seed import auth

ADMIN = auth("admin", "owner")


async def _paid_order(client) -> dict:
    r = await client.post(
        "/api/orders/cash",
        json={"items": [{"item_id": "nasi-goreng", "quantity": 2}]},
        headers=auth(),
    )
    return r.json()["data"]["order"]


async def _request(client, order_id, amount, refund_type="cash"):
    return await client.post(
        "/api/refunds",
        json={
            "order_id": order_id,
            "refund_amount": amount,
            "refund_type": refund_type,
            "reason": "cold food",
        },
        headers=auth(),
    )


@pytest.mark.anyio
async def test_refunds_cannot_exceed_the_order_total(client):
    order = await _paid_order(client)

    r = await _request(client, order["id"], 30000)
    assert r.status_code == 200
    refund = r.json()["data"]
    assert refund["status"] == "pending"

    r = await client.post(f"/api/refunds/{refund['id']}/approve", headers=ADMIN)
    assert r.json()["data"]["status"] == "approved"
    assert r.json()["data"]["authorized_by"] == "owner"

    r = await _request(client, order["id"], 25000)
    assert r.status_code == 422
    assert r.json()["error"]["details"] == {"refundable": 20000, "requested": 25000}

    assert (await _request(client, order["id"], 20000)).status_code == 200

    r = await client.get(f"/api/refunds?order_id={order['id']}", headers=auth())
    assert [x["status"] for x in r.json()["data"]] == ["approved", "pending"]


@pytest.mark.anyio
async def test_cap_is_checked_again_on_approval(client):
    order = await _paid_order(client)
    first = (await _request(client, order["id"], 30000)).json()["data"]
    second = (await _request(client, order["id"], 30000)).json()["data"]

    r = await client.post(f"/api/refunds/{first['id']}/approve", headers=ADMIN)
    assert r.status_code == 200
    r = await client.post(f"/api/refunds/{second['id']}/approve", headers=ADMIN)
    assert r.status_code == 422

    r = await client.post(f"/api/refunds/{second['id']}/reject", headers=ADMIN)
    assert r.json()["data"]["status"] == "rejected"


@pytest.mark.anyio
async def test_refund_lifecycle_moves_forward_only(client):
    order = await _paid_order(client)
    refund = (await _request(client, order["id"], 5000)).json()["data"]
    base = f"/api/refunds/{refund['id']}"

    assert (await client.post(f"{base}/complete", headers=ADMIN)).status_code == 409
    assert (await client.post(f"{base}/approve", headers=auth())).status_code == 403
    assert (await client.post(f"{base}/approve", headers=ADMIN)).status_code == 200
    r = await client.post(f"{base}/complete", headers=ADMIN)
    assert r.json()["data"]["status"] == "completed"
    assert (await client.post(f"{base}/reject", headers=ADMIN)).status_code == 409


@pytest.mark.anyio
async def test_only_paid_orders_are_refundable(client):
    r = await client.post(
        "/api/orders", json={"items": [{"item_id": "es-teh", "quantity": 1}]}
    )
    order = r.json()["data"]
    r = await _request(client, order["id"], 1000)
    assert r.status_code == 409


@pytest.mark.anyio
async def test_completed_cash_refund_reduces_drawer(client):
    r = await client.post("/api/shifts", json={"initial_cash": 100000}, headers=auth())
    shift = r.json()["data"]
    order = await _paid_order(client)
    await client.patch(
        f"/api/orders/{order['id']}/status",
        json={"status": "served"},
        headers=auth("kitchen", "chef-1"),
    )
    refund = (await _request(client, order["id"], 10000)).json()["data"]
    await client.post(f"/api/refunds/{refund['id']}/approve", headers=ADMIN)
    await client.post(f"/api/refunds/{refund['id']}/complete", headers=ADMIN)

    r = await client.post(
        f"/api/shifts/{shift['id']}/close", json={"final_cash": 140000}, headers=auth()
    )
    closed = r.json()["data"]
    assert closed["cash_refunds"] == 10000
    assert closed["total_revenue"] == 40000
    assert closed["system_cash"] == 140000
    assert closed["cash_difference"] == 0
