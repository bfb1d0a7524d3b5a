from datetime import datetime, timezone

import pytest

from kasir.app.domain.order_status import NotificationStatus
from kasir.app.models import Notification
from kasir.app.repos_sqlalchemy import deletions_repo_sql, orders_repo_sql
from kasir.tests._seed import auth

ADMIN = auth("admin", "owner")
TWO_ITEMS = [
    {"item_id": "nasi-goreng", "quantity": 1},
    {"item_id": "es-teh", "quantity": 1},
]


async def _bill(client, items=TWO_ITEMS, discount=0) -> dict:
    r = await client.post(
        "/api/open-bills",
        json={"table_number": "1", "items": items, "discount": discount},
        headers=auth(),
    )
    assert r.status_code == 200
    return r.json()["data"]


async def _request(client, order_id, index):
    return await client.post(
        f"/api/orders/{order_id}/deletion-requests",
        json={"item_index": index, "reason": "customer changed mind"},
        headers=auth(),
    )


@pytest.mark.anyio
async def test_approval_removes_the_item_and_logs_it(client):
    bill = await _bill(client)
    r = await _request(client, bill["id"], 1)
    assert r.status_code == 200
    notification = r.json()["data"]
    assert notification["status"] == "pending"
    assert notification["related_data"]["item"]["item_id"] == "es-teh"

    r = await client.get("/api/notifications?status=pending", headers=ADMIN)
    assert [n["id"] for n in r.json()["data"]] == [notification["id"]]

    r = await client.post(
        f"/api/notifications/{notification['id']}/approve", headers=ADMIN
    )
    assert r.status_code == 200
    data = r.json()["data"]
    order = data["order"]
    assert [i["item_id"] for i in order["items"]] == ["nasi-goreng"]
    assert (order["subtotal"], order["total"]) == (25000, 25000)
    assert order["version"] == bill["version"] + 1
    log = data["log"]
    assert log["deleted_item"]["item_id"] == "es-teh"
    assert len(log["items_before"]) == 2
    assert len(log["items_after"]) == 1
    assert log["requested_by"] == "kasir-1"
    assert log["authorized_by"] == "owner"

    r = await client.get(f"/api/deletion-logs?order_id={bill['id']}", headers=ADMIN)
    assert len(r.json()["data"]) == 1

    r = await client.post(
        f"/api/notifications/{notification['id']}/approve", headers=ADMIN
    )
    assert r.status_code == 409


@pytest.mark.anyio
async def test_index_past_the_end_is_rejected_on_request(client):
    bill = await _bill(client)
    r = await _request(client, bill["id"], 2)
    assert r.status_code == 422
    assert r.json()["error"]["details"] == {"item_index": 2, "item_count": 2}


@pytest.mark.anyio
async def test_index_past_the_end_is_rejected_on_approval(client, sessions):
    bill = await _bill(client)
    async with sessions() as session:
        notification = Notification(
            type=deletions_repo_sql.DELETION_REQUEST,
            title="Item deletion request",
            message="forged",
            status=NotificationStatus.PENDING,
            requested_by="kasir-1",
            related_data={
                "order_id": bill["id"],
                "item_index": 2,
                "item": bill["items"][1],
                "reason": "x",
            },
            created_at=datetime.now(timezone.utc),
        )
        session.add(notification)
        await session.commit()
        notification_id = notification.id

    r = await client.post(f"/api/notifications/{notification_id}/approve", headers=ADMIN)
    assert r.status_code == 409

    async with sessions() as session:
        order = await orders_repo_sql.get_order(session, bill["id"])
        assert len(order.items) == 2
        assert order.version == bill["version"]
        stored = await deletions_repo_sql.get_notification(session, notification_id)
        assert stored.status is NotificationStatus.PENDING


@pytest.mark.anyio
async def test_edited_bill_invalidates_the_request(client):
    bill = await _bill(client)
    notification = (await _request(client, bill["id"], 1)).json()["data"]

    await client.put(
        f"/api/open-bills/{bill['id']}/items",
        json={
            "items": [
                {"item_id": "nasi-goreng", "quantity": 1},
                {"item_id": "ayam-bakar", "quantity": 1},
            ]
        },
        headers=auth(),
    )
    r = await client.post(
        f"/api/notifications/{notification['id']}/approve", headers=ADMIN
    )
    assert r.status_code == 409


@pytest.mark.anyio
async def test_last_item_cannot_be_removed(client):
    bill = await _bill(client, items=[{"item_id": "nasi-goreng", "quantity": 2}])
    r = await _request(client, bill["id"], 0)
    assert r.status_code == 422


@pytest.mark.anyio
async def test_rejection_leaves_the_order_untouched(client):
    bill = await _bill(client)
    notification = (await _request(client, bill["id"], 0)).json()["data"]

    assert (
        await client.post(f"/api/notifications/{notification['id']}/reject", headers=auth())
    ).status_code == 403
    r = await client.post(
        f"/api/notifications/{notification['id']}/reject", headers=ADMIN
    )
    assert r.json()["data"]["status"] == "rejected"
    assert r.json()["data"]["processed_by"] == "owner"

    r = await client.get(f"/api/orders/{bill['id']}", headers=auth())
    assert len(r.json()["data"]["items"]) == 2


@pytest.mark.anyio
async def test_removal_clamps_an_oversized_discount(client):
    bill = await _bill(client, discount=20000)
    notification = (await _request(client, bill["id"], 0)).json()["data"]

    r = await client.post(
        f"/api/notifications/{notification['id']}/approve", headers=ADMIN
    )
    order = r.json()["data"]["order"]
    assert (order["subtotal"], order["discount"], order["total"]) == (8000, 8000, 0)


@pytest.mark.anyio
async def test_paid_bill_cannot_lose_items(client):
    bill = await _bill(client)
    await client.post(f"/api/open-bills/{bill['id']}/pay", json={}, headers=auth())
    r = await _request(client, bill["id"], 0)
    assert r.status_code == 409
