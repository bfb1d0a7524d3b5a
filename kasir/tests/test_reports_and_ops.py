from datetime import datetime, timezone

import pytest
from prometheus_client import REGISTRY

from kasir.app.models import DailyReport
from kasir.tests._seed import auth

ADMIN = auth("admin", "owner")


@pytest.mark.anyio
async def test_paid_order_recounts_the_daily_report(client, sessions):
    today = datetime.now(timezone.utc).date()
    await client.post(
        "/api/orders/cash",
        json={"items": [{"item_id": "nasi-goreng", "quantity": 2}]},
        headers=auth(),
    )
    async with sessions() as session:
        report = await session.get(DailyReport, today)
        assert report is not None
        assert report.total_revenue == 50000

    bill = (
        await client.post(
            "/api/open-bills",
            json={"table_number": "2", "items": [{"item_id": "es-teh", "quantity": 1}]},
            headers=auth(),
        )
    ).json()["data"]
    await client.post(
        f"/api/open-bills/{bill['id']}/pay",
        json={"payment_method": "qris"},
        headers=auth(),
    )

    r = await client.get(f"/api/daily-reports/{today.isoformat()}", headers=ADMIN)
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["total_orders"] == 2
    assert data["cash_revenue"] == 50000
    assert data["non_cash_revenue"] == 8000
    assert data["total_revenue"] == 58000

    r = await client.get(f"/api/daily-reports/{today.isoformat()}", headers=auth())
    assert r.status_code == 403


@pytest.mark.anyio
async def test_low_stock_lists_items_at_minimum(client):
    order = (
        await client.post(
            "/api/orders/cash",
            json={"items": [{"item_id": "ayam-bakar", "quantity": 3}]},
            headers=auth(),
        )
    ).json()["data"]["order"]
    await client.patch(
        f"/api/orders/{order['id']}/status",
        json={"status": "served"},
        headers=auth("kitchen", "chef-1"),
    )
    r = await client.get("/api/inventory/low-stock", headers=auth("kitchen", "chef-1"))
    assert [i["id"] for i in r.json()["data"]] == ["chicken"]


@pytest.mark.anyio
async def test_health_and_request_id(client):
    r = await client.get("/health", headers={"X-Request-ID": "req-123"})
    assert r.status_code == 200
    assert r.json()["data"]["status"] == "ok"
    assert r.headers["X-Request-ID"] == "req-123"

    r = await client.get("/health", headers={"X-Request-ID": "bad id with spaces"})
    assert r.headers["X-Request-ID"] != "bad id with spaces"
    assert len(r.headers["X-Request-ID"]) == 32


@pytest.mark.anyio
async def test_metrics_count_created_orders(client):
    await client.post(
        "/api/orders", json={"items": [{"item_id": "es-teh", "quantity": 1}]}
    )
    r = await client.get("/metrics")
    assert r.status_code == 200
    assert 'orders_created_total{method="qris"}' in r.text
    assert "http_requests_total" in r.text
    timed = REGISTRY.get_sample_value(
        "http_request_duration_seconds_count", {"path": "/api/orders", "method": "POST"}
    )
    assert timed and timed >= 1


@pytest.mark.anyio
async def test_errors_use_the_envelope(client):
    r = await client.get("/api/orders/missing", headers=auth())
    assert r.status_code == 404
    body = r.json()
    assert body["ok"] is False
    assert body["error"]["code"] == "NOT_FOUND"
    assert body["request_id"]

    r = await client.post("/api/orders/cash", json={"items": []}, headers=auth())
    assert r.status_code == 422
    assert r.json()["error"]["code"] == "VALIDATION_FAILED"
