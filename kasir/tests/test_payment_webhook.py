import pytest

from config import get_settings
from kasir.app import routes_payments
from kasir.app.domain.order_status import OrderStatus, PaymentMethod, PaymentStatus
from kasir.app.repos_sqlalchemy import orders_repo_sql
from kasir.app.services.payment_gateway import signature_for
from kasir.app.services.reconciliation import merge_gateway_status


async def _qris_order(sessions, order_status=OrderStatus.PENDING) -> tuple[str, str]:
    async with sessions() as session:
        order = await orders_repo_sql.create_order(
            session,
            [
                {"item_id": "nasi-goreng", "quantity": 1},
                {"item_id": "ayam-bakar", "quantity": 1},
            ],
            payment_method=PaymentMethod.QRIS,
            payment_status=PaymentStatus.PENDING,
            order_status=order_status,
        )
        gateway_order_id = f"ORDER-{order.id}"
        await orders_repo_sql.set_gateway_fields(
            session, order.id, gateway_order_id=gateway_order_id
        )
        await session.commit()
        return order.id, gateway_order_id


def _notification(gateway_order_id: str, status: str = "settlement", **extra) -> dict:
    body = {
        "order_id": gateway_order_id,
        "status_code": "200",
        "gross_amount": "46000.00",
        "transaction_status": status,
        "transaction_id": "trx-9",
    }
    body["signature_key"] = signature_for(
        body["order_id"],
        body["status_code"],
        body["gross_amount"],
        get_settings().gateway_server_key,
    )
    body.update(extra)
    return body


async def _load(sessions, order_id):
    async with sessions() as session:
        return await orders_repo_sql.get_order(session, order_id)


@pytest.mark.anyio
async def test_settlement_applies_once(client, sessions):
    order_id, gateway_order_id = await _qris_order(sessions, OrderStatus.QUEUED)

    r = await client.post("/api/payments/webhook", json=_notification(gateway_order_id))
    assert r.status_code == 200
    data = r.json()["data"]
    assert data == {"applied": True, "order_id": order_id, "payment_status": "paid"}

    first = await _load(sessions, order_id)
    assert first.payment_status is PaymentStatus.PAID
    assert first.order_status is OrderStatus.PREPARING
    assert first.gateway_transaction_id == "trx-9"
    assert first.paid_at is not None

    r = await client.post("/api/payments/webhook", json=_notification(gateway_order_id))
    assert r.json()["data"]["applied"] is False

    async with sessions() as session:
        result = await merge_gateway_status(session, order_id, "settlement")
    assert result.changed is False

    again = await _load(sessions, order_id)
    assert again.paid_at == first.paid_at
    assert again.order_status is OrderStatus.PREPARING


@pytest.mark.anyio
async def test_paid_order_ignores_late_expiry(client, sessions):
    order_id, gateway_order_id = await _qris_order(sessions)
    await client.post("/api/payments/webhook", json=_notification(gateway_order_id))

    r = await client.post(
        "/api/payments/webhook", json=_notification(gateway_order_id, "expire")
    )
    assert r.status_code == 200
    assert r.json()["data"]["applied"] is False
    assert (await _load(sessions, order_id)).payment_status is PaymentStatus.PAID


@pytest.mark.anyio
async def test_expiry_marks_pending_order_expired(client, sessions):
    order_id, gateway_order_id = await _qris_order(sessions)
    r = await client.post(
        "/api/payments/webhook", json=_notification(gateway_order_id, "expire")
    )
    assert r.json()["data"]["payment_status"] == "expired"
    order = await _load(sessions, order_id)
    assert order.payment_status is PaymentStatus.EXPIRED
    assert order.paid_at is None
    assert order.order_status is OrderStatus.PENDING


@pytest.mark.anyio
async def test_bad_signature_is_acknowledged_but_not_applied(client, sessions):
    order_id, gateway_order_id = await _qris_order(sessions)
    body = _notification(gateway_order_id, signature_key="0" * 128)

    r = await client.post("/api/payments/webhook", json=body)
    assert r.status_code == 200
    assert r.json()["data"] == {"applied": False, "reason": "signature"}
    assert (await _load(sessions, order_id)).payment_status is PaymentStatus.PENDING


@pytest.mark.anyio
async def test_tampered_amount_fails_signature(client, sessions):
    order_id, gateway_order_id = await _qris_order(sessions)
    body = _notification(gateway_order_id, gross_amount="1.00")

    r = await client.post("/api/payments/webhook", json=body)
    assert r.json()["data"]["reason"] == "signature"
    assert (await _load(sessions, order_id)).payment_status is PaymentStatus.PENDING


@pytest.mark.anyio
async def test_unknown_order_is_acknowledged(client):
    r = await client.post("/api/payments/webhook", json=_notification("ORDER-missing"))
    assert r.status_code == 200
    assert r.json()["data"] == {"applied": False, "reason": "unknown_order"}


@pytest.mark.anyio
async def test_unparseable_body_is_acknowledged(client):
    r = await client.post(
        "/api/payments/webhook",
        content=b"not json",
        headers={"Content-Type": "application/json"},
    )
    assert r.status_code == 200
    assert r.json()["data"]["reason"] == "parse"


@pytest.mark.anyio
async def test_processing_error_returns_500_for_retry(client, sessions, monkeypatch):
    order_id, gateway_order_id = await _qris_order(sessions)

    async def boom(*args, **kwargs):
        raise RuntimeError("database went away")

    monkeypatch.setattr(routes_payments, "merge_gateway_status", boom)
    r = await client.post("/api/payments/webhook", json=_notification(gateway_order_id))
    assert r.status_code == 500
    assert r.json()["ok"] is False
    assert (await _load(sessions, order_id)).payment_status is PaymentStatus.PENDING


@pytest.mark.anyio
async def test_pay_later_orders_are_left_alone(sessions):
    async with sessions() as session:
        bill = await orders_repo_sql.create_open_bill(
            session, [{"item_id": "es-teh", "quantity": 1}], table_number="2"
        )
        await session.commit()
        result = await merge_gateway_status(session, bill.id, "settlement")
    assert result.changed is False
    assert result.payment_status is PaymentStatus.UNPAID


@pytest.mark.anyio
async def test_payment_config_exposes_client_settings(client):
    r = await client.get("/api/payments/config")
    data = r.json()["data"]
    assert data["enabled"] is True
    assert data["is_production"] is False


@pytest.mark.anyio
async def test_settlement_stamps_updated_at_with_the_kitchen_move(sessions):
    order_id, _ = await _qris_order(sessions, OrderStatus.QUEUED)
    before = (await _load(sessions, order_id)).updated_at

    async with sessions() as session:
        await merge_gateway_status(session, order_id, "settlement")

    order = await _load(sessions, order_id)
    assert order.order_status is OrderStatus.PREPARING
    assert order.updated_at == order.paid_at
    assert order.updated_at >= before
