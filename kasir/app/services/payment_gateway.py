"""QRIS payment gateway adapter.

Only two calls are needed: create a QRIS charge and query the status of an
existing one. :class:`MidtransGateway` talks to the Midtrans Core API over
``httpx``; anything implementing :class:`GatewayAdapter` can replace it.
Every failure (timeout, transport error, non-success answer) surfaces as
:class:`GatewayError` so callers only handle one exception type.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Protocol

import httpx

from config import Settings, get_settings

logger = logging.getLogger(__name__)

SANDBOX_URL = "https://api.sandbox.midtrans.com"
PRODUCTION_URL = "https://api.midtrans.com"

# Gateway's own timestamps are in WIB.
GATEWAY_TZ = timezone(timedelta(hours=7))


class GatewayError(Exception):
    """The gateway could not be reached or refused the request."""


@dataclass(frozen=True)
class Charge:
    charge_id: str | None
    transaction_status: str | None
    qr_url: str | None
    qr_string: str | None
    expires_at: datetime | None


class GatewayAdapter(Protocol):
    async def create_charge(
        self,
        order_ref: str,
        amount: int,
        items: list[dict],
        customer: dict | None = None,
    ) -> Charge: ...

    async def query_status(self, gateway_order_id: str) -> str: ...


def signature_for(order_id: str, status_code: str, gross_amount: str, server_key: str) -> str:
    """Return the hex SHA-512 the gateway attaches to its notifications."""

    payload = f"{order_id}{status_code}{gross_amount}{server_key}"
    return hashlib.sha512(payload.encode()).hexdigest()


def verify_signature(notification: dict[str, Any], server_key: str) -> bool:
    expected = signature_for(
        str(notification.get("order_id", "")),
        str(notification.get("status_code", "")),
        str(notification.get("gross_amount", "")),
        server_key,
    )
    return hmac.compare_digest(expected, str(notification.get("signature_key", "")))


def _parse_expiry(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.strptime(value, "%Y-%m-%d %H:%M:%S")
    except ValueError:
        logger.warning("unparseable gateway expiry %r", value)
        return None
    return parsed.replace(tzinfo=GATEWAY_TZ).astimezone(timezone.utc)


class MidtransGateway:
    """Core API client for QRIS charges."""

    def __init__(
        self,
        server_key: str,
        production: bool = False,
        timeout: float = 10.0,
        expiry_minutes: int = 15,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.server_key = server_key
        self.base_url = PRODUCTION_URL if production else SANDBOX_URL
        self.timeout = timeout
        self.expiry_minutes = expiry_minutes
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            auth=(self.server_key, ""),
            timeout=self.timeout,
            headers={"Accept": "application/json"},
            transport=self._transport,
        )

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict:
        try:
            async with self._client() as client:
                resp = await client.request(method, path, **kwargs)
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPError as exc:
            raise GatewayError(f"{method} {path} failed: {exc}") from exc
        except ValueError as exc:
            raise GatewayError(f"{method} {path} returned invalid JSON") from exc
        if not isinstance(data, dict):
            raise GatewayError(
                f"{method} {path} returned {type(data).__name__}, not an object"
            )
        # The API reports errors in the body with HTTP 200.
        status_code = str(data.get("status_code", "200"))
        if not status_code.startswith("2"):
            raise GatewayError(
                f"{method} {path} rejected: {status_code} {data.get('status_message')}"
            )
        return data

    async def create_charge(
        self,
        order_ref: str,
        amount: int,
        items: list[dict],
        customer: dict | None = None,
    ) -> Charge:
        payload = {
            "payment_type": "qris",
            "transaction_details": {"order_id": order_ref, "gross_amount": amount},
            "qris": {"acquirer": "gopay"},
            "item_details": [
                {
                    "id": item["item_id"],
                    "name": item["name"][:50],
                    "price": item["price"],
                    "quantity": item["quantity"],
                }
                for item in items
            ],
            "custom_expiry": {
                "expiry_duration": self.expiry_minutes,
                "unit": "minute",
            },
        }
        if customer:
            payload["customer_details"] = {
                "first_name": customer.get("name") or "",
                "phone": customer.get("phone") or "",
            }
        data = await self._request("POST", "/v2/charge", json=payload)
        qr_url = next(
            (
                action.get("url")
                for action in data.get("actions") or []
                if action.get("name") == "generate-qr-code"
            ),
            None,
        )
        return Charge(
            charge_id=data.get("transaction_id"),
            transaction_status=data.get("transaction_status"),
            qr_url=qr_url,
            qr_string=data.get("qr_string"),
            expires_at=_parse_expiry(data.get("expiry_time")),
        )

    async def query_status(self, gateway_order_id: str) -> str:
        data = await self._request("GET", f"/v2/{gateway_order_id}/status")
        status = data.get("transaction_status")
        if not status:
            raise GatewayError(f"no transaction status for {gateway_order_id}")
        return status


def build_gateway(settings: Settings) -> MidtransGateway | None:
    if not settings.gateway_server_key:
        return None
    return MidtransGateway(
        settings.gateway_server_key,
        production=settings.gateway_production,
        timeout=settings.gateway_timeout_secs,
        expiry_minutes=settings.qris_expiry_minutes,
    )


def get_gateway() -> GatewayAdapter | None:
    """FastAPI dependency returning the configured gateway, if any."""

    return build_gateway(get_settings())


__all__ = [
    "Charge",
    "GatewayAdapter",
    "GatewayError",
    "MidtransGateway",
    "build_gateway",
    "get_gateway",
    "signature_for",
    "verify_signature",
]
