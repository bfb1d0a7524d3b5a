"""Gateway transaction vocabulary mapped onto :class:`PaymentStatus`."""

from __future__ import annotations

from .order_status import PaymentStatus

GATEWAY_STATUS_MAP: dict[str, PaymentStatus] = {
    "settlement": PaymentStatus.PAID,
    "capture": PaymentStatus.PAID,
    "deny": PaymentStatus.FAILED,
    "cancel": PaymentStatus.FAILED,
    "failure": PaymentStatus.FAILED,
    "expire": PaymentStatus.EXPIRED,
    "pending": PaymentStatus.PENDING,
}


def map_transaction_status(transaction_status: str | None) -> PaymentStatus | None:
    """Return the internal status for a gateway ``transaction_status``.

    Unknown values (``authorize``, ``refund`` ...) return ``None`` and are
    ignored by reconciliation.
    """

    if not transaction_status:
        return None
    return GATEWAY_STATUS_MAP.get(transaction_status.strip().lower())


def is_downgrade(current: PaymentStatus, new: PaymentStatus) -> bool:
    """A settled payment never moves back to a non-paid state."""

    return current is PaymentStatus.PAID and new is not PaymentStatus.PAID
