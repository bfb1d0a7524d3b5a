"""Order, payment and ledger status enumerations and allowed transitions."""

from __future__ import annotations

from enum import Enum


class OrderStatus(str, Enum):
    """Enumerate the kitchen lifecycle states for an order."""

    QUEUED = "queued"
    PENDING = "pending"
    PREPARING = "preparing"
    SERVED = "served"


class PaymentStatus(str, Enum):
    """Enumerate the payment states tracked on an order."""

    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    EXPIRED = "expired"
    UNPAID = "unpaid"


class PaymentMethod(str, Enum):
    CASH = "cash"
    QRIS = "qris"


class StockStatus(str, Enum):
    """Outcome of the ingredient deduction for a served order."""

    NONE = "none"
    DEDUCTED = "deducted"
    FAILED = "failed"


class ShiftStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class CashMovementType(str, Enum):
    CASH_IN = "cash_in"
    CASH_OUT = "cash_out"


class RefundStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"


class RefundType(str, Enum):
    CASH = "cash"
    NON_CASH = "non_cash"


class NotificationStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


# Edges a caller may request through the status endpoint. ``queued`` is left
# only through the open-bill submit operation or a settled QRIS payment.
TRANSITIONS: dict[OrderStatus, list[OrderStatus]] = {
    OrderStatus.QUEUED: [OrderStatus.PENDING],
    OrderStatus.PENDING: [OrderStatus.PREPARING, OrderStatus.SERVED],
    OrderStatus.PREPARING: [OrderStatus.SERVED],
    OrderStatus.SERVED: [],
}

REFUND_TRANSITIONS: dict[RefundStatus, list[RefundStatus]] = {
    RefundStatus.PENDING: [RefundStatus.APPROVED, RefundStatus.REJECTED],
    RefundStatus.APPROVED: [RefundStatus.COMPLETED],
    RefundStatus.REJECTED: [],
    RefundStatus.COMPLETED: [],
}

# Refunds that count against an order's refundable amount.
COMMITTED_REFUND_STATUSES = (RefundStatus.APPROVED, RefundStatus.COMPLETED)


def can_transition(src: OrderStatus, dst: OrderStatus) -> bool:
    """Return ``True`` if an order can move from ``src`` to ``dst``."""

    return dst in TRANSITIONS.get(src, [])


def can_transition_refund(src: RefundStatus, dst: RefundStatus) -> bool:
    return dst in REFUND_TRANSITIONS.get(src, [])
