"""Domain models and helpers."""

from .errors import Conflict, DomainError, InsufficientStock, NotFound, ValidationFailed
from .order_status import (
    COMMITTED_REFUND_STATUSES,
    TRANSITIONS,
    CashMovementType,
    NotificationStatus,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    RefundStatus,
    RefundType,
    ShiftStatus,
    StockStatus,
    can_transition,
    can_transition_refund,
)

__all__ = [
    "COMMITTED_REFUND_STATUSES",
    "TRANSITIONS",
    "CashMovementType",
    "Conflict",
    "DomainError",
    "InsufficientStock",
    "NotFound",
    "NotificationStatus",
    "OrderStatus",
    "PaymentMethod",
    "PaymentStatus",
    "RefundStatus",
    "RefundType",
    "ShiftStatus",
    "StockStatus",
    "ValidationFailed",
    "can_transition",
    "can_transition_refund",
]
