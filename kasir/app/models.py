"""Database models for the order ledger and shift reconciliation.

The models are kept free of application wiring so they can be used by the
repositories, the Alembic migration and the tests alike. Money columns hold
integer rupiah.
"""

from __future__ import annotations

import uuid

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.orm import declarative_base

from .domain.order_status import (
    CashMovementType,
    NotificationStatus,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    RefundStatus,
    RefundType,
    ShiftStatus,
    StockStatus,
)

Base = declarative_base()


def _enum(cls: type) -> Enum:
    # Persist the lower-case values rather than member names.
    return Enum(
        cls,
        native_enum=False,
        length=16,
        values_callable=lambda members: [m.value for m in members],
    )


def _uuid() -> str:
    return str(uuid.uuid4())


class MenuItem(Base):
    """Menu entries; maintained outside this service."""

    __tablename__ = "menu_items"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String, nullable=False)
    price = Column(BigInteger, nullable=False)
    is_available = Column(Boolean, nullable=False, default=True)


class InventoryItem(Base):
    """Raw ingredients tracked in stock units."""

    __tablename__ = "inventory_items"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String, nullable=False)
    category = Column(String, nullable=True)
    current_stock = Column(Numeric(14, 3), nullable=False, default=0)
    min_stock = Column(Numeric(14, 3), nullable=False, default=0)
    max_stock = Column(Numeric(14, 3), nullable=True)
    unit = Column(String(16), nullable=False)
    price_per_unit = Column(BigInteger, nullable=False, default=0)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class RecipeLine(Base):
    """Quantity of one ingredient consumed by one unit of a menu item."""

    __tablename__ = "recipe_lines"

    id = Column(Integer, primary_key=True, autoincrement=True)
    menu_item_id = Column(String(36), ForeignKey("menu_items.id"), nullable=False)
    inventory_item_id = Column(String(36), nullable=False)
    quantity_needed = Column(Numeric(14, 3), nullable=False)
    unit = Column(String(16), nullable=False)


class Order(Base):
    """A customer order with snapshotted line items."""

    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=_uuid)
    customer_name = Column(String, nullable=True)
    table_number = Column(String(16), nullable=True)
    items = Column(JSON, nullable=False)
    subtotal = Column(BigInteger, nullable=False)
    discount = Column(BigInteger, nullable=False, default=0)
    total = Column(BigInteger, nullable=False)
    payment_method = Column(_enum(PaymentMethod), nullable=False)
    payment_status = Column(_enum(PaymentStatus), nullable=False)
    order_status = Column(_enum(OrderStatus), nullable=False)
    pay_later = Column(Boolean, nullable=False, default=False)
    gateway_order_id = Column(String(64), nullable=True, unique=True)
    gateway_transaction_id = Column(String(64), nullable=True)
    gateway_transaction_status = Column(String(32), nullable=True)
    gateway_mock = Column(Boolean, nullable=False, default=False)
    qris_url = Column(Text, nullable=True)
    qris_string = Column(Text, nullable=True)
    payment_expires_at = Column(DateTime(timezone=True), nullable=True)
    stock_status = Column(_enum(StockStatus), nullable=False, default=StockStatus.NONE)
    stock_error = Column(JSON, nullable=True)
    version = Column(Integer, nullable=False, default=1)
    created_by = Column(String(64), nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("ix_orders_table_status", "table_number", "order_status"),
        Index("ix_orders_paid_at", "paid_at"),
    )


class Shift(Base):
    """A cashier's working period and its closing figures."""

    __tablename__ = "shifts"

    id = Column(String(36), primary_key=True, default=_uuid)
    cashier_id = Column(String(64), nullable=False)
    initial_cash = Column(BigInteger, nullable=False)
    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=True)
    last_movement_at = Column(DateTime(timezone=True), nullable=True)
    status = Column(_enum(ShiftStatus), nullable=False, default=ShiftStatus.OPEN)
    total_orders = Column(Integer, nullable=True)
    total_revenue = Column(BigInteger, nullable=True)
    total_cash_revenue = Column(BigInteger, nullable=True)
    total_non_cash_revenue = Column(BigInteger, nullable=True)
    cash_in = Column(BigInteger, nullable=True)
    cash_out = Column(BigInteger, nullable=True)
    cash_expenses = Column(BigInteger, nullable=True)
    cash_refunds = Column(BigInteger, nullable=True)
    non_cash_refunds = Column(BigInteger, nullable=True)
    system_cash = Column(BigInteger, nullable=True)
    final_cash = Column(BigInteger, nullable=True)
    cash_difference = Column(BigInteger, nullable=True)
    notes = Column(Text, nullable=True)

    __table_args__ = (
        # One open shift per cashier.
        Index(
            "uq_shifts_open_cashier",
            "cashier_id",
            unique=True,
            sqlite_where=text("status = 'open'"),
            postgresql_where=text("status = 'open'"),
        ),
    )


class CashMovement(Base):
    """Append-only cash in/out entry recorded during an open shift."""

    __tablename__ = "cash_movements"

    id = Column(Integer, primary_key=True, autoincrement=True)
    shift_id = Column(String(36), ForeignKey("shifts.id"), nullable=False, index=True)
    cashier_id = Column(String(64), nullable=False)
    type = Column(_enum(CashMovementType), nullable=False)
    amount = Column(BigInteger, nullable=False)
    description = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)


class Expense(Base):
    __tablename__ = "expenses"

    id = Column(Integer, primary_key=True, autoincrement=True)
    cashier_id = Column(String(64), nullable=False, index=True)
    amount = Column(BigInteger, nullable=False)
    category = Column(String(32), nullable=False)
    description = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)


class Refund(Base):
    __tablename__ = "refunds"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False, index=True)
    refund_amount = Column(BigInteger, nullable=False)
    refund_type = Column(_enum(RefundType), nullable=False)
    status = Column(_enum(RefundStatus), nullable=False, default=RefundStatus.PENDING)
    reason = Column(Text, nullable=False)
    requested_by = Column(String(64), nullable=False)
    authorized_by = Column(String(64), nullable=True)
    requested_at = Column(DateTime(timezone=True), nullable=False)
    processed_at = Column(DateTime(timezone=True), nullable=True)


class Notification(Base):
    """Approval request raised to managers (currently item deletions)."""

    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    type = Column(String(32), nullable=False)
    title = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    status = Column(
        _enum(NotificationStatus), nullable=False, default=NotificationStatus.PENDING
    )
    requested_by = Column(String(64), nullable=False)
    processed_by = Column(String(64), nullable=True)
    processed_at = Column(DateTime(timezone=True), nullable=True)
    related_data = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)


class DeletionLog(Base):
    """Immutable audit record of an approved item removal."""

    __tablename__ = "deletion_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False, index=True)
    notification_id = Column(Integer, ForeignKey("notifications.id"), nullable=False)
    item_index = Column(Integer, nullable=False)
    deleted_item = Column(JSON, nullable=False)
    items_before = Column(JSON, nullable=False)
    items_after = Column(JSON, nullable=False)
    reason = Column(Text, nullable=False)
    requested_by = Column(String(64), nullable=False)
    authorized_by = Column(String(64), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)


class DailyReport(Base):
    """Revenue per calendar day, recomputed from paid orders."""

    __tablename__ = "daily_reports"

    report_date = Column(Date, primary_key=True)
    total_orders = Column(Integer, nullable=False, default=0)
    total_revenue = Column(BigInteger, nullable=False, default=0)
    cash_revenue = Column(BigInteger, nullable=False, default=0)
    non_cash_revenue = Column(BigInteger, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), nullable=False)


__all__ = [
    "Base",
    "MenuItem",
    "InventoryItem",
    "RecipeLine",
    "Order",
    "Shift",
    "CashMovement",
    "Expense",
    "Refund",
    "Notification",
    "DeletionLog",
    "DailyReport",
]
