"""initial order ledger schema

Revision ID: 0001_initial
Revises: None
Create Date: 2026-10-16
"""

from alembic import op
import sqlalchemy as sa


revision: str = "0001_initial"
down_revision: str | None = None
branch_labels: tuple[str, ...] | None = None
depends_on: tuple[str, ...] | None = None


def _status(name: str, *values: str) -> sa.Enum:
    return sa.Enum(*values, name=name, native_enum=False, length=16)


def upgrade() -> None:
    op.create_table(
        "menu_items",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("price", sa.BigInteger(), nullable=False),
        sa.Column(
            "is_available", sa.Boolean(), nullable=False, server_default=sa.true()
        ),
    )
    op.create_table(
        "inventory_items",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("category", sa.String(), nullable=True),
        sa.Column("current_stock", sa.Numeric(14, 3), nullable=False),
        sa.Column("min_stock", sa.Numeric(14, 3), nullable=False),
        sa.Column("max_stock", sa.Numeric(14, 3), nullable=True),
        sa.Column("unit", sa.String(16), nullable=False),
        sa.Column("price_per_unit", sa.BigInteger(), nullable=False),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()
        ),
    )
    op.create_table(
        "recipe_lines",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "menu_item_id",
            sa.String(36),
            sa.ForeignKey("menu_items.id"),
            nullable=False,
        ),
        sa.Column("inventory_item_id", sa.String(36), nullable=False),
        sa.Column("quantity_needed", sa.Numeric(14, 3), nullable=False),
        sa.Column("unit", sa.String(16), nullable=False),
    )
    op.create_table(
        "orders",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("customer_name", sa.String(), nullable=True),
        sa.Column("table_number", sa.String(16), nullable=True),
        sa.Column("items", sa.JSON(), nullable=False),
        sa.Column("subtotal", sa.BigInteger(), nullable=False),
        sa.Column("discount", sa.BigInteger(), nullable=False),
        sa.Column("total", sa.BigInteger(), nullable=False),
        sa.Column("payment_method", _status("paymentmethod", "cash", "qris"), nullable=False),
        sa.Column(
            "payment_status",
            _status("paymentstatus", "pending", "paid", "failed", "expired", "unpaid"),
            nullable=False,
        ),
        sa.Column(
            "order_status",
            _status("orderstatus", "queued", "pending", "preparing", "served"),
            nullable=False,
        ),
        sa.Column("pay_later", sa.Boolean(), nullable=False),
        sa.Column("gateway_order_id", sa.String(64), nullable=True, unique=True),
        sa.Column("gateway_transaction_id", sa.String(64), nullable=True),
        sa.Column("gateway_transaction_status", sa.String(32), nullable=True),
        sa.Column("gateway_mock", sa.Boolean(), nullable=False),
        sa.Column("qris_url", sa.Text(), nullable=True),
        sa.Column("qris_string", sa.Text(), nullable=True),
        sa.Column("payment_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "stock_status",
            _status("stockstatus", "none", "deducted", "failed"),
            nullable=False,
        ),
        sa.Column("stock_error", sa.JSON(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("created_by", sa.String(64), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()
        ),
    )
    op.create_index("ix_orders_table_status", "orders", ["table_number", "order_status"])
    op.create_index("ix_orders_paid_at", "orders", ["paid_at"])

    op.create_table(
        "shifts",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("cashier_id", sa.String(64), nullable=False),
        sa.Column("initial_cash", sa.BigInteger(), nullable=False),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_movement_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", _status("shiftstatus", "open", "closed"), nullable=False),
        sa.Column("total_orders", sa.Integer(), nullable=True),
        sa.Column("total_revenue", sa.BigInteger(), nullable=True),
        sa.Column("total_cash_revenue", sa.BigInteger(), nullable=True),
        sa.Column("total_non_cash_revenue", sa.BigInteger(), nullable=True),
        sa.Column("cash_in", sa.BigInteger(), nullable=True),
        sa.Column("cash_out", sa.BigInteger(), nullable=True),
        sa.Column("cash_expenses", sa.BigInteger(), nullable=True),
        sa.Column("cash_refunds", sa.BigInteger(), nullable=True),
        sa.Column("non_cash_refunds", sa.BigInteger(), nullable=True),
        sa.Column("system_cash", sa.BigInteger(), nullable=True),
        sa.Column("final_cash", sa.BigInteger(), nullable=True),
        sa.Column("cash_difference", sa.BigInteger(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
    )
    op.create_index(
        "uq_shifts_open_cashier",
        "shifts",
        ["cashier_id"],
        unique=True,
        sqlite_where=sa.text("status = 'open'"),
        postgresql_where=sa.text("status = 'open'"),
    )

    op.create_table(
        "cash_movements",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("shift_id", sa.String(36), sa.ForeignKey("shifts.id"), nullable=False),
        sa.Column("cashier_id", sa.String(64), nullable=False),
        sa.Column("type", _status("cashmovementtype", "cash_in", "cash_out"), nullable=False),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_cash_movements_shift_id", "cash_movements", ["shift_id"])

    op.create_table(
        "expenses",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("cashier_id", sa.String(64), nullable=False),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("category", sa.String(32), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_expenses_cashier_id", "expenses", ["cashier_id"])

    op.create_table(
        "refunds",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("order_id", sa.String(36), sa.ForeignKey("orders.id"), nullable=False),
        sa.Column("refund_amount", sa.BigInteger(), nullable=False),
        sa.Column("refund_type", _status("refundtype", "cash", "non_cash"), nullable=False),
        sa.Column(
            "status",
            _status("refundstatus", "pending", "approved", "rejected", "completed"),
            nullable=False,
        ),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("requested_by", sa.String(64), nullable=False),
        sa.Column("authorized_by", sa.String(64), nullable=True),
        sa.Column("requested_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_refunds_order_id", "refunds", ["order_id"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("type", sa.String(32), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column(
            "status",
            _status("notificationstatus", "pending", "approved", "rejected"),
            nullable=False,
        ),
        sa.Column("requested_by", sa.String(64), nullable=False),
        sa.Column("processed_by", sa.String(64), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("related_data", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_table(
        "deletion_logs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("order_id", sa.String(36), sa.ForeignKey("orders.id"), nullable=False),
        sa.Column(
            "notification_id",
            sa.Integer(),
            sa.ForeignKey("notifications.id"),
            nullable=False,
        ),
        sa.Column("item_index", sa.Integer(), nullable=False),
        sa.Column("deleted_item", sa.JSON(), nullable=False),
        sa.Column("items_before", sa.JSON(), nullable=False),
        sa.Column("items_after", sa.JSON(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("requested_by", sa.String(64), nullable=False),
        sa.Column("authorized_by", sa.String(64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_deletion_logs_order_id", "deletion_logs", ["order_id"])

    op.create_table(
        "daily_reports",
        sa.Column("report_date", sa.Date(), primary_key=True),
        sa.Column("total_orders", sa.Integer(), nullable=False),
        sa.Column("total_revenue", sa.BigInteger(), nullable=False),
        sa.Column("cash_revenue", sa.BigInteger(), nullable=False),
        sa.Column("non_cash_revenue", sa.BigInteger(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("daily_reports")
    op.drop_index("ix_deletion_logs_order_id", table_name="deletion_logs")
    op.drop_table("deletion_logs")
    op.drop_table("notifications")
    op.drop_index("ix_refunds_order_id", table_name="refunds")
    op.drop_table("refunds")
    op.drop_index("ix_expenses_cashier_id", table_name="expenses")
    op.drop_table("expenses")
    op.drop_index("ix_cash_movements_shift_id", table_name="cash_movements")
    op.drop_table("cash_movements")
    op.drop_index("uq_shifts_open_cashier", table_name="shifts")
    op.drop_table("shifts")
    op.drop_index("ix_orders_paid_at", table_name="orders")
    op.drop_index("ix_orders_table_status", table_name="orders")
    op.drop_table("orders")
    op.drop_table("recipe_lines")
    op.drop_table("inventory_items")
    op.drop_table("menu_items")
