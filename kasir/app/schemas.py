# schemas.py

"""Pydantic models for API payloads."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from .domain.order_status import (
    CashMovementType,
    OrderStatus,
    PaymentMethod,
    RefundType,
)


class OrderLineIn(BaseModel):
    """One requested menu item; price and name come from the menu."""

    item_id: str
    quantity: int = Field(ge=1)
    notes: Optional[str] = None


class OrderIn(BaseModel):
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    table_number: Optional[str] = None
    items: List[OrderLineIn] = Field(min_length=1)
    discount: int = Field(default=0, ge=0)


class CashOrderIn(OrderIn):
    cash_received: Optional[int] = Field(default=None, ge=0)


class OpenBillIn(BaseModel):
    customer_name: Optional[str] = None
    table_number: str
    items: List[OrderLineIn] = Field(min_length=1)
    discount: int = Field(default=0, ge=0)


class OpenBillItemsIn(BaseModel):
    """Items for append or replace; ``version`` guards against lost updates."""

    items: List[OrderLineIn] = Field(min_length=1)
    version: Optional[int] = None
    discount: Optional[int] = Field(default=None, ge=0)


class PayOpenBillIn(BaseModel):
    payment_method: PaymentMethod = PaymentMethod.CASH


class OrderStatusIn(BaseModel):
    status: OrderStatus


class StockCheckIn(BaseModel):
    items: List[OrderLineIn] = Field(min_length=1)


class ShiftOpenIn(BaseModel):
    initial_cash: int = Field(ge=0)


class ShiftCloseIn(BaseModel):
    final_cash: int = Field(ge=0)
    notes: Optional[str] = None


class CashMovementIn(BaseModel):
    type: CashMovementType
    amount: int = Field(gt=0)
    description: str = Field(min_length=1)
    shift_id: Optional[str] = None


class ExpenseIn(BaseModel):
    amount: int = Field(gt=0)
    category: str = "operational"
    description: str = Field(min_length=1)


class RefundIn(BaseModel):
    order_id: str
    refund_amount: int = Field(gt=0)
    refund_type: RefundType
    reason: str = Field(min_length=1)


class DeletionRequestIn(BaseModel):
    item_index: int = Field(ge=0)
    reason: str = Field(min_length=1)
