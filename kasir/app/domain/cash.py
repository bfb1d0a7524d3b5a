"""Shift closing arithmetic.

The figures are derived from ledger rows every time; nothing here keeps
running totals. :func:`reconcile` is pure so the same code backs both the
close operation and the read-only audit preview.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Iterable

from .order_status import CashMovementType, PaymentMethod, RefundType


@dataclass(frozen=True)
class OrderLedgerRow:
    total: int
    payment_method: PaymentMethod


@dataclass(frozen=True)
class MovementLedgerRow:
    type: CashMovementType
    amount: int


@dataclass(frozen=True)
class RefundLedgerRow:
    refund_amount: int
    refund_type: RefundType


@dataclass(frozen=True)
class ShiftFigures:
    total_orders: int
    total_revenue: int
    total_cash_revenue: int
    total_non_cash_revenue: int
    gross_cash_revenue: int
    gross_non_cash_revenue: int
    cash_refunds: int
    non_cash_refunds: int
    cash_in: int
    cash_out: int
    cash_expenses: int
    system_cash: int
    final_cash: int | None
    cash_difference: int | None

    def as_dict(self) -> dict:
        return asdict(self)


def reconcile(
    initial_cash: int,
    orders: Iterable[OrderLedgerRow],
    movements: Iterable[MovementLedgerRow],
    expenses: Iterable[int],
    refunds: Iterable[RefundLedgerRow],
    final_cash: int | None = None,
) -> ShiftFigures:
    """Compute the closing figures for a shift.

    ``total_cash_revenue`` and ``total_non_cash_revenue`` are net of refunds;
    ``system_cash = initial_cash + net_cash + cash_in - cash_out - expenses``
    and ``cash_difference = final_cash - system_cash`` when a physical count
    is supplied.
    """

    orders = list(orders)
    gross_cash = sum(o.total for o in orders if o.payment_method is PaymentMethod.CASH)
    gross_non_cash = sum(
        o.total for o in orders if o.payment_method is not PaymentMethod.CASH
    )

    cash_in = 0
    cash_out = 0
    for movement in movements:
        if movement.type is CashMovementType.CASH_IN:
            cash_in += movement.amount
        else:
            cash_out += movement.amount

    cash_expenses = sum(expenses)

    cash_refunds = 0
    non_cash_refunds = 0
    for refund in refunds:
        if refund.refund_type is RefundType.CASH:
            cash_refunds += refund.refund_amount
        else:
            non_cash_refunds += refund.refund_amount

    net_cash = gross_cash - cash_refunds
    net_non_cash = gross_non_cash - non_cash_refunds
    system_cash = initial_cash + net_cash + cash_in - cash_out - cash_expenses

    return ShiftFigures(
        total_orders=len(orders),
        total_revenue=net_cash + net_non_cash,
        total_cash_revenue=net_cash,
        total_non_cash_revenue=net_non_cash,
        gross_cash_revenue=gross_cash,
        gross_non_cash_revenue=gross_non_cash,
        cash_refunds=cash_refunds,
        non_cash_refunds=non_cash_refunds,
        cash_in=cash_in,
        cash_out=cash_out,
        cash_expenses=cash_expenses,
        system_cash=system_cash,
        final_cash=final_cash,
        cash_difference=None if final_cash is None else final_cash - system_cash,
    )
