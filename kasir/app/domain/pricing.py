"""Order line and total arithmetic in integer minor units."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping

from .errors import ValidationFailed


@dataclass(frozen=True)
class Totals:
    subtotal: int
    discount: int
    total: int


def line_total(line: Mapping) -> int:
    return int(line["price"]) * int(line["quantity"])


def subtotal_of(lines: Iterable[Mapping]) -> int:
    return sum(line_total(line) for line in lines)


def compute_totals(lines: Iterable[Mapping], discount: int = 0) -> Totals:
    """Return totals for ``lines`` keeping ``total == subtotal - discount``.

    Raises :class:`ValidationFailed` when ``discount`` is negative or larger
    than the subtotal.
    """

    subtotal = subtotal_of(lines)
    if discount < 0 or discount > subtotal:
        raise ValidationFailed(
            "discount must be between 0 and the subtotal",
            {"subtotal": subtotal, "discount": discount},
        )
    return Totals(subtotal=subtotal, discount=discount, total=subtotal - discount)


def clamp_totals(lines: Iterable[Mapping], discount: int) -> Totals:
    """Like :func:`compute_totals` but shrink ``discount`` to fit.

    Used when an approved item removal drops the subtotal below an existing
    discount; the removal itself must not fail.
    """

    subtotal = subtotal_of(lines)
    discount = max(0, min(discount, subtotal))
    return Totals(subtotal=subtotal, discount=discount, total=subtotal - discount)
