"""Monetary breakdown of a water bill."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class BillBreakdown:
    consumed: Decimal
    primary_rate: Decimal
    shared_rate: Decimal
    primary_amount: Decimal
    shared_amount: Decimal
    total_amount: Decimal


def calculate_bill(consumed: Decimal, primary_rate: Decimal, shared_rate: Decimal) -> BillBreakdown:
    """Multiply consumption by both rates without intermediate rounding."""

    primary_amount = consumed * primary_rate
    shared_amount = consumed * shared_rate
    return BillBreakdown(
        consumed=consumed,
        primary_rate=primary_rate,
        shared_rate=shared_rate,
        primary_amount=primary_amount,
        shared_amount=shared_amount,
        total_amount=primary_amount + shared_amount,
    )
