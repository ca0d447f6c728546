"""Derive the per-unit water rates for a billing batch."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from .. import models
from .errors import InvalidInvoiceError

RATE_QUANTUM = Decimal("0.0001")


@dataclass(frozen=True)
class WaterRates:
    """Price per cubic meter for the invoice cost and the shared cost."""

    primary_rate: Decimal
    shared_rate: Decimal


def _to_decimal(value) -> Decimal:
    return Decimal(str(value if value is not None else 0))


def resolve_rates(
    invoice: models.WaterInvoice,
    shared_setting: Optional[models.SharedCostSetting] = None,
) -> WaterRates:
    """Return the rates applied to every apartment billed against ``invoice``.

    Both rates are divided by the consumption declared on the invoice, so the
    shared cost is spread proportionally to what each apartment consumed.
    An inactive shared cost setting counts as absent.
    """

    total_consumption = _to_decimal(invoice.total_consumption)
    if total_consumption <= 0:
        raise InvalidInvoiceError("Invoice total consumption must be greater than zero")

    primary_rate = (_to_decimal(invoice.total_cost) / total_consumption).quantize(
        RATE_QUANTUM, rounding=ROUND_HALF_UP
    )

    shared_rate = Decimal("0").quantize(RATE_QUANTUM)
    if shared_setting is not None and shared_setting.is_active:
        shared_rate = (
            _to_decimal(shared_setting.total_shared_cost_per_period) / total_consumption
        ).quantize(RATE_QUANTUM, rounding=ROUND_HALF_UP)

    return WaterRates(primary_rate=primary_rate, shared_rate=shared_rate)
