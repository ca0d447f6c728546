"""Validation of submitted meter readings against the last known reading."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Union

READING_DECIMAL_PLACES = 2


class ReadingRejected(ValueError):
    """Base class for readings that cannot be billed."""

    reason = "InvalidReading"


class InvalidReadingError(ReadingRejected):
    """The reading is not a non-negative decimal with at most two decimals."""

    reason = "InvalidReading"


class MeterRegressionError(ReadingRejected):
    """The reading is lower than the last reading stored for the apartment."""

    reason = "MeterRegression"


@dataclass(frozen=True)
class AcceptedReading:
    previous_reading: Decimal
    current_reading: Decimal
    consumed: Decimal


def parse_reading(raw: Union[str, int, float, Decimal, None]) -> Decimal:
    if raw is None or isinstance(raw, bool):
        raise InvalidReadingError("A meter reading is required")
    try:
        value = Decimal(str(raw).strip())
    except InvalidOperation as exc:
        raise InvalidReadingError(f"'{raw}' is not a valid meter reading") from exc

    if not value.is_finite():
        raise InvalidReadingError(f"'{raw}' is not a valid meter reading")
    if value < 0:
        raise InvalidReadingError("Meter readings cannot be negative")
    if value.normalize().as_tuple().exponent < -READING_DECIMAL_PLACES:
        raise InvalidReadingError(
            f"Meter readings accept at most {READING_DECIMAL_PLACES} decimal places"
        )
    return value


def validate_reading(previous_reading, current_reading) -> AcceptedReading:
    """Accept ``current_reading`` when it does not go below ``previous_reading``.

    An unchanged reading is valid and yields zero consumption.
    """

    previous = Decimal(str(previous_reading if previous_reading is not None else 0))
    current = parse_reading(current_reading)
    if current < previous:
        raise MeterRegressionError(
            f"Current reading {current} is lower than the previous reading {previous}"
        )
    return AcceptedReading(
        previous_reading=previous,
        current_reading=current,
        consumed=current - previous,
    )
