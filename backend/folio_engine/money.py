"""Decimal helpers shared by the accumulators."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, getcontext
from typing import Any

getcontext().prec = 28

ZERO = Decimal("0")
HUNDRED = Decimal("100")


def to_decimal(value: Any) -> Decimal:
    """Coerce ints, strings and Decimals; floats go through ``str`` to avoid binary noise."""

    if isinstance(value, Decimal):
        return value
    if value is None:
        return ZERO
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def percentage(numerator: Decimal, denominator: Decimal, places: int = 4) -> Decimal:
    """Return ``numerator / denominator * 100`` quantized, or zero for a zero denominator."""

    if denominator == 0:
        return ZERO
    exponent = Decimal(1).scaleb(-places)
    return (numerator / denominator * HUNDRED).quantize(exponent, rounding=ROUND_HALF_UP)


__all__ = ["ZERO", "HUNDRED", "to_decimal", "percentage"]
