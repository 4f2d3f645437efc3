"""
Money handling.

Storage is integer cents (fixed-point). The service layer hands out
Decimal currency units at full precision; rounding to two places happens
only when a value is presented (JSON / CLI).
"""
from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

CENT = Decimal("0.01")
HUNDRED = Decimal(100)
ZERO = Decimal(0)


def cents_to_decimal(cents: Optional[int]) -> Optional[Decimal]:
    if cents is None:
        return None
    return Decimal(int(cents)) / HUNDRED


def decimal_to_cents(value: Any) -> int:
    """
    Convert a user-supplied amount ("25.00", 25, Decimal) to integer cents.

    Raises ValueError for non-numeric input or more than two decimal places.
    Floats are routed through str() so 19.99 stays 1999.
    """
    if isinstance(value, bool):
        raise ValueError("amount must be a number")
    if isinstance(value, float):
        value = str(value)
    try:
        amount = Decimal(str(value).strip()) if isinstance(value, str) else Decimal(value)
    except (InvalidOperation, TypeError):
        raise ValueError("amount must be a number")
    if not amount.is_finite():
        raise ValueError("amount must be a finite number")
    cents = amount * HUNDRED
    if cents != cents.to_integral_value():
        raise ValueError("amount cannot have more than two decimal places")
    return int(cents)


def percent(numerator: Decimal, denominator: Decimal) -> Decimal:
    """numerator / denominator * 100, or 0 when the denominator is zero."""
    if not denominator:
        return ZERO
    return numerator / denominator * HUNDRED


def ratio(numerator, denominator) -> Decimal:
    if not denominator:
        return ZERO
    return Decimal(numerator) / Decimal(denominator)


def quantize(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def present(value: Any) -> Any:
    """
    Recursively round every Decimal in a report structure to two places.

    Applied at the HTTP / CLI edge only.
    """
    if isinstance(value, Decimal):
        return quantize(value)
    if isinstance(value, dict):
        return {k: present(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [present(v) for v in value]
    return value
