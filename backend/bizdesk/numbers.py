# Overview: Decimal helpers for quantities and money.

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

ZERO = Decimal("0")

QTY_PLACES = Decimal("0.001")
UNIT_PRICE_PLACES = Decimal("0.0001")
MONEY_PLACES = Decimal("0.01")


def to_decimal(value, field: str = "value") -> Decimal:
    """
    Coerce int/float/Decimal/numeric string to Decimal.

    Booleans, NaN and infinities are rejected. Floats go through str() so
    0.1 stays 0.1 instead of its binary expansion.

    Raises ValueError with a field-specific message.
    """
    if value is None:
        raise ValueError(f"{field} is required")
    if isinstance(value, bool):
        raise ValueError(f"{field} must be a number")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValueError(f"{field} must be a number")
        try:
            result = Decimal(stripped)
        except InvalidOperation:
            raise ValueError(f"{field} must be a number")
    else:
        raise ValueError(f"{field} must be a number")

    if not result.is_finite():
        raise ValueError(f"{field} must be a finite number")
    return result


def qty(value: Decimal) -> Decimal:
    return Decimal(value).quantize(QTY_PLACES, rounding=ROUND_HALF_UP)


def unit_price(value: Decimal) -> Decimal:
    return Decimal(value).quantize(UNIT_PRICE_PLACES, rounding=ROUND_HALF_UP)


def money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(MONEY_PLACES, rounding=ROUND_HALF_UP)


def as_float(value) -> float | None:
    """JSON rendering for Decimal columns."""
    if value is None:
        return None
    return float(value)


def dsum(values) -> Decimal:
    """Sum of Decimal-coercible values starting from Decimal zero."""
    total = ZERO
    for v in values:
        if v is not None:
            total += Decimal(v)
    return total
