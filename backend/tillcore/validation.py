from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from .errors import ValidationError


MONEY_PLACES = Decimal("0.01")
QUANTITY_PLACES = Decimal("0.001")

# Maximum price: 9,999,999,999.99
# This prevents database overflow issues and nonsensical amounts
MAX_AMOUNT = Decimal("9999999999.99")


def parse_decimal(value: Any, *, field: str, code: str | None = None) -> Decimal:
    """
    Coerce a JSON number or numeric string to Decimal.

    Booleans, blanks, NaN and infinities are rejected.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} must be a number", code=code)
    if isinstance(value, float):
        # str() keeps the short repr (0.1 -> "0.1") instead of the binary expansion
        value = str(value)
    if isinstance(value, str):
        value = value.strip()
        if not value:
            raise ValidationError(f"{field} must be a number", code=code)
    try:
        result = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"{field} must be a number", code=code)
    if not result.is_finite():
        raise ValidationError(f"{field} must be a finite number", code=code)
    if abs(result) > MAX_AMOUNT:
        raise ValidationError(f"{field} is out of range", code=code)
    return result


def parse_int(value: Any, *, field: str, code: str | None = None) -> int:
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", code=code)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not value.is_integer():
            raise ValidationError(f"{field} must be an integer", code=code)
        return int(value)
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    raise ValidationError(f"{field} must be an integer", code=code)


def money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(MONEY_PLACES, rounding=ROUND_HALF_UP)


def quantity(value: Decimal) -> Decimal:
    return Decimal(value).quantize(QUANTITY_PLACES, rounding=ROUND_HALF_UP)


def as_float(value: Decimal | None) -> float | None:
    """JSON rendering for Numeric columns."""
    if value is None:
        return None
    return float(value)
