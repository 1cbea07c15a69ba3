"""Decimal helpers for money and percentages."""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

CENT = Decimal('0.01')
ZERO = Decimal('0')
HUNDRED = Decimal('100')


def to_decimal(value: Any, default: Decimal = ZERO) -> Decimal:
    """
    Coerce a JSON/str/int/float value to Decimal.

    Floats go through str() so 0.1 stays 0.1. Empty or unparsable values
    fall back to ``default``, as do NaN and Infinity.
    """
    if value is None or value == '':
        return default
    if isinstance(value, bool):
        return Decimal(int(value))
    if isinstance(value, Decimal):
        parsed = value
    else:
        try:
            parsed = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            return default
    if not parsed.is_finite():
        return default
    return parsed


def money(value: Any) -> Decimal:
    """Round to cents, half up."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def clamp_percent(value: Any) -> Decimal:
    """Clamp a percentage to [0, 100]."""
    return max(ZERO, min(HUNDRED, to_decimal(value)))


def to_int(value: Any, default: int = 0) -> int:
    """Parse an integer id or quantity from JSON, rounding halves up."""
    parsed = to_decimal(value, default=None)
    if parsed is None:
        return default
    try:
        return int(parsed.quantize(Decimal('1'), rounding=ROUND_HALF_UP))
    except (InvalidOperation, ValueError):
        return default


def to_flag(value: Any) -> bool:
    """Interpret 0/1, 'true'/'false' and booleans as a flag."""
    if isinstance(value, str):
        return value.strip().lower() in ('1', 'true', 'yes', 'on')
    return bool(value)
