# Overview: Decimal helpers shared by models, calculators and services.

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

ZERO = Decimal("0")
HUNDRED = Decimal("100")
CENT = Decimal("0.01")

# Column precision. Amounts are stored at full precision; only display rounds.
MONEY_PRECISION = (20, 6)
RATE_PRECISION = (20, 8)

_NUMERIC_PREFIX = re.compile(r"^\s*[+-]?(?:\d+(?:\.\d*)?|\.\d+)")


def to_decimal(value: Any, default: Optional[Decimal] = ZERO) -> Optional[Decimal]:
    """
    Lenient conversion used inside calculators.

    None, "" and anything non-numeric become `default`. Floats go through
    str() so 0.1 stays 0.1 instead of its binary expansion.
    """
    if value is None:
        return default
    if isinstance(value, Decimal):
        return value if value.is_finite() else default
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        value = str(value)
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return default
    return result if result.is_finite() else default


def parse_leading_number(text: Optional[str]) -> Optional[Decimal]:
    """
    Read the numeric prefix of free text ("12.5 off" -> 12.5, "1.2.3" -> 1.2).

    Returns None when the text does not start with a number.
    """
    if not text:
        return None
    match = _NUMERIC_PREFIX.match(text)
    if not match:
        return None
    return Decimal(match.group(0).strip())


def quantize_money(value: Optional[Decimal]) -> Optional[Decimal]:
    """Round to two places for display. Never applied before storage."""
    if value is None:
        return None
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def decimal_to_str(value: Optional[Decimal]) -> Optional[str]:
    """JSON-safe representation that keeps every stored digit."""
    if value is None:
        return None
    normalized = value.normalize()
    # normalize() turns 100 into 1E+2
    if normalized == normalized.to_integral_value():
        return str(normalized.quantize(Decimal(1)))
    return format(normalized, "f")
