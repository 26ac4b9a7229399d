from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Optional

from .money import ZERO


# Largest amount accepted from clients: 10^14 in any currency
# This keeps values inside the Numeric(20, 6) columns
MAX_AMOUNT = Decimal("100000000000000")


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate currency code)."""


def parse_decimal(
    value: Any,
    field: str,
    *,
    required: bool = True,
    positive: bool = False,
    allow_negative: bool = False,
) -> Optional[Decimal]:
    """
    Strict decimal coercion for API input.

    Calculators are lenient (bad input -> 0); request bodies are not: a
    payment of "abc" is rejected here rather than silently recorded as 0.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ValidationError(f"{field} is required")
        return None

    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")

    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number")

    if not result.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    if positive and result <= ZERO:
        raise ValidationError(f"{field} must be positive")
    if not allow_negative and result < ZERO:
        raise ValidationError(f"{field} cannot be negative")
    if abs(result) > MAX_AMOUNT:
        raise ValidationError(f"{field} is too large")
    return result


def parse_choice(value: Any, field: str, choices: Iterable[str], *, default: Optional[str] = None) -> str:
    if value is None or value == "":
        if default is None:
            raise ValidationError(f"{field} is required")
        return default
    if value not in choices:
        raise ValidationError(f"Invalid {field}: {value}. Must be one of {list(choices)}")
    return value


def parse_currency_code(value: Any, field: str = "currency", *, default: Optional[str] = None) -> str:
    if value is None or value == "":
        if default is None:
            raise ValidationError(f"{field} is required")
        return default
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    code = value.strip().upper()
    if len(code) != 3 or not code.isalpha():
        raise ValidationError(f"{field} must be a 3-letter currency code")
    return code


def parse_int(value: Any, field: str, *, required: bool = True) -> Optional[int]:
    if value is None or value == "":
        if required:
            raise ValidationError(f"{field} is required")
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    raise ValidationError(f"{field} must be an integer")
