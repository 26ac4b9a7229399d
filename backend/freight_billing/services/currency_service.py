# Overview: Currency conversion through the base unit; pure functions plus rate loading.

"""
Currency Conversion

WHY: Invoices, payments and agent summaries are denominated in many
currencies, but every exchange rate is stored as "one unit of X in the
base currency". All conversions go through that base unit.

DESIGN PRINCIPLES:
- Pure functions: rates are passed in (rows, dicts or a code -> rate map)
- Full Decimal precision; rounding happens only at display time
- A missing rate converts 1:1 and is logged. With strict=True (or the
  STRICT_EXCHANGE_RATES setting) it raises MissingExchangeRateError instead.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Iterable, Mapping, Optional, Union

from flask import current_app, has_app_context

from ..extensions import db
from ..models import ExchangeRate
from ..money import ZERO, to_decimal

logger = logging.getLogger(__name__)

DEFAULT_BASE_CURRENCY = "TZS"

RatesInput = Union[Mapping[str, Any], Iterable[Any], None]


class CurrencyError(Exception):
    """Raised for currency conversion errors."""
    pass


class MissingExchangeRateError(CurrencyError):
    """Raised in strict mode when no rate exists for a currency."""

    def __init__(self, currency_code: str):
        super().__init__(f"No exchange rate configured for {currency_code}")
        self.currency_code = currency_code


# =============================================================================
# RATE LOOKUP
# =============================================================================

def _row_code_and_rate(row: Any) -> tuple[Optional[str], Any]:
    if isinstance(row, Mapping):
        return row.get("currency_code"), row.get("rate_to_base")
    return getattr(row, "currency_code", None), getattr(row, "rate_to_base", None)


def build_rate_map(rates: RatesInput, base_currency: str = DEFAULT_BASE_CURRENCY) -> dict[str, Decimal]:
    """
    Normalize rates into {currency_code: rate_to_base}.

    Accepts a mapping of code -> rate, or an iterable of ExchangeRate rows
    or dicts with currency_code / rate_to_base. Non-positive or unparseable
    rates are dropped. The base currency always maps to 1.
    """
    rate_map: dict[str, Decimal] = {}
    if rates:
        if isinstance(rates, Mapping):
            pairs = rates.items()
        else:
            pairs = (_row_code_and_rate(row) for row in rates)
        for code, raw_rate in pairs:
            if not code:
                continue
            rate = to_decimal(raw_rate, default=None)
            if rate is None or rate <= ZERO:
                continue
            rate_map[str(code).upper()] = rate
    rate_map[base_currency.upper()] = Decimal(1)
    return rate_map


def find_rate(
    currency_code: str,
    rates: RatesInput,
    *,
    base_currency: str = DEFAULT_BASE_CURRENCY,
) -> Optional[Decimal]:
    """Rate to base for currency_code, or None when no usable rate exists."""
    rate_map = build_rate_map(rates, base_currency)
    code = (currency_code or "").upper()
    if code == base_currency.upper():
        return Decimal(1)
    return rate_map.get(code)


def _missing_rate(currency_code: str, strict: bool) -> None:
    if strict:
        raise MissingExchangeRateError(currency_code)
    logger.warning("No exchange rate for %s; converting 1:1", currency_code)


# =============================================================================
# CONVERSIONS
# =============================================================================

def to_base(
    amount: Any,
    currency_code: str,
    rates: RatesInput,
    *,
    base_currency: str = DEFAULT_BASE_CURRENCY,
    strict: bool = False,
) -> Decimal:
    """
    Convert amount in currency_code into the base currency.

    Returns amount unchanged for the base currency, and (non-strict) when
    no matching rate exists.
    """
    value = to_decimal(amount)
    if (currency_code or "").upper() == base_currency.upper():
        return value

    rate = find_rate(currency_code, rates, base_currency=base_currency)
    if rate is None:
        _missing_rate(currency_code, strict)
        return value
    return value * rate


def from_base(
    amount_base: Any,
    currency_code: str,
    rates: RatesInput,
    *,
    base_currency: str = DEFAULT_BASE_CURRENCY,
    strict: bool = False,
) -> Decimal:
    """Inverse of to_base: amount_base / rate_to_base, same fallback."""
    value = to_decimal(amount_base)
    if (currency_code or "").upper() == base_currency.upper():
        return value

    rate = find_rate(currency_code, rates, base_currency=base_currency)
    if rate is None:
        _missing_rate(currency_code, strict)
        return value
    return value / rate


def convert(
    amount: Any,
    from_currency: str,
    to_currency: str,
    rates: RatesInput,
    *,
    base_currency: str = DEFAULT_BASE_CURRENCY,
    strict: bool = False,
) -> Decimal:
    """Convert between two currencies via the base unit."""
    if (from_currency or "").upper() == (to_currency or "").upper():
        return to_decimal(amount)
    rate_map = build_rate_map(rates, base_currency)
    in_base = to_base(amount, from_currency, rate_map, base_currency=base_currency, strict=strict)
    return from_base(in_base, to_currency, rate_map, base_currency=base_currency, strict=strict)


# =============================================================================
# APPLICATION HELPERS
# =============================================================================

def conversion_options() -> dict:
    """base_currency/strict keyword arguments from the app config."""
    if not has_app_context():
        return {"base_currency": DEFAULT_BASE_CURRENCY, "strict": False}
    return {
        "base_currency": current_app.config.get("BASE_CURRENCY", DEFAULT_BASE_CURRENCY),
        "strict": bool(current_app.config.get("STRICT_EXCHANGE_RATES", False)),
    }


def load_rate_map() -> dict[str, Decimal]:
    """Read the exchange rate table into a rate map (base included)."""
    rows = db.session.query(ExchangeRate).all()
    return build_rate_map(rows, conversion_options()["base_currency"])
