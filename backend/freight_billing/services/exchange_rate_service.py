# Overview: Administrator CRUD over the exchange rate table.

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Optional

from ..extensions import db
from ..models import ExchangeRate
from ..time_utils import utcnow
from ..validation import ConflictError, ValidationError, parse_currency_code, parse_decimal
from . import currency_service

logger = logging.getLogger(__name__)


# Seed used by `flask system init`: one unit of each currency in TZS
DEFAULT_EXCHANGE_RATES = [
    ("TZS", "Tanzanian Shilling", Decimal("1")),
    ("USD", "US Dollar", Decimal("2500")),
    ("GBP", "British Pound", Decimal("3150")),
    ("EUR", "Euro", Decimal("2700")),
    ("AED", "UAE Dirham", Decimal("680")),
    ("JPY", "Japanese Yen", Decimal("17")),
    ("CNY", "Chinese Yuan", Decimal("345")),
    ("INR", "Indian Rupee", Decimal("30")),
]


class ExchangeRateError(ValueError):
    pass


class ExchangeRateNotFoundError(ExchangeRateError):
    pass


def _base_currency() -> str:
    return currency_service.conversion_options()["base_currency"].upper()


def _get_rate_or_raise(currency_code: str) -> ExchangeRate:
    code = parse_currency_code(currency_code, "currency_code")
    row = db.session.query(ExchangeRate).filter_by(currency_code=code).first()
    if not row:
        raise ExchangeRateNotFoundError(f"Exchange rate for {code} not found")
    return row


def list_exchange_rates() -> list[ExchangeRate]:
    return db.session.query(ExchangeRate).order_by(ExchangeRate.currency_code.asc()).all()


def get_exchange_rate(currency_code: str) -> ExchangeRate:
    return _get_rate_or_raise(currency_code)


def create_exchange_rate(
    *,
    currency_code: Any,
    currency_name: Any,
    rate_to_base: Any,
    actor_user_id: Optional[int] = None,
) -> ExchangeRate:
    """
    Add a currency.

    Raises:
        ValidationError: Bad code, empty name, non-positive rate, or a base
            currency rate other than 1
        ConflictError: Currency code already exists
    """
    code = parse_currency_code(currency_code, "currency_code")
    name = (currency_name or "").strip() if isinstance(currency_name, str) else ""
    if not name:
        raise ValidationError("currency_name is required")
    rate = parse_decimal(rate_to_base, "rate_to_base", positive=True)

    if code == _base_currency() and rate != Decimal(1):
        raise ValidationError(f"{code} is the base currency; its rate is always 1")

    if db.session.query(ExchangeRate).filter_by(currency_code=code).first():
        raise ConflictError(f"Exchange rate for {code} already exists")

    row = ExchangeRate(
        currency_code=code,
        currency_name=name,
        rate_to_base=rate,
        updated_by_user_id=actor_user_id,
    )
    db.session.add(row)
    db.session.commit()
    logger.info("Exchange rate %s created at %s", code, rate)
    return row


def update_exchange_rate(
    currency_code: str,
    *,
    rate_to_base: Any = None,
    currency_name: Any = None,
    actor_user_id: Optional[int] = None,
) -> ExchangeRate:
    """Change rate and/or name. The base currency can only be renamed."""
    row = _get_rate_or_raise(currency_code)

    if rate_to_base is not None:
        rate = parse_decimal(rate_to_base, "rate_to_base", positive=True)
        if row.currency_code == _base_currency() and rate != Decimal(1):
            raise ValidationError(f"{row.currency_code} is the base currency; its rate is always 1")
        row.rate_to_base = rate

    if currency_name is not None:
        if not isinstance(currency_name, str) or not currency_name.strip():
            raise ValidationError("currency_name cannot be empty")
        row.currency_name = currency_name.strip()

    row.updated_at = utcnow()
    row.updated_by_user_id = actor_user_id
    db.session.commit()
    logger.info("Exchange rate %s updated to %s", row.currency_code, row.rate_to_base)
    return row


def delete_exchange_rate(currency_code: str, *, actor_user_id: Optional[int] = None) -> None:
    row = _get_rate_or_raise(currency_code)
    if row.currency_code == _base_currency():
        raise ExchangeRateError(f"Cannot delete the base currency {row.currency_code}")
    db.session.delete(row)
    db.session.commit()
    logger.info("Exchange rate %s deleted by user %s", row.currency_code, actor_user_id)


def seed_default_rates(actor_user_id: Optional[int] = None) -> int:
    """Insert missing default rates. Existing rows are left untouched."""
    existing = {code for (code,) in db.session.query(ExchangeRate.currency_code).all()}
    base = _base_currency()
    created = 0
    for code, name, rate in DEFAULT_EXCHANGE_RATES:
        if code in existing:
            continue
        if code == base:
            rate = Decimal(1)
        db.session.add(ExchangeRate(
            currency_code=code,
            currency_name=name,
            rate_to_base=rate,
            updated_by_user_id=actor_user_id,
        ))
        created += 1
    db.session.commit()
    return created
