# Overview: Pure balance reconciliation: paid-to-date, remaining balance and display flags.

"""
Balance Reconciliation

WHY: Invoice.amount_paid is a denormalized cache of verified payments and
may lag the payments table. Every reader goes through resolve_total_paid,
which takes the larger of the cache and the live sum instead of trusting
either source alone.

Partial payment is informational only. Overpayment is accepted and simply
clamps the remaining balance to zero.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Iterable, Optional

from ..constants import (
    INVOICE_STATUS_OVERDUE,
    INVOICE_STATUS_PAID,
    INVOICE_STATUS_PENDING,
    VERIFICATION_VERIFIED,
)
from ..money import ZERO, decimal_to_str, to_decimal
from ..time_utils import utctoday
from . import currency_service


def _field(payment: Any, name: str) -> Any:
    if isinstance(payment, dict):
        return payment.get(name)
    return getattr(payment, name, None)


def verified_amounts(
    payments: Iterable[Any],
    *,
    currency: Optional[str] = None,
    rates: Any = None,
    base_currency: str = currency_service.DEFAULT_BASE_CURRENCY,
) -> list[Decimal]:
    """
    Amounts of the payments that count toward paid-to-date.

    When currency is given, payments recorded in another currency (e.g. an
    agent paying a USD invoice in TZS) are converted into it; a missing
    rate passes the amount through 1:1.
    """
    amounts = []
    for payment in payments:
        if _field(payment, "verification_status") != VERIFICATION_VERIFIED:
            continue
        amount = to_decimal(_field(payment, "amount"))
        payment_currency = _field(payment, "currency")
        if currency and payment_currency and payment_currency.upper() != currency.upper():
            amount = currency_service.convert(
                amount, payment_currency, currency, rates, base_currency=base_currency
            )
        amounts.append(amount)
    return amounts


def resolve_total_paid(amount_paid_cache: Any, payment_amounts: Iterable[Any]) -> Decimal:
    """max(cached amount_paid, sum of payment amounts)."""
    live_sum = sum((to_decimal(a) for a in payment_amounts), ZERO)
    return max(to_decimal(amount_paid_cache), live_sum)


def remaining_balance(amount: Any, total_paid: Any) -> Decimal:
    return max(ZERO, to_decimal(amount) - to_decimal(total_paid))


@dataclass(frozen=True)
class BalanceSummary:
    amount: Decimal
    total_paid: Decimal
    remaining_balance: Decimal
    is_paid: bool
    is_partially_paid: bool
    is_overdue: bool

    def to_dict(self) -> dict:
        return {
            "amount": decimal_to_str(self.amount),
            "total_paid": decimal_to_str(self.total_paid),
            "remaining_balance": decimal_to_str(self.remaining_balance),
            "is_paid": self.is_paid,
            "is_partially_paid": self.is_partially_paid,
            "is_overdue": self.is_overdue,
        }


def summarize_balance(
    amount: Any,
    amount_paid: Any,
    payments: Iterable[Any] = (),
    *,
    status: Optional[str] = None,
    due_date: Optional[date] = None,
    today: Optional[date] = None,
    currency: Optional[str] = None,
    rates: Any = None,
    base_currency: str = currency_service.DEFAULT_BASE_CURRENCY,
) -> BalanceSummary:
    """
    Derive the balance figures shown next to an invoice.

    Args:
        amount: Invoice total
        amount_paid: Cached paid-to-date on the invoice
        payments: Payment rows or dicts; only verified ones are summed
        status: Invoice status (paid/overdue short-circuit the flags)
        due_date: Invoice due date, if any
        today: Reference day for overdue detection (defaults to UTC today)
        currency, rates: Invoice currency and rates, to fold in payments
            recorded in another currency
    """
    total = to_decimal(amount)
    total_paid = resolve_total_paid(
        amount_paid,
        verified_amounts(payments, currency=currency, rates=rates, base_currency=base_currency),
    )
    remaining = remaining_balance(total, total_paid)
    reference_day = today or utctoday()

    is_overdue = status == INVOICE_STATUS_OVERDUE or (
        status == INVOICE_STATUS_PENDING
        and due_date is not None
        and due_date < reference_day
        and remaining > ZERO
    )

    return BalanceSummary(
        amount=total,
        total_paid=total_paid,
        remaining_balance=remaining,
        is_paid=status == INVOICE_STATUS_PAID or remaining <= ZERO,
        is_partially_paid=total_paid > ZERO and remaining > ZERO,
        is_overdue=is_overdue,
    )
