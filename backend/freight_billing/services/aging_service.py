# Overview: Receivables/payables aging: open invoice balances bucketed by days outstanding.

"""
Aging Reports

WHY: Collections and agent payouts are chased by how long money has been
outstanding. Open invoices are bucketed by days past their due date (or
past creation when they have no due date) and totalled in the base
currency so different invoice currencies add up.

SIDES:
- receivables: to_customer and from_agent invoices (money owed to us)
- payables: to_agent invoices (money we owe agents)

Only pending and overdue invoices with a remaining balance are aged. The
aged figure is the remaining balance, not the invoice total, so partly
paid invoices age on what is still owed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, Optional

from ..constants import (
    DIRECTION_FROM_AGENT,
    DIRECTION_TO_AGENT,
    DIRECTION_TO_CUSTOMER,
    INVOICE_STATUS_OVERDUE,
    INVOICE_STATUS_PENDING,
)
from ..extensions import db
from ..models import Invoice
from ..money import ZERO, decimal_to_str
from ..time_utils import to_iso_date, utctoday
from . import currency_service
from .invoice_service import invoice_balance

RECEIVABLE_DIRECTIONS = (DIRECTION_TO_CUSTOMER, DIRECTION_FROM_AGENT)
PAYABLE_DIRECTIONS = (DIRECTION_TO_AGENT,)
OPEN_STATUSES = (INVOICE_STATUS_PENDING, INVOICE_STATUS_OVERDUE)

# (key, label, min days, max days); the last bucket is open-ended
BUCKETS = (
    ("current", "Current (0-30)", 0, 30),
    ("days_31_60", "31-60 Days", 31, 60),
    ("days_61_90", "61-90 Days", 61, 90),
    ("days_90_plus", "90+ Days", 91, None),
)


@dataclass(frozen=True)
class AgingItem:
    invoice_id: Optional[int]
    reference: str
    days_outstanding: int
    outstanding: Decimal
    currency: str
    amount_in_base: Decimal
    counterparty: Optional[str] = None
    direction: Optional[str] = None
    due_date: Optional[date] = None

    def to_dict(self) -> dict:
        return {
            "invoice_id": self.invoice_id,
            "reference": self.reference,
            "counterparty": self.counterparty,
            "direction": self.direction,
            "due_date": to_iso_date(self.due_date),
            "days_outstanding": self.days_outstanding,
            "outstanding": decimal_to_str(self.outstanding),
            "currency": self.currency,
            "amount_in_base": decimal_to_str(self.amount_in_base),
        }


@dataclass
class AgingBucket:
    key: str
    label: str
    min_days: int
    max_days: Optional[int]
    items: list = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.items)

    @property
    def total(self) -> Decimal:
        return sum((item.amount_in_base for item in self.items), ZERO)

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "label": self.label,
            "min_days": self.min_days,
            "max_days": self.max_days,
            "count": self.count,
            "total": decimal_to_str(self.total),
            "items": [item.to_dict() for item in self.items],
        }


@dataclass
class AgingReport:
    base_currency: str
    buckets: list

    @property
    def total_outstanding(self) -> Decimal:
        return sum((bucket.total for bucket in self.buckets), ZERO)

    @property
    def total_count(self) -> int:
        return sum(bucket.count for bucket in self.buckets)

    def bucket(self, key: str) -> AgingBucket:
        for candidate in self.buckets:
            if candidate.key == key:
                return candidate
        raise KeyError(key)

    def to_dict(self) -> dict:
        return {
            "base_currency": self.base_currency,
            "buckets": [bucket.to_dict() for bucket in self.buckets],
            "total_outstanding": decimal_to_str(self.total_outstanding),
            "total_count": self.total_count,
        }


# =============================================================================
# PURE HELPERS
# =============================================================================

def days_outstanding(due_date: Optional[date], created_at: Optional[datetime], today: date) -> int:
    """Whole days since the due date (else creation), never negative."""
    if due_date is not None:
        reference = due_date
    elif created_at is not None:
        reference = created_at.date() if isinstance(created_at, datetime) else created_at
    else:
        reference = today
    return max(0, (today - reference).days)


def bucket_key(days: int) -> str:
    for key, _label, _low, high in BUCKETS:
        if high is None or days <= high:
            return key
    return BUCKETS[-1][0]


def build_aging_report(items: Iterable[AgingItem], base_currency: str) -> AgingReport:
    """Place items into the fixed buckets, keeping their input order."""
    buckets = [AgingBucket(key=key, label=label, min_days=low, max_days=high) for key, label, low, high in BUCKETS]
    by_key = {bucket.key: bucket for bucket in buckets}
    for item in items:
        by_key[bucket_key(item.days_outstanding)].items.append(item)
    return AgingReport(base_currency=base_currency, buckets=buckets)


# =============================================================================
# DATABASE
# =============================================================================

def _counterparty(invoice: Invoice) -> Optional[str]:
    if invoice.customer is not None:
        return invoice.customer.name
    if invoice.agent is not None:
        return invoice.agent.display_name
    return None


def _aging_items(directions: tuple, today: date) -> list[AgingItem]:
    rate_map = currency_service.load_rate_map()
    options = currency_service.conversion_options()
    invoices = (
        db.session.query(Invoice)
        .filter(
            Invoice.status.in_(OPEN_STATUSES),
            Invoice.invoice_direction.in_(directions),
        )
        .order_by(Invoice.created_at.asc(), Invoice.id.asc())
        .all()
    )

    items = []
    for invoice in invoices:
        remaining = invoice_balance(invoice, rate_map=rate_map, today=today).remaining_balance
        if remaining <= ZERO:
            continue
        items.append(AgingItem(
            invoice_id=invoice.id,
            reference=invoice.invoice_number,
            counterparty=_counterparty(invoice),
            direction=invoice.invoice_direction,
            due_date=invoice.due_date,
            days_outstanding=days_outstanding(invoice.due_date, invoice.created_at, today),
            outstanding=remaining,
            currency=invoice.currency,
            amount_in_base=currency_service.to_base(remaining, invoice.currency, rate_map, **options),
        ))
    return items


def receivables_aging(today: Optional[date] = None) -> AgingReport:
    reference_day = today or utctoday()
    base_currency = currency_service.conversion_options()["base_currency"]
    return build_aging_report(_aging_items(RECEIVABLE_DIRECTIONS, reference_day), base_currency)


def payables_aging(today: Optional[date] = None) -> AgingReport:
    reference_day = today or utctoday()
    base_currency = currency_service.conversion_options()["base_currency"]
    return build_aging_report(_aging_items(PAYABLE_DIRECTIONS, reference_day), base_currency)


def aging_summary(today: Optional[date] = None) -> dict:
    """Both reports plus net position (receivables - payables, base currency)."""
    receivables = receivables_aging(today)
    payables = payables_aging(today)
    return {
        "base_currency": receivables.base_currency,
        "receivables": receivables.to_dict(),
        "payables": payables.to_dict(),
        "net_position": decimal_to_str(receivables.total_outstanding - payables.total_outstanding),
    }
