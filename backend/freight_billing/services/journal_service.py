# Overview: Append-only journal entries written as side effects of invoicing events.

from __future__ import annotations

from decimal import Decimal
from typing import Iterable, Optional

from ..constants import (
    ACCOUNT_AGENT_COST,
    ACCOUNT_AGENT_PAYABLES,
    ACCOUNT_CASH_BASE,
    ACCOUNT_RECEIVABLE,
    ACCOUNT_SHIPPING_REVENUE,
    CASH_ACCOUNT_BY_CURRENCY,
    DIRECTION_TO_AGENT,
)
from ..extensions import db
from ..models import Invoice, JournalEntry, JournalLine, Payment
from ..money import ZERO
from ..time_utils import utctoday
from . import currency_service
from .document_service import next_journal_number

"""
Journal Invariants

- Append-only: entries are never updated or deleted.
- Written inside the same transaction as the event they record.
- Each entry balances: total debits == total credits.
- Not a ledger engine: no balances, periods or postings are derived here.
"""

REFERENCE_INVOICE = "invoice"
REFERENCE_PAYMENT = "payment"


class JournalError(Exception):
    """Raised when a journal entry cannot be written."""
    pass


def default_deposit_account(currency: str) -> str:
    """Cash account for a currency; base-currency cash for anything unmapped."""
    return CASH_ACCOUNT_BY_CURRENCY.get((currency or "").upper(), ACCOUNT_CASH_BASE)


def append_journal_entry(
    *,
    description: str,
    reference_type: str,
    reference_id: int,
    lines: Iterable[tuple[str, Decimal, Decimal]],
    currency: str,
    rates=None,
    actor_user_id: Optional[int] = None,
) -> JournalEntry:
    """
    Append a balanced entry.

    Args:
        lines: (account_code, debit_amount, credit_amount) tuples in `currency`
        rates: rate map used to record base equivalents (loaded when omitted)

    Raises:
        JournalError: If the lines do not balance or are empty
    """
    lines = list(lines)
    if not lines:
        raise JournalError("Journal entry requires at least one line")

    total_debit = sum((debit for _, debit, _ in lines), ZERO)
    total_credit = sum((credit for _, _, credit in lines), ZERO)
    if total_debit != total_credit:
        raise JournalError(f"Unbalanced journal entry: debits {total_debit} != credits {total_credit}")

    options = currency_service.conversion_options()
    rate_map = currency_service.build_rate_map(
        rates if rates is not None else currency_service.load_rate_map(),
        options["base_currency"],
    )
    rate = currency_service.find_rate(currency, rate_map, base_currency=options["base_currency"])
    if rate is None:
        rate = Decimal(1)

    entry = JournalEntry(
        entry_number=next_journal_number(),
        entry_date=utctoday(),
        description=description,
        reference_type=reference_type,
        reference_id=reference_id,
        created_by_user_id=actor_user_id,
    )
    for account_code, debit, credit in lines:
        entry.lines.append(JournalLine(
            account_code=account_code,
            debit_amount=debit,
            credit_amount=credit,
            currency=currency,
            exchange_rate=rate,
            amount_in_base=(debit or credit) * rate,
        ))

    db.session.add(entry)
    db.session.flush()
    return entry


def record_invoice_issued(invoice: Invoice, *, rates=None, actor_user_id: Optional[int] = None) -> JournalEntry:
    """
    Issuance entry for a new invoice.

    - to_agent (company owes agent): Dr Agent cost / Cr Agent payables
    - to_customer, from_agent: Dr Accounts receivable / Cr Shipping revenue
    """
    amount = invoice.amount or ZERO
    if invoice.invoice_direction == DIRECTION_TO_AGENT:
        lines = [
            (ACCOUNT_AGENT_COST, amount, ZERO),
            (ACCOUNT_AGENT_PAYABLES, ZERO, amount),
        ]
    else:
        lines = [
            (ACCOUNT_RECEIVABLE, amount, ZERO),
            (ACCOUNT_SHIPPING_REVENUE, ZERO, amount),
        ]

    return append_journal_entry(
        description=f"Invoice {invoice.invoice_number} issued",
        reference_type=REFERENCE_INVOICE,
        reference_id=invoice.id,
        lines=lines,
        currency=invoice.currency,
        rates=rates,
        actor_user_id=actor_user_id,
    )


def record_payment_settled(
    payment: Payment,
    invoice: Invoice,
    *,
    rates=None,
    actor_user_id: Optional[int] = None,
) -> JournalEntry:
    """
    Settlement entry for a verified payment.

    - outgoing (to_agent invoice): Dr Agent payables / Cr deposit account
    - incoming (everything else): Dr deposit account / Cr Accounts receivable
    """
    deposit_account = payment.deposit_account_code or default_deposit_account(payment.currency)
    amount = payment.amount

    if invoice.invoice_direction == DIRECTION_TO_AGENT:
        lines = [
            (ACCOUNT_AGENT_PAYABLES, amount, ZERO),
            (deposit_account, ZERO, amount),
        ]
        description = f"Payment to agent for invoice {invoice.invoice_number}"
    else:
        lines = [
            (deposit_account, amount, ZERO),
            (ACCOUNT_RECEIVABLE, ZERO, amount),
        ]
        description = f"Payment received for invoice {invoice.invoice_number}"

    return append_journal_entry(
        description=description,
        reference_type=REFERENCE_PAYMENT,
        reference_id=payment.id,
        lines=lines,
        currency=payment.currency,
        rates=rates,
        actor_user_id=actor_user_id,
    )
