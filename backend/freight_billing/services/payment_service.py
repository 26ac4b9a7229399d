# Overview: Payment ledger: recording, self-reported submissions, verification and cache reconciliation.

"""
Payment Service

WHY: Invoices are settled by one or more payments. Staff record payments
they have already received; agents and customers report payments that an
admin must verify before they count.

DESIGN PRINCIPLES:
- Payments are separate rows (many-to-one with Invoice)
- Partial payments and overpayments are both accepted
- Only verified payments count toward paid-to-date
- Invoice.amount_paid is a cache, rewritten from the verified rows
- Verification is one-way: pending -> verified | rejected

STATE MACHINE:
    pending --verify--> verified   (terminal, invoice marked paid)
    pending --reject--> rejected   (terminal, invoice untouched)
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Optional

from ..constants import (
    INVOICE_STATUS_CANCELLED,
    INVOICE_STATUS_PAID,
    VALID_PAYMENT_METHODS,
    VERIFICATION_PENDING,
    VERIFICATION_REJECTED,
    VERIFICATION_VERIFIED,
)
from ..extensions import db
from ..models import Invoice, Payment, User
from ..money import decimal_to_str
from ..time_utils import parse_iso_datetime, utcnow
from ..validation import ValidationError, parse_choice, parse_currency_code, parse_decimal
from . import balance_service, currency_service, journal_service
from .concurrency import lock_for_update, run_in_transaction
from .invoice_service import InvoiceNotFoundError, can_access_invoice, invoice_balance

logger = logging.getLogger(__name__)


class PaymentError(Exception):
    """Raised for payment operation errors."""
    pass


class PaymentNotFoundError(PaymentError):
    pass


class PaymentVerificationError(PaymentError):
    """Raised when a verification transition is not allowed."""
    pass


class PaymentPermissionError(PaymentError):
    """Raised when the actor is not a party to the invoice."""
    pass


# =============================================================================
# HELPERS
# =============================================================================

def _get_invoice_locked(invoice_id: int) -> Invoice:
    invoice = lock_for_update(db.session.query(Invoice).filter_by(id=invoice_id)).first()
    if not invoice:
        raise InvoiceNotFoundError(f"Invoice {invoice_id} not found")
    return invoice


def _get_payment_locked(payment_id: int) -> Payment:
    payment = lock_for_update(db.session.query(Payment).filter_by(id=payment_id)).first()
    if not payment:
        raise PaymentNotFoundError(f"Payment {payment_id} not found")
    return payment


def _parse_paid_at(value: Any):
    if value is None or value == "":
        return utcnow()
    try:
        return parse_iso_datetime(value)
    except (TypeError, ValueError):
        raise ValidationError("paid_at must be an ISO-8601 date or datetime")


def _append_note(existing: Optional[str], note: str) -> str:
    return f"{existing}\n{note}" if existing else note


def _verified_total(invoice: Invoice, rate_map: dict) -> Decimal:
    """
    Exact sum of verified payments, in invoice currency.

    Write paths store this as the amount_paid cache. Only readers take
    max(cache, live); a write must be able to lower a cache that drifted
    high.
    """
    options = currency_service.conversion_options()
    payments = db.session.query(Payment).filter_by(invoice_id=invoice.id).all()
    amounts = balance_service.verified_amounts(
        payments,
        currency=invoice.currency,
        rates=rate_map,
        base_currency=options["base_currency"],
    )
    return sum(amounts, Decimal(0))


# =============================================================================
# RECORDING
# =============================================================================

def record_payment(
    invoice_id: int,
    *,
    amount: Any,
    payment_method: Any,
    actor_user_id: Optional[int],
    currency: Any = None,
    convert_from: Any = None,
    deposit_account_code: Optional[str] = None,
    paid_at: Any = None,
    reference: Optional[str] = None,
    notes: Optional[str] = None,
    mark_paid: bool = False,
) -> Payment:
    """
    Record a payment staff have already received.

    The payment is stored in the invoice's currency and counts immediately
    (verified). The invoice's amount_paid cache is rewritten to the exact
    verified total; status is left alone unless mark_paid is set.

    Args:
        amount: Positive amount, in the invoice currency
        currency: Must match the invoice currency when given
        convert_from: Source currency of `amount`; converted source -> base
            -> invoice currency with the current rates before storing
        mark_paid: Also set the invoice status to paid

    Raises:
        ValidationError: Bad amount, method or currency code
        PaymentError: Cancelled invoice, or currency mismatch without convert_from
        InvoiceNotFoundError: Unknown invoice
    """
    value = parse_decimal(amount, "amount", positive=True)
    method = parse_choice(payment_method, "payment_method", VALID_PAYMENT_METHODS)
    paid_at_value = _parse_paid_at(paid_at)
    source_currency = parse_currency_code(convert_from, "convert_from") if convert_from else None
    stated_currency = parse_currency_code(currency) if currency else None

    def _op() -> Payment:
        invoice = _get_invoice_locked(invoice_id)
        if invoice.status == INVOICE_STATUS_CANCELLED:
            raise PaymentError("Cannot record a payment against a cancelled invoice")

        rate_map = currency_service.load_rate_map()
        payment_amount = value
        if source_currency and source_currency != invoice.currency:
            payment_amount = currency_service.convert(
                value, source_currency, invoice.currency, rate_map,
                **currency_service.conversion_options(),
            )
        elif stated_currency and stated_currency != invoice.currency:
            raise PaymentError(
                f"Payment currency {stated_currency} does not match invoice currency "
                f"{invoice.currency}; convert the amount first"
            )

        options = currency_service.conversion_options()
        if source_currency == options["base_currency"]:
            base_amount = value
        else:
            base_amount = currency_service.to_base(payment_amount, invoice.currency, rate_map, **options)

        now = utcnow()
        payment = Payment(
            invoice_id=invoice.id,
            amount=payment_amount,
            currency=invoice.currency,
            amount_in_base=base_amount,
            payment_method=method,
            deposit_account_code=deposit_account_code,
            paid_at=paid_at_value,
            reference=reference,
            notes=notes,
            verification_status=VERIFICATION_VERIFIED,
            verified_at=now,
            verified_by_user_id=actor_user_id,
            created_by_user_id=actor_user_id,
        )
        db.session.add(payment)
        db.session.flush()

        invoice.amount_paid = _verified_total(invoice, rate_map)
        if mark_paid and invoice.status != INVOICE_STATUS_PAID:
            invoice.status = INVOICE_STATUS_PAID
            invoice.paid_at = now

        journal_service.record_payment_settled(payment, invoice, rates=rate_map, actor_user_id=actor_user_id)
        return payment

    payment = run_in_transaction(_op, description=f"payment on invoice {invoice_id}")
    logger.info("Payment %s recorded on invoice %s by user %s", payment.id, invoice_id, actor_user_id)
    return payment


def submit_payment(
    invoice_id: int,
    *,
    actor_user_id: Optional[int],
    payment_method: Any,
    reference: Optional[str] = None,
    currency: Any = None,
    paid_at: Any = None,
    notes: Optional[str] = None,
) -> Payment:
    """
    Agent/customer report that an invoice has been paid.

    Creates a pending payment for the full invoice amount. The payer may
    settle in the invoice currency or in the base currency; either way the
    row is stored in the invoice currency, with the base figure the payer
    was quoted frozen in amount_in_base. Nothing changes on the invoice
    until an admin verifies it; a note is appended so the submission shows
    on the invoice.

    Only staff, the invoice's agent and the customer's portal user may
    submit.

    Raises:
        PaymentPermissionError: Actor is not a party to the invoice
        PaymentError: Invoice already paid or cancelled, or an unsupported
            payment currency
    """
    method = parse_choice(payment_method, "payment_method", VALID_PAYMENT_METHODS)
    paid_at_value = _parse_paid_at(paid_at)
    pay_currency = parse_currency_code(currency) if currency else None

    def _op() -> Payment:
        invoice = _get_invoice_locked(invoice_id)
        actor = db.session.get(User, actor_user_id) if actor_user_id is not None else None
        if not can_access_invoice(actor, invoice):
            raise PaymentPermissionError(f"User {actor_user_id} cannot submit payments on invoice {invoice_id}")
        if invoice.status in (INVOICE_STATUS_PAID, INVOICE_STATUS_CANCELLED):
            raise PaymentError(f"Invoice {invoice.invoice_number} is {invoice.status}")

        options = currency_service.conversion_options()
        base_currency = options["base_currency"]
        if pay_currency and pay_currency not in (invoice.currency, base_currency):
            raise PaymentError(
                f"Payments can be submitted in {invoice.currency} or {base_currency}, not {pay_currency}"
            )

        base_amount = invoice.amount_in_base
        if base_amount is None:
            base_amount = currency_service.to_base(
                invoice.amount, invoice.currency, currency_service.load_rate_map(), **options
            )

        payment_notes = notes
        deposit_account = None
        if pay_currency == base_currency and invoice.currency != base_currency:
            payment_notes = _append_note(notes, f"Paid {decimal_to_str(base_amount)} {base_currency}")
            deposit_account = journal_service.default_deposit_account(base_currency)

        payment = Payment(
            invoice_id=invoice.id,
            amount=invoice.amount,
            currency=invoice.currency,
            amount_in_base=base_amount,
            payment_method=method,
            deposit_account_code=deposit_account,
            paid_at=paid_at_value,
            reference=reference,
            notes=payment_notes,
            verification_status=VERIFICATION_PENDING,
            created_by_user_id=actor_user_id,
        )
        db.session.add(payment)
        db.session.flush()

        ref = f" (ref {reference})" if reference else ""
        invoice.notes = _append_note(
            invoice.notes,
            f"Payment submitted {paid_at_value.date().isoformat()} via {method}{ref}; awaiting verification",
        )
        return payment

    payment = run_in_transaction(_op, description=f"payment submission on invoice {invoice_id}")
    logger.info("Payment %s submitted on invoice %s by user %s", payment.id, invoice_id, actor_user_id)
    return payment

    payment = run_in_transaction(_op, description=f"payment submission on invoice {invoice_id}")
    logger.info("Payment %s submitted on invoice %s by user %s", payment.id, invoice_id, actor_user_id)
    return payment


# =============================================================================
# VERIFICATION
# =============================================================================

def verify_payment(
    payment_id: int,
    *,
    actor_user_id: int,
    deposit_account_code: Optional[str] = None,
    notes: Optional[str] = None,
) -> Payment:
    """
    Approve a pending payment.

    Effects (one transaction):
    - payment: verified, verified_at/verified_by stamped
    - invoice: status paid, paid_at set, amount_paid rewritten to the
      exact verified total, amount_in_base taken from the payment
    - journal: settlement entry (outgoing for to_agent invoices)

    Raises:
        PaymentVerificationError: Payment is not pending, or the actor
            submitted it
        PaymentNotFoundError: Unknown payment
    """
    def _op() -> Payment:
        payment = _get_payment_locked(payment_id)
        if payment.verification_status != VERIFICATION_PENDING:
            raise PaymentVerificationError(
                f"Payment {payment_id} is already {payment.verification_status}"
            )
        if actor_user_id is not None and payment.created_by_user_id == actor_user_id:
            raise PaymentVerificationError("You cannot verify a payment you submitted")

        invoice = _get_invoice_locked(payment.invoice_id)
        rate_map = currency_service.load_rate_map()
        options = currency_service.conversion_options()

        payment.verification_status = VERIFICATION_VERIFIED
        payment.verified_at = utcnow()
        payment.verified_by_user_id = actor_user_id
        if deposit_account_code:
            payment.deposit_account_code = deposit_account_code
        if notes:
            payment.notes = _append_note(payment.notes, notes)
        db.session.flush()

        invoice.status = INVOICE_STATUS_PAID
        invoice.paid_at = payment.verified_at
        invoice.amount_paid = _verified_total(invoice, rate_map)
        if payment.amount_in_base is not None:
            invoice.amount_in_base = payment.amount_in_base
        else:
            invoice.amount_in_base = currency_service.to_base(payment.amount, payment.currency, rate_map, **options)

        journal_service.record_payment_settled(payment, invoice, rates=rate_map, actor_user_id=actor_user_id)
        return payment

    payment = run_in_transaction(_op, description=f"payment {payment_id} verification")
    logger.info("Payment %s verified by user %s", payment_id, actor_user_id)
    return payment


def reject_payment(payment_id: int, *, actor_user_id: int, reason: Optional[str]) -> Payment:
    """
    Reject a pending payment. The invoice is not modified.

    Raises:
        PaymentVerificationError: Payment is not pending
        ValidationError: No reason given
    """
    if not reason or not str(reason).strip():
        raise ValidationError("A rejection reason is required")

    def _op() -> Payment:
        payment = _get_payment_locked(payment_id)
        if payment.verification_status != VERIFICATION_PENDING:
            raise PaymentVerificationError(
                f"Payment {payment_id} is already {payment.verification_status}"
            )
        payment.verification_status = VERIFICATION_REJECTED
        payment.verified_at = utcnow()
        payment.verified_by_user_id = actor_user_id
        payment.rejection_reason = str(reason).strip()
        return payment

    payment = run_in_transaction(_op, description=f"payment {payment_id} rejection")
    logger.info("Payment %s rejected by user %s: %s", payment_id, actor_user_id, payment.rejection_reason)
    return payment


def list_pending_verifications() -> list[Payment]:
    return (
        db.session.query(Payment)
        .filter_by(verification_status=VERIFICATION_PENDING)
        .order_by(Payment.created_at.asc(), Payment.id.asc())
        .all()
    )


# =============================================================================
# RECONCILIATION / QUERIES
# =============================================================================

def reconcile_amount_paid(invoice_id: int) -> Decimal:
    """
    Rewrite the amount_paid cache from the live verified payments.

    Unlike reads, this does not keep a larger stale cache: the cache becomes
    exactly the verified sum (in invoice currency), as after any write.
    """
    def _op() -> Decimal:
        invoice = _get_invoice_locked(invoice_id)
        invoice.amount_paid = _verified_total(invoice, currency_service.load_rate_map())
        return invoice.amount_paid

    return run_in_transaction(_op, description=f"invoice {invoice_id} paid-amount reconciliation")


def reconcile_all_amount_paid() -> int:
    """Reconcile every invoice; returns how many caches changed."""
    changed = 0
    for (invoice_id, cached) in db.session.query(Invoice.id, Invoice.amount_paid).all():
        if reconcile_amount_paid(invoice_id) != (cached or Decimal(0)):
            changed += 1
    return changed


def get_invoice_payments(invoice_id: int, include_rejected: bool = True) -> list[Payment]:
    query = db.session.query(Payment).filter_by(invoice_id=invoice_id)
    if not include_rejected:
        query = query.filter(Payment.verification_status != VERIFICATION_REJECTED)
    return query.order_by(Payment.paid_at.asc(), Payment.id.asc()).all()


def get_payment_summary(invoice_id: int) -> dict:
    """
    Paid-to-date summary for an invoice.

    Returns:
        Balance figures plus counts of payments by verification status
    """
    invoice = db.session.get(Invoice, invoice_id)
    if not invoice:
        raise InvoiceNotFoundError(f"Invoice {invoice_id} not found")

    payments = get_invoice_payments(invoice_id)
    balance = invoice_balance(invoice, payments)

    summary = {
        "invoice_id": invoice.id,
        "invoice_number": invoice.invoice_number,
        "currency": invoice.currency,
        "status": invoice.status,
        "payment_count": len(payments),
        "pending_count": sum(1 for p in payments if p.verification_status == VERIFICATION_PENDING),
        "rejected_count": sum(1 for p in payments if p.verification_status == VERIFICATION_REJECTED),
    }
    summary.update(balance.to_dict())
    return summary
