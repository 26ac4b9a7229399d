"""
Balance reconciliation tests (no database).

Verifies:
- Paid-to-date is the larger of the cached amount and the verified sum
- Remaining balance never goes below zero
- Only verified payments count
- Payments in another currency are folded into the invoice currency
- Overdue / paid / partially-paid flags
"""

from datetime import date
from decimal import Decimal

from freight_billing.services.balance_service import (
    remaining_balance,
    resolve_total_paid,
    summarize_balance,
    verified_amounts,
)


def _payment(amount, status="verified", currency="USD"):
    return {"amount": Decimal(amount), "verification_status": status, "currency": currency}


class TestResolveTotalPaid:

    def test_cache_larger_than_payments(self):
        assert resolve_total_paid(Decimal("80"), [Decimal("50")]) == Decimal("80")

    def test_payments_larger_than_cache(self):
        assert resolve_total_paid(Decimal("0"), [Decimal("50"), Decimal("30")]) == Decimal("80")

    def test_no_payments_and_no_cache(self):
        assert resolve_total_paid(None, []) == Decimal("0")


class TestRemainingBalance:

    def test_overpayment_clamps_to_zero(self):
        assert remaining_balance(Decimal("100"), Decimal("150")) == Decimal("0")

    def test_partial(self):
        assert remaining_balance(Decimal("100"), Decimal("40")) == Decimal("60")


class TestVerifiedAmounts:

    def test_skips_pending_and_rejected(self):
        payments = [
            _payment("10"),
            _payment("20", status="pending"),
            _payment("30", status="rejected"),
        ]
        assert verified_amounts(payments) == [Decimal("10")]

    def test_converts_base_currency_payment(self):
        payments = [_payment("250000", currency="TZS")]
        amounts = verified_amounts(payments, currency="USD", rates={"USD": Decimal("2500")})
        assert amounts == [Decimal("100")]

    def test_same_currency_untouched(self):
        payments = [_payment("12.5")]
        assert verified_amounts(payments, currency="USD", rates={}) == [Decimal("12.5")]


class TestSummarizeBalance:

    def test_partially_paid(self):
        summary = summarize_balance(Decimal("100"), Decimal("0"), [_payment("40")], status="pending")
        assert summary.total_paid == Decimal("40")
        assert summary.remaining_balance == Decimal("60")
        assert summary.is_partially_paid is True
        assert summary.is_paid is False

    def test_stale_cache_still_counts(self):
        # Cache says 100 but the payment rows were never written
        summary = summarize_balance(Decimal("100"), Decimal("100"), [], status="pending")
        assert summary.total_paid == Decimal("100")
        assert summary.remaining_balance == Decimal("0")
        assert summary.is_paid is True

    def test_overpaid(self):
        summary = summarize_balance(Decimal("100"), Decimal("0"), [_payment("150")], status="pending")
        assert summary.remaining_balance == Decimal("0")
        assert summary.is_paid is True
        assert summary.is_partially_paid is False

    def test_paid_status_wins(self):
        summary = summarize_balance(Decimal("100"), Decimal("0"), [], status="paid")
        assert summary.is_paid is True
        assert summary.remaining_balance == Decimal("100")

    def test_overdue_when_past_due_with_balance(self):
        summary = summarize_balance(
            Decimal("100"), Decimal("0"), [],
            status="pending",
            due_date=date(2026, 1, 31),
            today=date(2026, 2, 1),
        )
        assert summary.is_overdue is True

    def test_not_overdue_on_due_date(self):
        summary = summarize_balance(
            Decimal("100"), Decimal("0"), [],
            status="pending",
            due_date=date(2026, 2, 1),
            today=date(2026, 2, 1),
        )
        assert summary.is_overdue is False

    def test_not_overdue_when_settled(self):
        summary = summarize_balance(
            Decimal("100"), Decimal("0"), [_payment("100")],
            status="pending",
            due_date=date(2026, 1, 1),
            today=date(2026, 2, 1),
        )
        assert summary.is_overdue is False

    def test_overdue_status(self):
        summary = summarize_balance(Decimal("100"), Decimal("0"), [], status="overdue")
        assert summary.is_overdue is True

    def test_base_currency_payment_settles_foreign_invoice(self):
        summary = summarize_balance(
            Decimal("100"), Decimal("0"), [_payment("250000", currency="TZS")],
            status="pending",
            currency="USD",
            rates={"USD": Decimal("2500")},
        )
        assert summary.total_paid == Decimal("100")
        assert summary.is_paid is True

    def test_to_dict(self):
        data = summarize_balance(Decimal("100"), Decimal("25"), [], status="pending").to_dict()
        assert data["remaining_balance"] == "75"
        assert data["is_partially_paid"] is True
