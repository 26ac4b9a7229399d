"""
Aging report tests.

Verifies:
- Days outstanding run from the due date, else the creation date
- Bucket boundaries at 30/31, 60/61 and 90/91 days
- Receivables cover to_customer and from_agent, payables cover to_agent
- Partly paid invoices age on their remaining balance, in base currency
- Paid and cancelled invoices drop out
"""

from datetime import date, datetime
from decimal import Decimal

import pytest

from freight_billing.services.aging_service import (
    AgingItem,
    aging_summary,
    bucket_key,
    build_aging_report,
    days_outstanding,
    payables_aging,
    receivables_aging,
)
from freight_billing.services.invoice_service import create_invoice, update_invoice_status
from freight_billing.services.payment_service import record_payment

TODAY = date(2026, 10, 19)


def _item(days, base, reference="INV"):
    return AgingItem(
        invoice_id=None,
        reference=reference,
        days_outstanding=days,
        outstanding=Decimal(base),
        currency="TZS",
        amount_in_base=Decimal(base),
    )


# =============================================================================
# PURE HELPERS
# =============================================================================

class TestDaysOutstanding:

    def test_from_due_date(self):
        assert days_outstanding(date(2026, 9, 19), None, TODAY) == 30

    def test_falls_back_to_created_at(self):
        assert days_outstanding(None, datetime(2026, 10, 9, 14, 30), TODAY) == 10

    def test_not_yet_due_is_zero(self):
        assert days_outstanding(date(2026, 11, 1), None, TODAY) == 0

    def test_no_dates(self):
        assert days_outstanding(None, None, TODAY) == 0


class TestBuckets:

    @pytest.mark.parametrize("days,key", [
        (0, "current"),
        (30, "current"),
        (31, "days_31_60"),
        (60, "days_31_60"),
        (61, "days_61_90"),
        (90, "days_61_90"),
        (91, "days_90_plus"),
        (400, "days_90_plus"),
    ])
    def test_boundaries(self, days, key):
        assert bucket_key(days) == key

    def test_report_totals(self):
        report = build_aging_report(
            [_item(5, "100"), _item(45, "250"), _item(12, "50"), _item(120, "1000")],
            "TZS",
        )

        assert report.bucket("current").count == 2
        assert report.bucket("current").total == Decimal("150")
        assert report.bucket("days_61_90").count == 0
        assert report.total_outstanding == Decimal("1400")
        assert report.total_count == 4
        assert [b["key"] for b in report.to_dict()["buckets"]] == [
            "current", "days_31_60", "days_61_90", "days_90_plus",
        ]

    def test_unknown_bucket(self):
        with pytest.raises(KeyError):
            build_aging_report([], "TZS").bucket("days_120_plus")


# =============================================================================
# DATABASE
# =============================================================================

@pytest.fixture
def ledger(db_session, rates, admin, agent, customer):
    """
    Open customer invoice 45 days late, a customer invoice due next week,
    an agent payable 95 days late and a fully paid customer invoice.
    """
    late = create_invoice(
        actor_user_id=admin.id,
        line_items=[{"unit_price": "100"}],
        customer_id=customer.id,
        currency="USD",
        due_date="2026-09-04",
    )
    upcoming = create_invoice(
        actor_user_id=admin.id,
        line_items=[{"unit_price": "50000"}],
        customer_id=customer.id,
        currency="TZS",
        due_date="2026-10-26",
    )
    payable = create_invoice(
        actor_user_id=admin.id,
        line_items=[{"unit_price": "40"}],
        invoice_direction="to_agent",
        agent_id=agent.id,
        currency="GBP",
        due_date="2026-07-16",
    )
    settled = create_invoice(
        actor_user_id=admin.id,
        line_items=[{"unit_price": "70"}],
        customer_id=customer.id,
        currency="USD",
        due_date="2026-08-01",
    )
    update_invoice_status(settled.id, "paid", actor_user_id=admin.id)
    return {"late": late, "upcoming": upcoming, "payable": payable, "settled": settled}


class TestReceivables:

    def test_buckets_in_base_currency(self, ledger):
        report = receivables_aging(TODAY)

        current = report.bucket("current")
        assert [item.invoice_id for item in current.items] == [ledger["upcoming"].id]
        assert current.total == Decimal("50000")

        late = report.bucket("days_31_60")
        assert late.items[0].days_outstanding == 45
        assert late.items[0].outstanding == Decimal("100")
        assert late.total == Decimal("250000")

        assert report.total_outstanding == Decimal("300000")

    def test_paid_invoice_excluded(self, ledger):
        ids = [item.invoice_id for bucket in receivables_aging(TODAY).buckets for item in bucket.items]
        assert ledger["settled"].id not in ids
        assert ledger["payable"].id not in ids

    def test_partial_payment_reduces_outstanding(self, ledger, admin):
        record_payment(ledger["late"].id, amount="40", payment_method="cash", actor_user_id=admin.id)

        late = receivables_aging(TODAY).bucket("days_31_60")
        assert late.items[0].outstanding == Decimal("60")
        assert late.total == Decimal("150000")

    def test_cancelled_invoice_excluded(self, ledger, admin):
        update_invoice_status(ledger["late"].id, "cancelled", actor_user_id=admin.id)
        assert receivables_aging(TODAY).bucket("days_31_60").count == 0

    def test_empty_ledger(self, db_session, rates):
        report = receivables_aging(TODAY)
        assert report.total_count == 0
        assert report.total_outstanding == Decimal("0")


class TestPayables:

    def test_agent_invoice_over_90_days(self, ledger):
        report = payables_aging(TODAY)

        bucket = report.bucket("days_90_plus")
        assert [item.invoice_id for item in bucket.items] == [ledger["payable"].id]
        assert bucket.items[0].days_outstanding == 95
        assert bucket.total == Decimal("125000")
        assert report.total_count == 1

    def test_summary_net_position(self, ledger):
        summary = aging_summary(TODAY)

        assert summary["base_currency"] == "TZS"
        assert summary["receivables"]["total_outstanding"] == "300000"
        assert summary["payables"]["total_outstanding"] == "125000"
        assert summary["net_position"] == "175000"
