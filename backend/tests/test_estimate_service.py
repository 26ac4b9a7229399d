"""
Estimate tests.

Verifies:
- Totals are weight x rate plus handling
- Conversion issues a to_customer invoice with freight and handling lines
- An estimate converts once; rejected estimates never convert
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from freight_billing.models import Estimate, Invoice
from freight_billing.services.estimate_service import (
    EstimateError,
    EstimateNotFoundError,
    convert_estimate_to_invoice,
    create_estimate,
    estimate_line_items,
    list_estimates,
    update_estimate_status,
)
from freight_billing.time_utils import utctoday
from freight_billing.validation import ValidationError


@pytest.fixture
def estimate(db_session, rates, employee, customer):
    return create_estimate(
        actor_user_id=employee.id,
        customer_id=customer.id,
        origin_region="china",
        weight_kg="120",
        rate_per_kg="8.5",
        handling_fee="25",
        notes="Guangzhou consolidation",
        valid_days=14,
    )


class TestCreateEstimate:

    def test_totals(self, estimate):
        assert estimate.subtotal == Decimal("1020")
        assert estimate.total == Decimal("1045")
        assert estimate.currency == "USD"
        assert estimate.status == "pending"
        assert estimate.estimate_number.startswith("EST-")
        assert estimate.valid_until == utctoday() + timedelta(days=14)

    def test_without_handling_fee(self, db_session, rates, employee, customer):
        estimate = create_estimate(
            actor_user_id=employee.id,
            customer_id=customer.id,
            origin_region="dubai",
            weight_kg="10",
            rate_per_kg="4",
            currency="GBP",
        )
        assert estimate.total == Decimal("40")
        assert estimate.valid_until is None
        assert len(estimate_line_items(estimate)) == 1

    def test_weight_must_be_positive(self, db_session, rates, employee, customer):
        with pytest.raises(ValidationError):
            create_estimate(
                actor_user_id=employee.id,
                customer_id=customer.id,
                origin_region="china",
                weight_kg="0",
                rate_per_kg="8",
            )

    def test_unknown_region(self, db_session, rates, employee, customer):
        with pytest.raises(ValidationError):
            create_estimate(
                actor_user_id=employee.id,
                customer_id=customer.id,
                origin_region="mars",
                weight_kg="5",
                rate_per_kg="8",
            )

    def test_unknown_customer(self, db_session, rates, employee):
        with pytest.raises(EstimateError):
            create_estimate(
                actor_user_id=employee.id,
                customer_id=999999,
                origin_region="india",
                weight_kg="5",
                rate_per_kg="8",
            )


class TestEstimateStatus:

    def test_approve(self, estimate, employee):
        assert update_estimate_status(estimate.id, "approved", actor_user_id=employee.id).status == "approved"

    def test_converted_status_refused(self, estimate, employee):
        with pytest.raises(ValidationError):
            update_estimate_status(estimate.id, "converted", actor_user_id=employee.id)

    def test_list_by_status(self, estimate, employee):
        update_estimate_status(estimate.id, "rejected", actor_user_id=employee.id)
        assert list_estimates(status="pending") == []
        assert [e.id for e in list_estimates(status="rejected")] == [estimate.id]

    def test_unknown_estimate(self, db_session, employee):
        with pytest.raises(EstimateNotFoundError):
            update_estimate_status(424242, "approved", actor_user_id=employee.id)


class TestConvertEstimate:

    def test_issues_invoice(self, db_session, estimate, admin, customer):
        invoice = convert_estimate_to_invoice(estimate.id, actor_user_id=admin.id)

        assert invoice.invoice_direction == "to_customer"
        assert invoice.customer_id == customer.id
        assert invoice.currency == "USD"
        assert invoice.amount == Decimal("1045")
        assert invoice.due_date == utctoday() + timedelta(days=30)
        assert invoice.notes == "Guangzhou consolidation"

        freight, handling = invoice.items
        assert freight.unit_type == "kg"
        assert freight.weight_kg == Decimal("120")
        assert freight.amount == Decimal("1020")
        assert freight.amount_supplied is False
        assert handling.amount == Decimal("25")

        converted = db_session.get(Estimate, estimate.id)
        assert converted.status == "converted"
        assert converted.invoice_id == invoice.id

    def test_converts_once(self, db_session, estimate, admin):
        convert_estimate_to_invoice(estimate.id, actor_user_id=admin.id)

        with pytest.raises(EstimateError):
            convert_estimate_to_invoice(estimate.id, actor_user_id=admin.id)
        assert db_session.query(Invoice).count() == 1

    def test_converted_estimate_is_frozen(self, estimate, admin):
        convert_estimate_to_invoice(estimate.id, actor_user_id=admin.id)
        with pytest.raises(EstimateError):
            update_estimate_status(estimate.id, "pending", actor_user_id=admin.id)

    def test_rejected_cannot_convert(self, db_session, estimate, admin):
        update_estimate_status(estimate.id, "rejected", actor_user_id=admin.id)

        with pytest.raises(EstimateError):
            convert_estimate_to_invoice(estimate.id, actor_user_id=admin.id)
        assert db_session.query(Invoice).count() == 0

    def test_unknown_estimate(self, db_session, admin):
        with pytest.raises(EstimateNotFoundError):
            convert_estimate_to_invoice(424242, actor_user_id=admin.id)
