"""
Invoice service tests.

Verifies:
- Creation computes totals, allocates sequential numbers and writes the
  issuance journal entry
- Line-item edits reconcile the submitted set (update / create / delete)
- An unknown line-item id aborts the whole edit
- Status changes stamp and clear paid_at
- Overdue sweep
- kg items keep a supplied amount, zero included
- Who may see an invoice
"""

from datetime import date
from decimal import Decimal

import pytest

from freight_billing.models import Invoice, InvoiceLineItem, JournalEntry, User
from freight_billing.services.invoice_service import (
    InvoiceError,
    InvoiceNotFoundError,
    can_access_invoice,
    create_invoice,
    get_invoice_detail,
    list_invoices,
    mark_overdue_invoices,
    update_invoice,
    update_invoice_status,
)
from freight_billing.time_utils import utctoday
from freight_billing.validation import ValidationError


FREIGHT_ITEMS = [
    {"description": "Sea freight", "item_type": "freight", "quantity": 2, "unit_price": "500"},
    {"description": "Handling", "item_type": "handling", "unit_price": "10", "unit_type": "percent"},
]


def _create(admin, customer, **overrides):
    kwargs = {
        "actor_user_id": admin.id,
        "line_items": FREIGHT_ITEMS,
        "customer_id": customer.id,
        "currency": "USD",
        "discount": "10%",
        "tax_rate": "18",
    }
    kwargs.update(overrides)
    return create_invoice(**kwargs)


# =============================================================================
# CREATE
# =============================================================================


class TestCreateInvoice:

    def test_totals(self, db_session, rates, admin, customer):
        invoice = _create(admin, customer)

        assert invoice.subtotal == Decimal("1100")
        assert invoice.discount_amount == Decimal("110")
        assert invoice.tax_amount == Decimal("178.2")
        assert invoice.amount == Decimal("1168.2")
        assert invoice.amount_in_base == Decimal("2920500")
        assert invoice.status == "pending"
        assert invoice.amount_paid == Decimal("0")

    def test_items_keep_order_and_amounts(self, db_session, rates, admin, customer):
        invoice = _create(admin, customer)

        items = list(invoice.items)
        assert [item.position for item in items] == [0, 1]
        assert [item.amount for item in items] == [Decimal("1000"), Decimal("100")]
        assert all(item.currency == "USD" for item in items)

    def test_sequential_numbers(self, db_session, rates, admin, customer):
        year = utctoday().year
        first = _create(admin, customer)
        second = _create(admin, customer)

        assert first.invoice_number == f"INV-{year}-0001"
        assert second.invoice_number == f"INV-{year}-0002"

    def test_issuance_journal_entry(self, db_session, rates, admin, customer):
        invoice = _create(admin, customer)

        entry = db_session.query(JournalEntry).filter_by(reference_type="invoice", reference_id=invoice.id).one()
        lines = {line.account_code: line for line in entry.lines}
        assert lines["1210"].debit_amount == Decimal("1168.2")
        assert lines["4110"].credit_amount == Decimal("1168.2")
        assert lines["1210"].amount_in_base == Decimal("2920500")
        assert entry.created_by_user_id == admin.id

    def test_to_agent_journal_accounts(self, db_session, rates, admin, agent):
        invoice = create_invoice(
            actor_user_id=admin.id,
            line_items=[{"quantity": 1, "unit_price": "300"}],
            invoice_direction="to_agent",
            agent_id=agent.id,
            currency="GBP",
        )

        entry = db_session.query(JournalEntry).filter_by(reference_type="invoice", reference_id=invoice.id).one()
        codes = sorted(line.account_code for line in entry.lines)
        assert codes == ["2120", "5200"]

    def test_kg_item_keeps_supplied_amount(self, db_session, rates, admin, customer):
        invoice = _create(
            admin, customer,
            line_items=[{"unit_type": "kg", "weight_kg": "120", "unit_price": "2", "amount": "275.50"}],
            discount=None,
            tax_rate=None,
        )
        assert invoice.amount == Decimal("275.50")

    def test_kg_item_zero_amount_is_kept(self, db_session, rates, admin, customer):
        invoice = _create(
            admin, customer,
            line_items=[{"unit_type": "kg", "weight_kg": "10", "unit_price": "5", "amount": "0"}],
            discount=None,
            tax_rate=None,
        )
        item = invoice.items[0]
        assert item.amount_supplied is True
        assert item.amount == Decimal("0")
        assert invoice.amount == Decimal("0")

    def test_kg_item_without_amount_priced_by_weight(self, db_session, rates, admin, customer):
        invoice = _create(
            admin, customer,
            line_items=[{"unit_type": "kg", "weight_kg": "10", "unit_price": "5"}],
            discount=None,
            tax_rate=None,
        )
        assert invoice.items[0].amount_supplied is False
        assert invoice.amount == Decimal("50")

    def test_base_currency_invoice(self, db_session, rates, admin, customer):
        invoice = _create(admin, customer, currency="TZS", discount=None, tax_rate=None)
        assert invoice.amount_in_base == invoice.amount

    def test_customer_required_for_to_customer(self, db_session, rates, admin):
        with pytest.raises(ValidationError):
            create_invoice(actor_user_id=admin.id, line_items=FREIGHT_ITEMS, currency="USD")

    def test_agent_must_have_agent_role(self, db_session, rates, admin):
        with pytest.raises(InvoiceError):
            create_invoice(
                actor_user_id=admin.id,
                line_items=FREIGHT_ITEMS,
                invoice_direction="from_agent",
                agent_id=admin.id,
            )
        assert db_session.query(Invoice).count() == 0

    def test_tax_rate_over_100_rejected(self, db_session, rates, admin, customer):
        with pytest.raises(ValidationError):
            _create(admin, customer, tax_rate="150")

    def test_new_invoice_cannot_reference_item_ids(self, db_session, rates, admin, customer):
        with pytest.raises(ValidationError):
            _create(admin, customer, line_items=[{"id": 1, "unit_price": "10"}])

    def test_invalid_unit_price_rejected(self, db_session, rates, admin, customer):
        with pytest.raises(ValidationError):
            _create(admin, customer, line_items=[{"unit_price": "ten"}])


# =============================================================================
# UPDATE
# =============================================================================


class TestLineItemReconciliation:

    def test_update_create_delete(self, db_session, rates, admin, customer):
        invoice = _create(
            admin, customer,
            line_items=[
                {"description": "A", "unit_price": "100"},
                {"description": "B", "unit_price": "10", "unit_type": "percent"},
                {"description": "C", "unit_price": "50"},
            ],
            discount=None,
            tax_rate=None,
        )
        item_a, item_b, item_c = invoice.items

        update_invoice(
            invoice.id,
            actor_user_id=admin.id,
            line_items=[
                {"id": item_c.id, "description": "C", "unit_price": "50"},
                {"id": item_a.id, "description": "A", "unit_price": "200"},
                {"description": "D", "unit_price": "10", "unit_type": "percent"},
            ],
        )

        invoice = db_session.get(Invoice, invoice.id)
        items = list(invoice.items)
        assert [item.description for item in items] == ["C", "A", "D"]
        assert items[0].id == item_c.id
        assert items[1].id == item_a.id
        assert [item.amount for item in items] == [Decimal("50"), Decimal("200"), Decimal("25")]
        assert invoice.subtotal == Decimal("275")
        assert db_session.query(InvoiceLineItem).filter_by(id=item_b.id).first() is None

    def test_unknown_item_id_rolls_back(self, db_session, rates, admin, customer):
        invoice = _create(admin, customer)
        other = _create(admin, customer)
        foreign_item_id = other.items[0].id
        original_ids = [item.id for item in invoice.items]

        with pytest.raises(InvoiceError):
            update_invoice(
                invoice.id,
                actor_user_id=admin.id,
                notes="should not stick",
                line_items=[{"id": foreign_item_id, "unit_price": "1"}],
            )

        db_session.expire_all()
        invoice = db_session.get(Invoice, invoice.id)
        assert [item.id for item in invoice.items] == original_ids
        assert invoice.notes is None
        assert invoice.amount == Decimal("1168.2")

    def test_header_edit_recomputes_totals(self, db_session, rates, admin, customer):
        invoice = _create(admin, customer)

        update_invoice(invoice.id, actor_user_id=admin.id, discount="$100", tax_rate="0")

        invoice = db_session.get(Invoice, invoice.id)
        assert invoice.discount == "$100"
        assert invoice.amount == Decimal("1000")
        assert len(invoice.items) == 2

    def test_header_edit_keeps_zero_kg_amount(self, db_session, rates, admin, customer):
        invoice = _create(
            admin, customer,
            line_items=[
                {"unit_type": "kg", "weight_kg": "10", "unit_price": "5", "amount": "0"},
                {"unit_type": "kg", "weight_kg": "4", "unit_price": "5"},
            ],
            discount=None,
            tax_rate=None,
        )

        updated = update_invoice(invoice.id, actor_user_id=admin.id, tax_rate="10")

        assert [item.amount for item in updated.items] == [Decimal("0"), Decimal("20")]
        assert updated.amount == Decimal("22")

    def test_currency_change_updates_base(self, db_session, rates, admin, customer):
        invoice = _create(admin, customer, discount=None, tax_rate=None)

        update_invoice(invoice.id, actor_user_id=admin.id, currency="GBP")

        invoice = db_session.get(Invoice, invoice.id)
        assert invoice.amount_in_base == Decimal("1100") * Decimal("3125")
        assert all(item.currency == "GBP" for item in invoice.items)

    def test_edit_does_not_touch_status(self, db_session, rates, admin, customer):
        invoice = _create(admin, customer)
        update_invoice_status(invoice.id, "paid", actor_user_id=admin.id)

        update_invoice(invoice.id, actor_user_id=admin.id, notes="Re-issued")

        invoice = db_session.get(Invoice, invoice.id)
        assert invoice.status == "paid"
        assert invoice.paid_at is not None

    def test_unknown_field_rejected(self, db_session, rates, admin, customer):
        invoice = _create(admin, customer)
        with pytest.raises(ValidationError):
            update_invoice(invoice.id, actor_user_id=admin.id, amount_paid="5")

    def test_missing_invoice(self, db_session, rates, admin):
        with pytest.raises(InvoiceNotFoundError):
            update_invoice(999999, actor_user_id=admin.id, notes="x")


# =============================================================================
# STATUS
# =============================================================================


class TestStatus:

    def test_paid_stamps_and_clears_paid_at(self, db_session, rates, admin, customer):
        invoice = _create(admin, customer)

        invoice = update_invoice_status(invoice.id, "paid", actor_user_id=admin.id)
        assert invoice.paid_at is not None
        assert invoice.amount_paid == Decimal("0")

        invoice = update_invoice_status(invoice.id, "pending", actor_user_id=admin.id)
        assert invoice.paid_at is None

    def test_invalid_status(self, db_session, rates, admin, customer):
        invoice = _create(admin, customer)
        with pytest.raises(ValidationError):
            update_invoice_status(invoice.id, "archived", actor_user_id=admin.id)

    def test_mark_overdue(self, db_session, rates, admin, customer):
        late = _create(admin, customer, due_date="2026-01-31")
        no_due_date = _create(admin, customer)

        changed = mark_overdue_invoices(today=date(2026, 2, 1))

        assert changed == 1
        assert db_session.get(Invoice, late.id).status == "overdue"
        assert db_session.get(Invoice, no_due_date.id).status == "pending"


# =============================================================================
# READS
# =============================================================================


class TestReads:

    def test_detail(self, db_session, rates, admin, customer):
        invoice = _create(admin, customer)

        detail = get_invoice_detail(invoice.id)

        assert detail["invoice_number"] == invoice.invoice_number
        assert [item["description"] for item in detail["items"]] == ["Sea freight", "Handling"]
        assert detail["totals"]["total"] == "1168.2"
        assert detail["totals"]["base_total"] == "2920500"
        assert detail["balance"]["remaining_balance"] == "1168.2"
        assert detail["balance"]["is_paid"] is False
        assert detail["payments"] == []

    def test_detail_base_currency_has_no_base_totals(self, db_session, rates, admin, customer):
        invoice = _create(admin, customer, currency="TZS")
        assert get_invoice_detail(invoice.id)["totals"]["base_total"] is None

    def test_search_by_customer_name(self, db_session, rates, admin, customer, agent):
        _create(admin, customer)
        create_invoice(
            actor_user_id=admin.id,
            line_items=[{"unit_price": "10"}],
            invoice_direction="from_agent",
            agent_id=agent.id,
        )

        found = list_invoices(search="mwanza")
        assert len(found) == 1
        assert found[0].customer_id == customer.id

        assert len(list_invoices(direction="from_agent")) == 1
        assert len(list_invoices(agent_id=agent.id)) == 1

    def test_list_for_customer_portal_user(self, db_session, rates, admin, customer, portal_user, agent):
        _create(admin, customer)
        create_invoice(
            actor_user_id=admin.id,
            line_items=[{"unit_price": "10"}],
            invoice_direction="from_agent",
            agent_id=agent.id,
        )

        found = list_invoices(customer_user_id=portal_user.id)
        assert [invoice.customer_id for invoice in found] == [customer.id]
        assert list_invoices(customer_user_id=portal_user.id, search="mwanza") == found


class TestAccess:

    def test_staff_see_everything(self, db_session, rates, admin, employee, customer):
        invoice = _create(admin, customer)
        assert can_access_invoice(admin, invoice)
        assert can_access_invoice(employee, invoice)

    def test_agent_sees_only_own(self, db_session, rates, admin, customer, agent, other_agent):
        customer_invoice = _create(admin, customer)
        agent_invoice = create_invoice(
            actor_user_id=admin.id,
            line_items=[{"unit_price": "10"}],
            invoice_direction="to_agent",
            agent_id=agent.id,
        )

        assert can_access_invoice(agent, agent_invoice)
        assert not can_access_invoice(other_agent, agent_invoice)
        assert not can_access_invoice(agent, customer_invoice)

    def test_customer_portal_user(self, db_session, rates, admin, customer, portal_user):
        invoice = _create(admin, customer)
        stranger = User(username="someone", role="customer")
        db_session.add(stranger)
        db_session.commit()

        assert can_access_invoice(portal_user, invoice)
        assert not can_access_invoice(stranger, invoice)
        assert not can_access_invoice(None, invoice)
