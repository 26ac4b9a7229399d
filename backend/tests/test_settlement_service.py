"""
Agent settlement tests.

Verifies:
- Only paid invoices of the agent, in the batch's direction, are offered
- Items are valued in the settlement currency (agent's by default)
- An invoice sits in at most one live settlement
- pending -> approved -> paid, with cancel freeing the invoices
"""

from decimal import Decimal

import pytest

from freight_billing.models import AgentSettlement
from freight_billing.services.invoice_service import create_invoice, update_invoice_status
from freight_billing.services.settlement_service import (
    SettlementError,
    SettlementNotFoundError,
    SettlementStatusError,
    approve_settlement,
    cancel_settlement,
    create_settlement,
    get_settlement_detail,
    list_settlements,
    list_unsettled_invoices,
    mark_settlement_paid,
    settlement_total,
)
from freight_billing.validation import ConflictError, ValidationError


def _agent_invoice(admin, agent, amount, currency="USD", direction="to_agent", paid=True):
    invoice = create_invoice(
        actor_user_id=admin.id,
        line_items=[{"unit_price": amount}],
        invoice_direction=direction,
        agent_id=agent.id,
        currency=currency,
    )
    if paid:
        update_invoice_status(invoice.id, "paid", actor_user_id=admin.id)
    return invoice


@pytest.fixture
def paid_invoices(db_session, rates, admin, agent):
    return [
        _agent_invoice(admin, agent, "100", currency="USD"),
        _agent_invoice(admin, agent, "40", currency="GBP"),
    ]


def _settle(admin, agent, invoices, **kwargs):
    return create_settlement(
        agent_id=agent.id,
        invoice_ids=[invoice.id for invoice in invoices],
        settlement_type=kwargs.pop("settlement_type", "payment_to_agent"),
        actor_user_id=admin.id,
        **kwargs,
    )


# =============================================================================
# SELECTION
# =============================================================================

class TestUnsettledInvoices:

    def test_only_paid_invoices(self, paid_invoices, admin, agent):
        _agent_invoice(admin, agent, "999", paid=False)

        unsettled = list_unsettled_invoices(agent.id)
        assert {invoice.id for invoice in unsettled} == {invoice.id for invoice in paid_invoices}

    def test_type_narrows_direction(self, paid_invoices, admin, agent):
        collection = _agent_invoice(admin, agent, "60", direction="from_agent")

        assert [i.id for i in list_unsettled_invoices(agent.id, "collection_from_agent")] == [collection.id]
        assert len(list_unsettled_invoices(agent.id, "payment_to_agent")) == 2

    def test_other_agents_invoices_hidden(self, paid_invoices, admin, other_agent):
        _agent_invoice(admin, other_agent, "10")
        assert len(list_unsettled_invoices(other_agent.id)) == 1

    def test_settled_invoices_drop_out(self, paid_invoices, admin, agent):
        _settle(admin, agent, paid_invoices[:1])
        assert [i.id for i in list_unsettled_invoices(agent.id)] == [paid_invoices[1].id]

    def test_unknown_agent(self, db_session, admin):
        with pytest.raises(SettlementError):
            list_unsettled_invoices(admin.id)


# =============================================================================
# CREATE
# =============================================================================

class TestCreateSettlement:

    def test_items_valued_in_agent_currency(self, paid_invoices, admin, agent):
        settlement = _settle(admin, agent, paid_invoices, notes="September run")

        assert settlement.currency == "GBP"
        assert settlement.status == "pending"
        assert settlement.settlement_number.startswith("SET-")
        # 100 USD at 2500 TZS is 80 GBP at 3125 TZS
        assert [item.amount for item in settlement.items] == [Decimal("80"), Decimal("40")]
        assert settlement.total_amount == Decimal("120")
        assert settlement.amount_in_base == Decimal("375000")
        assert settlement_total(settlement) == settlement.total_amount

    def test_explicit_currency_and_period(self, paid_invoices, admin, agent):
        settlement = _settle(
            admin, agent, paid_invoices,
            currency="USD", period_start="2026-09-01", period_end="2026-09-30",
        )

        assert settlement.total_amount == Decimal("150")
        assert settlement.period_start.isoformat() == "2026-09-01"
        assert settlement.period_end.isoformat() == "2026-09-30"

    def test_period_defaults_to_invoice_dates(self, paid_invoices, admin, agent):
        settlement = _settle(admin, agent, paid_invoices)
        created = sorted(invoice.created_at.date() for invoice in paid_invoices)
        assert settlement.period_start == created[0]
        assert settlement.period_end == created[-1]

    def test_detail_lists_invoice_numbers(self, paid_invoices, admin, agent):
        settlement = _settle(admin, agent, paid_invoices)

        detail = get_settlement_detail(settlement.id)
        assert detail["total_amount"] == "120"
        assert [item["invoice_number"] for item in detail["items"]] == [i.invoice_number for i in paid_invoices]

    def test_invoice_in_two_settlements_conflicts(self, paid_invoices, admin, agent, db_session):
        _settle(admin, agent, paid_invoices[:1])

        with pytest.raises(ConflictError):
            _settle(admin, agent, paid_invoices)
        assert db_session.query(AgentSettlement).count() == 1

    def test_unpaid_invoice_rejected(self, paid_invoices, admin, agent):
        unpaid = _agent_invoice(admin, agent, "5", paid=False)
        with pytest.raises(SettlementError):
            _settle(admin, agent, [unpaid])

    def test_wrong_direction_rejected(self, paid_invoices, admin, agent):
        with pytest.raises(SettlementError):
            _settle(admin, agent, paid_invoices, settlement_type="collection_from_agent")

    def test_other_agents_invoice_rejected(self, paid_invoices, admin, other_agent):
        with pytest.raises(SettlementError):
            _settle(admin, other_agent, paid_invoices)

    def test_missing_invoice(self, paid_invoices, admin, agent):
        with pytest.raises(SettlementError):
            create_settlement(
                agent_id=agent.id,
                invoice_ids=[paid_invoices[0].id, paid_invoices[1].id + 1000],
                settlement_type="payment_to_agent",
                actor_user_id=admin.id,
            )

    @pytest.mark.parametrize("invoice_ids", [[], None, [1, 1]])
    def test_bad_invoice_list(self, db_session, rates, admin, agent, invoice_ids):
        with pytest.raises(ValidationError):
            create_settlement(
                agent_id=agent.id,
                invoice_ids=invoice_ids,
                settlement_type="payment_to_agent",
                actor_user_id=admin.id,
            )

    def test_bad_type(self, paid_invoices, admin, agent):
        with pytest.raises(ValidationError):
            _settle(admin, agent, paid_invoices, settlement_type="refund")

    def test_period_order(self, paid_invoices, admin, agent):
        with pytest.raises(ValidationError):
            _settle(admin, agent, paid_invoices, period_start="2026-10-01", period_end="2026-09-01")


# =============================================================================
# STATUS
# =============================================================================

class TestSettlementStatus:

    def test_approve_then_pay(self, paid_invoices, admin, second_admin, agent):
        settlement = _settle(admin, agent, paid_invoices)

        approved = approve_settlement(settlement.id, actor_user_id=second_admin.id)
        assert approved.status == "approved"
        assert approved.approved_by_user_id == second_admin.id
        assert approved.approved_at is not None

        paid = mark_settlement_paid(settlement.id, actor_user_id=admin.id, payment_reference="SWIFT-1182")
        assert paid.status == "paid"
        assert paid.paid_at is not None
        assert paid.payment_reference == "SWIFT-1182"

    def test_pending_cannot_be_paid(self, paid_invoices, admin, agent):
        settlement = _settle(admin, agent, paid_invoices)
        with pytest.raises(SettlementStatusError):
            mark_settlement_paid(settlement.id, actor_user_id=admin.id)

    def test_paid_is_final(self, paid_invoices, admin, agent):
        settlement = _settle(admin, agent, paid_invoices)
        approve_settlement(settlement.id, actor_user_id=admin.id)
        mark_settlement_paid(settlement.id, actor_user_id=admin.id)

        with pytest.raises(SettlementStatusError):
            cancel_settlement(settlement.id, actor_user_id=admin.id)

    def test_cancel_frees_invoices(self, paid_invoices, admin, agent):
        settlement = _settle(admin, agent, paid_invoices)

        cancelled = cancel_settlement(settlement.id, actor_user_id=admin.id, reason="wrong batch")
        assert cancelled.status == "cancelled"
        assert "Cancelled: wrong batch" in cancelled.notes
        assert len(list_unsettled_invoices(agent.id)) == 2

        again = _settle(admin, agent, paid_invoices)
        assert again.status == "pending"

    def test_unknown_settlement(self, db_session, admin):
        with pytest.raises(SettlementNotFoundError):
            approve_settlement(424242, actor_user_id=admin.id)


class TestListSettlements:

    def test_filters(self, paid_invoices, admin, agent, other_agent):
        first = _settle(admin, agent, paid_invoices[:1])
        second = _settle(admin, agent, paid_invoices[1:])
        approve_settlement(second.id, actor_user_id=admin.id)

        assert [s.id for s in list_settlements(status="pending")] == [first.id]
        assert len(list_settlements(status="all")) == 2
        assert len(list_settlements(agent_id=agent.id)) == 2
        assert list_settlements(agent_id=other_agent.id) == []
        assert [s.id for s in list_settlements(search=first.settlement_number)] == [first.id]

    def test_bad_status(self, db_session):
        with pytest.raises(ValidationError):
            list_settlements(status="settled")
