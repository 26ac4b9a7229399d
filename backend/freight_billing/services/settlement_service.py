# Overview: Agent settlement batches: unsettled-invoice selection and the pending -> approved -> paid flow.

"""
Settlement Service

WHY: Agents are not paid invoice by invoice. Paid agent invoices are
grouped into a settlement batch that an admin approves and then marks
paid once the transfer has gone out (or come in).

DESIGN PRINCIPLES:
- A batch has one type: payment_to_agent settles to_agent invoices,
  collection_from_agent settles from_agent invoices
- Only paid invoices of the batch's agent can be settled
- An invoice sits in at most one live (non-cancelled) batch
- Each item is valued in the batch currency when the batch is created;
  the total is the sum of the items
- Status only moves forward; cancelling frees the invoices again

STATE MACHINE:
    pending  --approve--> approved --pay--> paid (terminal)
    pending  --cancel-->  cancelled (terminal)
    approved --cancel-->  cancelled
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Any, Optional

from ..constants import (
    DIRECTION_FROM_AGENT,
    DIRECTION_TO_AGENT,
    INVOICE_STATUS_PAID,
    SETTLEMENT_APPROVED,
    SETTLEMENT_CANCELLED,
    SETTLEMENT_COLLECTION_FROM_AGENT,
    SETTLEMENT_PAID,
    SETTLEMENT_PAYMENT_TO_AGENT,
    SETTLEMENT_PENDING,
    VALID_SETTLEMENT_STATUSES,
    VALID_SETTLEMENT_TYPES,
)
from ..extensions import db
from ..models import AgentSettlement, AgentSettlementItem, Invoice, User
from ..models.parties import ROLE_AGENT
from ..money import ZERO
from ..time_utils import parse_iso_date, utcnow
from ..validation import ConflictError, ValidationError, parse_choice, parse_currency_code, parse_int
from . import currency_service
from .agent_balance_service import agent_base_currency
from .concurrency import lock_for_update, run_in_transaction
from .document_service import next_settlement_number

logger = logging.getLogger(__name__)

DIRECTION_BY_TYPE = {
    SETTLEMENT_PAYMENT_TO_AGENT: DIRECTION_TO_AGENT,
    SETTLEMENT_COLLECTION_FROM_AGENT: DIRECTION_FROM_AGENT,
}

ALLOWED_TRANSITIONS = {
    SETTLEMENT_PENDING: (SETTLEMENT_APPROVED, SETTLEMENT_CANCELLED),
    SETTLEMENT_APPROVED: (SETTLEMENT_PAID, SETTLEMENT_CANCELLED),
    SETTLEMENT_PAID: (),
    SETTLEMENT_CANCELLED: (),
}


class SettlementError(Exception):
    """Raised for settlement operation errors."""
    pass


class SettlementNotFoundError(SettlementError):
    pass


class SettlementStatusError(SettlementError):
    """Raised when a status transition is not allowed."""
    pass


# =============================================================================
# HELPERS
# =============================================================================

def _get_agent_or_raise(agent_id: int) -> User:
    agent = db.session.get(User, agent_id)
    if not agent or agent.role != ROLE_AGENT:
        raise SettlementError(f"Agent {agent_id} not found")
    return agent


def _get_settlement_locked(settlement_id: int) -> AgentSettlement:
    settlement = lock_for_update(db.session.query(AgentSettlement).filter_by(id=settlement_id)).first()
    if not settlement:
        raise SettlementNotFoundError(f"Settlement {settlement_id} not found")
    return settlement


def _parse_period_date(value: Any, field: str) -> Optional[date]:
    try:
        return parse_iso_date(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an ISO date (YYYY-MM-DD)")


def settled_invoice_ids() -> set[int]:
    """Invoices already inside a live (not cancelled) settlement."""
    rows = (
        db.session.query(AgentSettlementItem.invoice_id)
        .join(AgentSettlement, AgentSettlementItem.settlement_id == AgentSettlement.id)
        .filter(AgentSettlement.status != SETTLEMENT_CANCELLED)
        .all()
    )
    return {invoice_id for (invoice_id,) in rows}


# =============================================================================
# SELECTION
# =============================================================================

def list_unsettled_invoices(agent_id: int, settlement_type: Optional[str] = None) -> list[Invoice]:
    """
    Paid invoices of an agent that no live settlement covers yet, newest
    first. settlement_type narrows them to the matching direction.
    """
    _get_agent_or_raise(agent_id)
    directions = tuple(DIRECTION_BY_TYPE.values())
    if settlement_type:
        directions = (DIRECTION_BY_TYPE[parse_choice(settlement_type, "settlement_type", VALID_SETTLEMENT_TYPES)],)

    invoices = (
        db.session.query(Invoice)
        .filter(
            Invoice.agent_id == agent_id,
            Invoice.status == INVOICE_STATUS_PAID,
            Invoice.invoice_direction.in_(directions),
        )
        .order_by(Invoice.created_at.desc(), Invoice.id.desc())
        .all()
    )
    taken = settled_invoice_ids()
    return [invoice for invoice in invoices if invoice.id not in taken]


# =============================================================================
# CREATE
# =============================================================================

def create_settlement(
    *,
    agent_id: Any,
    invoice_ids: Any,
    settlement_type: Any,
    actor_user_id: Optional[int],
    currency: Any = None,
    period_start: Any = None,
    period_end: Any = None,
    notes: Optional[str] = None,
) -> AgentSettlement:
    """
    Draw up a pending settlement over a set of paid agent invoices.

    Args:
        currency: Settlement currency; defaults to the agent's base currency
        period_start, period_end: Default to the first and last invoice
            creation dates

    Raises:
        ValidationError: Malformed input or an empty invoice list
        SettlementError: Unknown agent or invoice, or an invoice that is
            not a paid invoice of this agent in the batch's direction
        ConflictError: An invoice is already in a live settlement
    """
    agent_pk = parse_int(agent_id, "agent_id")
    kind = parse_choice(settlement_type, "settlement_type", VALID_SETTLEMENT_TYPES)
    if not isinstance(invoice_ids, list) or not invoice_ids:
        raise ValidationError("invoice_ids must be a non-empty list")
    ids = [parse_int(value, f"invoice_ids[{index}]") for index, value in enumerate(invoice_ids)]
    if len(ids) != len(set(ids)):
        raise ValidationError("invoice_ids contains duplicates")
    currency_code = parse_currency_code(currency) if currency else None
    start = _parse_period_date(period_start, "period_start")
    end = _parse_period_date(period_end, "period_end")
    if start and end and start > end:
        raise ValidationError("period_start must not be after period_end")

    def _op() -> AgentSettlement:
        agent = _get_agent_or_raise(agent_pk)
        invoices = lock_for_update(db.session.query(Invoice).filter(Invoice.id.in_(ids))).all()
        by_id = {invoice.id: invoice for invoice in invoices}

        missing = [invoice_id for invoice_id in ids if invoice_id not in by_id]
        if missing:
            raise SettlementError(f"Invoices {missing} not found")

        direction = DIRECTION_BY_TYPE[kind]
        for invoice in invoices:
            if invoice.agent_id != agent.id:
                raise SettlementError(f"Invoice {invoice.invoice_number} does not belong to agent {agent.id}")
            if invoice.invoice_direction != direction:
                raise SettlementError(f"Invoice {invoice.invoice_number} is not a {direction} invoice")
            if invoice.status != INVOICE_STATUS_PAID:
                raise SettlementError(f"Invoice {invoice.invoice_number} is {invoice.status}, not paid")

        already = sorted(set(ids) & settled_invoice_ids())
        if already:
            raise ConflictError(f"Invoices {already} are already in a settlement")

        settlement_currency = currency_code or agent_base_currency(agent)
        rate_map = currency_service.load_rate_map()
        options = currency_service.conversion_options()

        settlement = AgentSettlement(
            settlement_number=next_settlement_number(),
            agent_id=agent.id,
            settlement_type=kind,
            currency=settlement_currency,
            status=SETTLEMENT_PENDING,
            notes=notes,
            created_by_user_id=actor_user_id,
        )
        total = ZERO
        for invoice_id in ids:
            invoice = by_id[invoice_id]
            amount = currency_service.convert(
                invoice.amount, invoice.currency, settlement_currency, rate_map, **options
            )
            settlement.items.append(AgentSettlementItem(
                invoice_id=invoice.id,
                amount=amount,
                currency=settlement_currency,
            ))
            total += amount

        created_dates = [invoice.created_at.date() for invoice in invoices if invoice.created_at]
        settlement.period_start = start or (min(created_dates) if created_dates else None)
        settlement.period_end = end or (max(created_dates) if created_dates else None)
        settlement.total_amount = total
        settlement.amount_in_base = currency_service.to_base(total, settlement_currency, rate_map, **options)

        db.session.add(settlement)
        db.session.flush()
        return settlement

    settlement = run_in_transaction(_op, description=f"settlement for agent {agent_pk}")
    logger.info(
        "Settlement %s created for agent %s over %s invoices by user %s",
        settlement.settlement_number, agent_pk, len(ids), actor_user_id,
    )
    return settlement


# =============================================================================
# STATUS
# =============================================================================

def _transition(
    settlement_id: int,
    new_status: str,
    *,
    actor_user_id: Optional[int],
    payment_reference: Optional[str] = None,
    note: Optional[str] = None,
) -> AgentSettlement:
    def _op() -> AgentSettlement:
        settlement = _get_settlement_locked(settlement_id)
        if new_status not in ALLOWED_TRANSITIONS[settlement.status]:
            raise SettlementStatusError(
                f"Settlement {settlement.settlement_number} is {settlement.status}; cannot move to {new_status}"
            )

        now = utcnow()
        settlement.status = new_status
        if new_status == SETTLEMENT_APPROVED:
            settlement.approved_by_user_id = actor_user_id
            settlement.approved_at = now
        elif new_status == SETTLEMENT_PAID:
            settlement.paid_at = now
            if payment_reference:
                settlement.payment_reference = payment_reference
        if note:
            settlement.notes = f"{settlement.notes}\n{note}" if settlement.notes else note
        settlement.updated_at = now
        return settlement

    settlement = run_in_transaction(_op, description=f"settlement {settlement_id} -> {new_status}")
    logger.info("Settlement %s set to %s by user %s", settlement.settlement_number, new_status, actor_user_id)
    return settlement


def approve_settlement(settlement_id: int, *, actor_user_id: Optional[int]) -> AgentSettlement:
    return _transition(settlement_id, SETTLEMENT_APPROVED, actor_user_id=actor_user_id)


def mark_settlement_paid(
    settlement_id: int,
    *,
    actor_user_id: Optional[int],
    payment_reference: Optional[str] = None,
) -> AgentSettlement:
    """Record that the transfer went out. Only approved settlements can be paid."""
    return _transition(
        settlement_id,
        SETTLEMENT_PAID,
        actor_user_id=actor_user_id,
        payment_reference=payment_reference,
    )


def cancel_settlement(
    settlement_id: int,
    *,
    actor_user_id: Optional[int],
    reason: Optional[str] = None,
) -> AgentSettlement:
    note = f"Cancelled: {reason.strip()}" if reason and reason.strip() else None
    return _transition(settlement_id, SETTLEMENT_CANCELLED, actor_user_id=actor_user_id, note=note)


# =============================================================================
# READS
# =============================================================================

def get_settlement(settlement_id: int) -> AgentSettlement:
    settlement = db.session.get(AgentSettlement, settlement_id)
    if not settlement:
        raise SettlementNotFoundError(f"Settlement {settlement_id} not found")
    return settlement


def get_settlement_detail(settlement_id: int) -> dict:
    settlement = get_settlement(settlement_id)
    detail = settlement.to_dict()
    detail["items"] = [item.to_dict() for item in settlement.items]
    return detail


def list_settlements(
    *,
    status: Optional[str] = None,
    agent_id: Optional[int] = None,
    search: Optional[str] = None,
) -> list[AgentSettlement]:
    query = db.session.query(AgentSettlement)
    if status and status != "all":
        query = query.filter(AgentSettlement.status == parse_choice(status, "status", VALID_SETTLEMENT_STATUSES))
    if agent_id:
        query = query.filter(AgentSettlement.agent_id == agent_id)
    if search:
        query = query.filter(AgentSettlement.settlement_number.ilike(f"%{search.strip()}%"))
    return query.order_by(AgentSettlement.created_at.desc(), AgentSettlement.id.desc()).all()


def settlement_total(settlement: AgentSettlement) -> Decimal:
    """Sum of item amounts; equals total_amount for every batch this service wrote."""
    return sum((item.amount for item in settlement.items), ZERO)
