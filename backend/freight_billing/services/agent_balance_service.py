# Overview: Agent settlement: nets invoices owed to and from each agent in the agent's base currency.

"""
Agent Settlement

WHY: Agents both bill the company (to_agent: company owes the agent) and
are billed by it (from_agent: agent owes the company). The settlement view
shows one net figure per agent in the currency the agent works in.

SIGN CONVENTION (drives UI colouring downstream):
    net_balance = (paid_from + pending_from) - (paid_to + pending_to)
    positive -> agent owes the company
    negative -> company owes the agent

Only paid and pending invoices are counted; overdue and cancelled ones are
left out of every bucket.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable, Mapping, Optional

from flask import current_app, has_app_context

from ..constants import (
    DIRECTION_FROM_AGENT,
    DIRECTION_TO_AGENT,
    INVOICE_STATUS_PAID,
    INVOICE_STATUS_PENDING,
)
from ..extensions import db
from ..models import AgentSetting, Invoice, User
from ..models.parties import ROLE_AGENT
from ..money import ZERO, decimal_to_str, to_decimal
from . import currency_service


class AgentBalanceError(Exception):
    pass


@dataclass
class AgentBalanceSummary:
    agent_id: Optional[int]
    base_currency: str
    agent_name: Optional[str] = None
    paid_to_agent: Decimal = ZERO
    pending_to_agent: Decimal = ZERO
    paid_from_agent: Decimal = ZERO
    pending_from_agent: Decimal = ZERO
    invoice_count: int = 0

    @property
    def net_balance(self) -> Decimal:
        return (self.paid_from_agent + self.pending_from_agent) - (self.paid_to_agent + self.pending_to_agent)

    def to_dict(self) -> dict:
        return {
            "agent_id": self.agent_id,
            "agent_name": self.agent_name,
            "base_currency": self.base_currency,
            "paid_to_agent": decimal_to_str(self.paid_to_agent),
            "pending_to_agent": decimal_to_str(self.pending_to_agent),
            "paid_from_agent": decimal_to_str(self.paid_from_agent),
            "pending_from_agent": decimal_to_str(self.pending_from_agent),
            "net_balance": decimal_to_str(self.net_balance),
            "invoice_count": self.invoice_count,
        }


def _field(invoice: Any, name: str) -> Any:
    if isinstance(invoice, Mapping):
        return invoice.get(name)
    return getattr(invoice, name, None)


def _rate_or_one(currency_code: str, rate_map: dict, base_currency: str) -> Decimal:
    rate = currency_service.find_rate(currency_code, rate_map, base_currency=base_currency)
    return rate if rate is not None else Decimal(1)


def convert_for_agent(
    amount: Any,
    invoice_currency: str,
    agent_currency: str,
    rate_map: dict,
    *,
    unit_currency: str = currency_service.DEFAULT_BASE_CURRENCY,
) -> Decimal:
    """
    invoice currency -> base unit -> agent currency.

    Missing rates count as 1 on either leg, so an unknown currency passes
    through unconverted.
    """
    value = to_decimal(amount)
    if (invoice_currency or "").upper() == (agent_currency or "").upper():
        return value
    in_base = value * _rate_or_one(invoice_currency, rate_map, unit_currency)
    return in_base / _rate_or_one(agent_currency, rate_map, unit_currency)


def summarize_agent_invoices(
    invoices: Iterable[Any],
    rates: Any,
    base_currency: str,
    *,
    agent_id: Optional[int] = None,
    agent_name: Optional[str] = None,
    default_invoice_currency: str = "USD",
    unit_currency: str = currency_service.DEFAULT_BASE_CURRENCY,
) -> AgentBalanceSummary:
    """
    Bucket one agent's invoices by direction x status.

    Args:
        invoices: Invoice rows or dicts (amount, currency, status,
            invoice_direction, agent_id)
        rates: Exchange rates in any form build_rate_map accepts
        base_currency: The agent's base currency (result currency)
        default_invoice_currency: Used for invoices with no currency
        unit_currency: Currency every rate is expressed against

    Invoices without an agent_id are skipped.
    """
    rate_map = currency_service.build_rate_map(rates, unit_currency)
    summary = AgentBalanceSummary(agent_id=agent_id, agent_name=agent_name, base_currency=base_currency)

    for invoice in invoices:
        if _field(invoice, "agent_id") is None:
            continue
        direction = _field(invoice, "invoice_direction")
        status = _field(invoice, "status")
        if direction not in (DIRECTION_TO_AGENT, DIRECTION_FROM_AGENT):
            continue
        if status not in (INVOICE_STATUS_PAID, INVOICE_STATUS_PENDING):
            continue

        amount = convert_for_agent(
            _field(invoice, "amount"),
            _field(invoice, "currency") or default_invoice_currency,
            base_currency,
            rate_map,
            unit_currency=unit_currency,
        )
        summary.invoice_count += 1

        if direction == DIRECTION_TO_AGENT:
            if status == INVOICE_STATUS_PAID:
                summary.paid_to_agent += amount
            else:
                summary.pending_to_agent += amount
        else:
            if status == INVOICE_STATUS_PAID:
                summary.paid_from_agent += amount
            else:
                summary.pending_from_agent += amount

    return summary


# =============================================================================
# DATABASE
# =============================================================================

def _config(key: str, default: str) -> str:
    if has_app_context():
        return current_app.config.get(key, default)
    return default


def agent_base_currency(agent: User) -> str:
    setting = db.session.query(AgentSetting).filter_by(user_id=agent.id).first()
    if setting and setting.base_currency:
        return setting.base_currency
    return _config("DEFAULT_AGENT_BASE_CURRENCY", "USD")


def _summarize_agent(agent: User, invoices: list, rate_map: dict) -> AgentBalanceSummary:
    return summarize_agent_invoices(
        invoices,
        rate_map,
        agent_base_currency(agent),
        agent_id=agent.id,
        agent_name=agent.display_name,
        default_invoice_currency=_config("DEFAULT_INVOICE_CURRENCY", "USD"),
        unit_currency=currency_service.conversion_options()["base_currency"],
    )


def get_agent_balance(agent_id: int) -> AgentBalanceSummary:
    agent = db.session.get(User, agent_id)
    if not agent or agent.role != ROLE_AGENT:
        raise AgentBalanceError(f"Agent {agent_id} not found")
    invoices = db.session.query(Invoice).filter_by(agent_id=agent_id).all()
    return _summarize_agent(agent, invoices, currency_service.load_rate_map())


def get_all_agent_balances() -> list[AgentBalanceSummary]:
    """One summary per agent, including agents with no invoices yet."""
    agents = (
        db.session.query(User)
        .filter_by(role=ROLE_AGENT)
        .order_by(User.id.asc())
        .all()
    )
    rate_map = currency_service.load_rate_map()

    invoices_by_agent: dict[int, list] = {agent.id: [] for agent in agents}
    for invoice in db.session.query(Invoice).filter(Invoice.agent_id.isnot(None)).all():
        if invoice.agent_id in invoices_by_agent:
            invoices_by_agent[invoice.agent_id].append(invoice)

    return [_summarize_agent(agent, invoices_by_agent[agent.id], rate_map) for agent in agents]
