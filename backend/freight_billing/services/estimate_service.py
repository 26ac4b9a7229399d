# Overview: Freight estimates and their conversion into invoices.

"""
Estimate Service

WHY: Customers are quoted before they ship. An estimate is weight x rate
per kg plus a handling fee; once accepted it is converted into a normal
invoice so totals, tax and the issuance journal entry all come from the
same invoice path as hand-built invoices.

Conversion writes the invoice and flips the estimate to converted in one
transaction, so an estimate is converted at most once.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Optional

from ..constants import (
    DIRECTION_TO_CUSTOMER,
    ESTIMATE_CONVERTED,
    ESTIMATE_PENDING,
    ESTIMATE_REJECTED,
    UNIT_TYPE_FIXED,
    UNIT_TYPE_KG,
    VALID_ESTIMATE_STATUSES,
    VALID_ORIGIN_REGIONS,
)
from ..extensions import db
from ..models import Customer, Estimate, Invoice
from ..money import decimal_to_str
from ..time_utils import utctoday
from ..validation import ValidationError, parse_choice, parse_currency_code, parse_decimal, parse_int
from .concurrency import lock_for_update, run_in_transaction
from .document_service import next_estimate_number
from .invoice_service import add_invoice

logger = logging.getLogger(__name__)

DEFAULT_DUE_DAYS = 30


class EstimateError(Exception):
    """Raised for estimate operation errors."""
    pass


class EstimateNotFoundError(EstimateError):
    pass


def _get_estimate_locked(estimate_id: int) -> Estimate:
    estimate = lock_for_update(db.session.query(Estimate).filter_by(id=estimate_id)).first()
    if not estimate:
        raise EstimateNotFoundError(f"Estimate {estimate_id} not found")
    return estimate


def create_estimate(
    *,
    actor_user_id: Optional[int],
    customer_id: Any,
    origin_region: Any,
    weight_kg: Any,
    rate_per_kg: Any,
    handling_fee: Any = None,
    currency: Any = None,
    notes: Optional[str] = None,
    valid_days: Any = None,
) -> Estimate:
    """
    Quote a shipment.

    subtotal = weight_kg * rate_per_kg; total = subtotal + handling_fee.
    valid_days sets valid_until relative to today.
    """
    customer_pk = parse_int(customer_id, "customer_id")
    region = parse_choice(origin_region, "origin_region", VALID_ORIGIN_REGIONS)
    weight = parse_decimal(weight_kg, "weight_kg", positive=True)
    rate = parse_decimal(rate_per_kg, "rate_per_kg")
    handling = parse_decimal(handling_fee, "handling_fee", required=False) or 0
    currency_code = parse_currency_code(currency, default="USD")
    days = parse_int(valid_days, "valid_days", required=False)
    if days is not None and days < 0:
        raise ValidationError("valid_days must not be negative")

    def _op() -> Estimate:
        if not db.session.get(Customer, customer_pk):
            raise EstimateError(f"Customer {customer_pk} not found")

        subtotal = weight * rate
        estimate = Estimate(
            estimate_number=next_estimate_number(),
            customer_id=customer_pk,
            origin_region=region,
            weight_kg=weight,
            rate_per_kg=rate,
            handling_fee=handling,
            subtotal=subtotal,
            total=subtotal + handling,
            currency=currency_code,
            status=ESTIMATE_PENDING,
            notes=notes,
            valid_until=utctoday() + timedelta(days=days) if days else None,
            created_by_user_id=actor_user_id,
        )
        db.session.add(estimate)
        db.session.flush()
        return estimate

    estimate = run_in_transaction(_op, description="estimate creation")
    logger.info("Estimate %s created by user %s", estimate.estimate_number, actor_user_id)
    return estimate


def update_estimate_status(estimate_id: int, status: Any, *, actor_user_id: Optional[int]) -> Estimate:
    """Approve or reject (or reopen) an estimate. Converted estimates are frozen."""
    new_status = parse_choice(status, "status", VALID_ESTIMATE_STATUSES)
    if new_status == ESTIMATE_CONVERTED:
        raise ValidationError("Use the convert action to convert an estimate")

    def _op() -> Estimate:
        estimate = _get_estimate_locked(estimate_id)
        if estimate.status == ESTIMATE_CONVERTED:
            raise EstimateError(f"Estimate {estimate.estimate_number} is already converted")
        estimate.status = new_status
        return estimate

    estimate = run_in_transaction(_op, description=f"estimate {estimate_id} status change")
    logger.info("Estimate %s status set to %s by user %s", estimate.estimate_number, new_status, actor_user_id)
    return estimate


def estimate_line_items(estimate: Estimate) -> list[dict]:
    """Invoice line items equivalent to an estimate: a kg freight line and the handling fee."""
    items = [{
        "id": None,
        "description": f"Freight from {estimate.origin_region} ({decimal_to_str(estimate.weight_kg)} kg)",
        "item_type": "freight",
        "quantity": 1,
        "unit_price": estimate.rate_per_kg,
        "unit_type": UNIT_TYPE_KG,
        "weight_kg": estimate.weight_kg,
        "amount": None,
        "product_service_id": None,
    }]
    if estimate.handling_fee:
        items.append({
            "id": None,
            "description": "Handling fee",
            "item_type": "handling",
            "quantity": 1,
            "unit_price": estimate.handling_fee,
            "unit_type": UNIT_TYPE_FIXED,
            "weight_kg": None,
            "amount": None,
            "product_service_id": None,
        })
    return items


def convert_estimate_to_invoice(
    estimate_id: int,
    *,
    actor_user_id: Optional[int],
    due_days: int = DEFAULT_DUE_DAYS,
) -> Invoice:
    """
    Issue a to_customer invoice from an estimate, due in due_days.

    Raises:
        EstimateError: Estimate rejected or already converted
        EstimateNotFoundError: Unknown estimate
    """
    def _op() -> Invoice:
        estimate = _get_estimate_locked(estimate_id)
        if estimate.status == ESTIMATE_CONVERTED:
            raise EstimateError(f"Estimate {estimate.estimate_number} is already converted")
        if estimate.status == ESTIMATE_REJECTED:
            raise EstimateError(f"Estimate {estimate.estimate_number} was rejected")

        invoice = add_invoice(
            actor_user_id=actor_user_id,
            items=estimate_line_items(estimate),
            direction=DIRECTION_TO_CUSTOMER,
            customer_id=estimate.customer_id,
            agent_id=None,
            currency=estimate.currency,
            due_date=utctoday() + timedelta(days=due_days),
            notes=estimate.notes,
        )
        estimate.status = ESTIMATE_CONVERTED
        estimate.invoice_id = invoice.id
        return invoice

    invoice = run_in_transaction(_op, description=f"estimate {estimate_id} conversion")
    logger.info("Estimate %s converted to invoice %s by user %s", estimate_id, invoice.invoice_number, actor_user_id)
    return invoice


def get_estimate(estimate_id: int) -> Estimate:
    estimate = db.session.get(Estimate, estimate_id)
    if not estimate:
        raise EstimateNotFoundError(f"Estimate {estimate_id} not found")
    return estimate


def list_estimates(*, status: Optional[str] = None, customer_id: Optional[int] = None) -> list[Estimate]:
    query = db.session.query(Estimate)
    if status:
        query = query.filter(Estimate.status == parse_choice(status, "status", VALID_ESTIMATE_STATUSES))
    if customer_id:
        query = query.filter(Estimate.customer_id == customer_id)
    return query.order_by(Estimate.created_at.desc(), Estimate.id.desc()).all()
