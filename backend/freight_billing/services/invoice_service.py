# Overview: Invoice persistence: creation, line-item set reconciliation, status changes and reads.

"""
Invoice Service

WHY: An invoice and its line items are edited together. The form submits
the whole ordered item list; the service works out which persisted items
were removed, which were edited and which are new, recomputes the totals
and writes everything in one transaction.

DESIGN PRINCIPLES:
- Totals always come from invoice_calculator; nothing here re-implements
  the fold
- Line-item edits are a set reconciliation on item ids, all-or-nothing
- Status is changed by its own action; editing never flips status
- Every mutation names its actor explicitly
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Iterable, Optional

from flask import current_app, has_app_context
from sqlalchemy import or_

from ..constants import (
    DIRECTION_FROM_AGENT,
    DIRECTION_TO_AGENT,
    DIRECTION_TO_CUSTOMER,
    INVOICE_STATUS_OVERDUE,
    INVOICE_STATUS_PAID,
    INVOICE_STATUS_PENDING,
    UNIT_TYPE_FIXED,
    UNIT_TYPE_KG,
    VALID_DIRECTIONS,
    VALID_INVOICE_STATUSES,
    VALID_ITEM_TYPES,
    VALID_UNIT_TYPES,
)
from ..extensions import db
from ..models import Customer, Invoice, InvoiceLineItem, Payment, User
from ..models.parties import ROLE_ADMIN, ROLE_AGENT, ROLE_CUSTOMER, ROLE_EMPLOYEE
from ..time_utils import parse_iso_date, utcnow, utctoday
from ..validation import (
    ValidationError,
    parse_choice,
    parse_currency_code,
    parse_decimal,
    parse_int,
)
from . import balance_service, currency_service, invoice_calculator, journal_service
from .concurrency import lock_for_update, run_in_transaction
from .document_service import next_invoice_number

logger = logging.getLogger(__name__)

AGENT_DIRECTIONS = (DIRECTION_TO_AGENT, DIRECTION_FROM_AGENT)
STAFF_ROLES = (ROLE_ADMIN, ROLE_EMPLOYEE)

EDITABLE_FIELDS = (
    "customer_id",
    "agent_id",
    "invoice_direction",
    "currency",
    "discount",
    "tax_rate",
    "due_date",
    "notes",
)


class InvoiceError(Exception):
    """Raised for invoice operation errors."""
    pass


class InvoiceNotFoundError(InvoiceError):
    pass


# =============================================================================
# HELPERS
# =============================================================================

def _default_currency() -> str:
    if has_app_context():
        return current_app.config.get("DEFAULT_INVOICE_CURRENCY", "USD")
    return "USD"


def _get_invoice_or_raise(invoice_id: int, *, lock: bool = False) -> Invoice:
    query = db.session.query(Invoice).filter_by(id=invoice_id)
    if lock:
        query = lock_for_update(query)
    invoice = query.first()
    if not invoice:
        raise InvoiceNotFoundError(f"Invoice {invoice_id} not found")
    return invoice


def can_access_invoice(user: Optional[User], invoice: Invoice) -> bool:
    """
    Staff see every invoice. An agent sees invoices that name them as the
    agent; a customer portal user sees invoices billed to their customer.
    """
    if user is None or not user.is_active:
        return False
    if user.role in STAFF_ROLES:
        return True
    if user.role == ROLE_AGENT:
        return invoice.agent_id == user.id
    if user.role == ROLE_CUSTOMER:
        return invoice.customer is not None and invoice.customer.user_id == user.id
    return False


def invoice_balance(
    invoice: Invoice,
    payments: Optional[Iterable[Payment]] = None,
    *,
    rate_map: Optional[dict] = None,
    today: Optional[date] = None,
) -> balance_service.BalanceSummary:
    """Reconciled balance of an invoice against its (verified) payments."""
    options = currency_service.conversion_options()
    return balance_service.summarize_balance(
        invoice.amount,
        invoice.amount_paid,
        invoice.payments if payments is None else payments,
        status=invoice.status,
        due_date=invoice.due_date,
        today=today,
        currency=invoice.currency,
        rates=rate_map if rate_map is not None else currency_service.load_rate_map(),
        base_currency=options["base_currency"],
    )


def _validate_parties(direction: str, customer_id: Optional[int], agent_id: Optional[int]) -> None:
    """to_customer needs a customer; agent directions need a user with role agent."""
    if direction in AGENT_DIRECTIONS and not agent_id:
        raise ValidationError(f"agent_id is required for {direction} invoices")
    if direction == DIRECTION_TO_CUSTOMER and not customer_id:
        raise ValidationError("customer_id is required for to_customer invoices")

    if customer_id and not db.session.get(Customer, customer_id):
        raise InvoiceError(f"Customer {customer_id} not found")
    if agent_id:
        agent = db.session.get(User, agent_id)
        if not agent or agent.role != ROLE_AGENT:
            raise InvoiceError(f"Agent {agent_id} not found")


def normalize_line_item(data: Any, index: int) -> dict:
    """
    Validate one submitted line item.

    Quantities and prices are checked strictly here; the calculator itself
    stays lenient for previews.
    """
    if not isinstance(data, dict):
        raise ValidationError(f"line_items[{index}] must be an object")

    field = f"line_items[{index}]"
    unit_type = parse_choice(data.get("unit_type"), f"{field}.unit_type", VALID_UNIT_TYPES, default=UNIT_TYPE_FIXED)
    quantity = parse_decimal(data.get("quantity"), f"{field}.quantity", required=False)
    weight_kg = parse_decimal(data.get("weight_kg"), f"{field}.weight_kg", required=False)

    # Only kg items carry an independently priced amount
    amount = None
    if unit_type == UNIT_TYPE_KG:
        amount = parse_decimal(data.get("amount"), f"{field}.amount", required=False)

    description = data.get("description")
    product_service_id = data.get("product_service_id")

    return {
        "id": parse_int(data.get("id"), f"{field}.id", required=False),
        "description": description.strip() if isinstance(description, str) else None,
        "item_type": parse_choice(data.get("item_type"), f"{field}.item_type", VALID_ITEM_TYPES, default="other"),
        "quantity": quantity if quantity is not None else 1,
        "unit_price": parse_decimal(data.get("unit_price"), f"{field}.unit_price", required=False) or 0,
        "unit_type": unit_type,
        "weight_kg": weight_kg,
        "amount": amount,
        "product_service_id": str(product_service_id) if product_service_id is not None else None,
    }


def normalize_line_items(line_items: Any) -> list[dict]:
    if line_items is None:
        return []
    if not isinstance(line_items, list):
        raise ValidationError("line_items must be a list")
    normalized = [normalize_line_item(item, index) for index, item in enumerate(line_items)]

    ids = [item["id"] for item in normalized if item["id"] is not None]
    if len(ids) != len(set(ids)):
        raise ValidationError("line_items contains duplicate ids")
    return normalized


def _apply_item_fields(item: InvoiceLineItem, data: dict, position: int, currency: str) -> None:
    item.position = position
    item.description = data["description"]
    item.item_type = data["item_type"]
    item.quantity = data["quantity"]
    item.unit_price = data["unit_price"]
    item.unit_type = data["unit_type"]
    item.weight_kg = data["weight_kg"]
    item.product_service_id = data["product_service_id"]
    item.currency = currency
    # kg items keep a supplied amount (0 included); everything else is recomputed
    item.amount_supplied = data["amount"] is not None
    item.amount = data["amount"] if data["amount"] is not None else 0


def _recalculate(invoice: Invoice, rate_map: dict) -> invoice_calculator.InvoiceCalculation:
    """Run the calculator over invoice.items and copy the results onto the rows."""
    options = currency_service.conversion_options()
    items = list(invoice.items)
    calculation = invoice_calculator.calculate_invoice(
        [
            {
                "quantity": item.quantity,
                "unit_price": item.unit_price,
                "unit_type": item.unit_type,
                "amount": item.amount if item.unit_type == UNIT_TYPE_KG and item.amount_supplied else None,
                "weight_kg": item.weight_kg,
            }
            for item in items
        ],
        invoice.discount,
        invoice.tax_rate,
        currency=invoice.currency,
        rates=rate_map,
        **options,
    )
    for item, amount in zip(items, calculation.line_amounts):
        item.amount = amount

    totals = calculation.totals
    invoice.subtotal = totals.subtotal
    invoice.discount_amount = totals.discount_amount
    invoice.tax_amount = totals.tax_amount
    invoice.amount = totals.total
    invoice.amount_in_base = currency_service.to_base(totals.total, invoice.currency, rate_map, **options)
    return calculation


# =============================================================================
# CREATE / UPDATE
# =============================================================================

def create_invoice(
    *,
    actor_user_id: Optional[int],
    line_items: Any = None,
    invoice_direction: Optional[str] = None,
    customer_id: Any = None,
    agent_id: Any = None,
    currency: Any = None,
    discount: Any = None,
    tax_rate: Any = None,
    due_date: Any = None,
    notes: Optional[str] = None,
) -> Invoice:
    """
    Create an invoice with its line items and issuance journal entry.

    Args:
        actor_user_id: User creating the invoice
        line_items: Ordered list of item dicts (order drives percent items)
        invoice_direction: to_customer (default), to_agent or from_agent
        discount: Free text ("10%", "$25.00")
        tax_rate: Percentage, 0-100

    Returns:
        Committed Invoice

    Raises:
        ValidationError: Malformed input
        InvoiceError: Unknown customer or agent
    """
    direction = parse_choice(invoice_direction, "invoice_direction", VALID_DIRECTIONS, default=DIRECTION_TO_CUSTOMER)
    customer = parse_int(customer_id, "customer_id", required=False)
    agent = parse_int(agent_id, "agent_id", required=False)
    currency_code = parse_currency_code(currency, default=_default_currency())
    tax = parse_decimal(tax_rate, "tax_rate", required=False) or 0
    if tax > 100:
        raise ValidationError("tax_rate must be between 0 and 100")
    due = _parse_due_date(due_date)
    items = normalize_line_items(line_items)
    if any(item["id"] is not None for item in items):
        raise ValidationError("New invoices cannot reference existing line item ids")

    def _op() -> Invoice:
        return add_invoice(
            actor_user_id=actor_user_id,
            items=items,
            direction=direction,
            customer_id=customer,
            agent_id=agent,
            currency=currency_code,
            discount=_clean_discount(discount),
            tax_rate=tax,
            due_date=due,
            notes=notes,
        )

    invoice = run_in_transaction(_op, description="invoice creation")
    logger.info("Invoice %s created by user %s", invoice.invoice_number, actor_user_id)
    return invoice


def add_invoice(
    *,
    actor_user_id: Optional[int],
    items: list[dict],
    direction: str,
    customer_id: Optional[int],
    agent_id: Optional[int],
    currency: str,
    discount: Optional[str] = None,
    tax_rate: Any = 0,
    due_date: Optional[date] = None,
    notes: Optional[str] = None,
) -> Invoice:
    """
    Insert an invoice from already-normalized items inside the caller's
    transaction (flushes, never commits).
    """
    _validate_parties(direction, customer_id, agent_id)
    rate_map = currency_service.load_rate_map()

    invoice = Invoice(
        invoice_number=next_invoice_number(),
        customer_id=customer_id,
        agent_id=agent_id,
        invoice_direction=direction,
        currency=currency,
        discount=discount,
        tax_rate=tax_rate,
        due_date=due_date,
        notes=notes,
        status=INVOICE_STATUS_PENDING,
        amount_paid=0,
        created_by_user_id=actor_user_id,
    )
    for position, data in enumerate(items):
        item = InvoiceLineItem()
        _apply_item_fields(item, data, position, currency)
        invoice.items.append(item)

    _recalculate(invoice, rate_map)
    db.session.add(invoice)
    db.session.flush()

    journal_service.record_invoice_issued(invoice, rates=rate_map, actor_user_id=actor_user_id)
    return invoice


def update_invoice(
    invoice_id: int,
    *,
    actor_user_id: Optional[int],
    line_items: Any = None,
    **fields: Any,
) -> Invoice:
    """
    Edit header fields and/or replace the line-item set.

    LINE ITEMS (when supplied):
    - persisted ids missing from the submission are deleted
    - submitted ids are updated in place
    - items without an id are created
    - an id that does not belong to this invoice aborts the whole edit

    The submitted order becomes the new position order. Totals and
    amount_in_base are recomputed. Status, amount_paid and paid_at are not
    touched.
    """
    unknown_fields = set(fields) - set(EDITABLE_FIELDS)
    if unknown_fields:
        raise ValidationError(f"Fields cannot be edited: {sorted(unknown_fields)}")

    items = normalize_line_items(line_items) if line_items is not None else None

    def _op() -> Invoice:
        invoice = _get_invoice_or_raise(invoice_id, lock=True)

        if "invoice_direction" in fields:
            invoice.invoice_direction = parse_choice(
                fields["invoice_direction"], "invoice_direction", VALID_DIRECTIONS, default=DIRECTION_TO_CUSTOMER
            )
        if "customer_id" in fields:
            invoice.customer_id = parse_int(fields["customer_id"], "customer_id", required=False)
        if "agent_id" in fields:
            invoice.agent_id = parse_int(fields["agent_id"], "agent_id", required=False)
        if "currency" in fields:
            invoice.currency = parse_currency_code(fields["currency"])
        if "discount" in fields:
            invoice.discount = _clean_discount(fields["discount"])
        if "tax_rate" in fields:
            tax = parse_decimal(fields["tax_rate"], "tax_rate", required=False) or 0
            if tax > 100:
                raise ValidationError("tax_rate must be between 0 and 100")
            invoice.tax_rate = tax
        if "due_date" in fields:
            invoice.due_date = _parse_due_date(fields["due_date"])
        if "notes" in fields:
            invoice.notes = fields["notes"]

        _validate_parties(invoice.invoice_direction, invoice.customer_id, invoice.agent_id)

        if items is not None:
            _reconcile_line_items(invoice, items)
        else:
            for item in invoice.items:
                item.currency = invoice.currency

        _recalculate(invoice, currency_service.load_rate_map())
        invoice.updated_at = utcnow()
        return invoice

    invoice = run_in_transaction(_op, description=f"invoice {invoice_id} update")
    logger.info("Invoice %s updated by user %s", invoice.invoice_number, actor_user_id)
    return invoice


def _reconcile_line_items(invoice: Invoice, items: list[dict]) -> None:
    existing = {item.id: item for item in invoice.items}
    submitted_ids = {data["id"] for data in items if data["id"] is not None}

    unknown = submitted_ids - set(existing)
    if unknown:
        logger.error("Invoice %s edit references unknown line items %s", invoice.id, sorted(unknown))
        raise InvoiceError(f"Line items {sorted(unknown)} do not belong to invoice {invoice.id}")

    reconciled = []
    for position, data in enumerate(items):
        item = existing[data["id"]] if data["id"] is not None else InvoiceLineItem()
        _apply_item_fields(item, data, position, invoice.currency)
        reconciled.append(item)

    # delete-orphan cascade removes anything left out of the new list
    invoice.items = reconciled


def _clean_discount(discount: Any) -> Optional[str]:
    if discount is None:
        return None
    text = str(discount).strip()
    return text or None


def _parse_due_date(value: Any) -> Optional[date]:
    try:
        return parse_iso_date(value)
    except (TypeError, ValueError):
        raise ValidationError("due_date must be an ISO date (YYYY-MM-DD)")


# =============================================================================
# STATUS
# =============================================================================

def update_invoice_status(invoice_id: int, status: Any, *, actor_user_id: Optional[int]) -> Invoice:
    """
    Set invoice status directly (the "mark as paid" action).

    Moving to paid stamps paid_at; moving away from paid clears it.
    amount_paid is left alone: paid status is not tied to the payment sum.
    """
    new_status = parse_choice(status, "status", VALID_INVOICE_STATUSES)

    def _op() -> Invoice:
        invoice = _get_invoice_or_raise(invoice_id, lock=True)
        if new_status == INVOICE_STATUS_PAID:
            if invoice.status != INVOICE_STATUS_PAID:
                invoice.paid_at = utcnow()
        else:
            invoice.paid_at = None
        invoice.status = new_status
        invoice.updated_at = utcnow()
        return invoice

    invoice = run_in_transaction(_op, description=f"invoice {invoice_id} status change")
    logger.info("Invoice %s status set to %s by user %s", invoice.invoice_number, new_status, actor_user_id)
    return invoice


def mark_overdue_invoices(today: Optional[date] = None) -> int:
    """
    Flip pending invoices past their due date with a balance left to overdue.

    Returns:
        Number of invoices changed
    """
    reference_day = today or utctoday()

    def _op() -> int:
        rate_map = currency_service.load_rate_map()
        candidates = (
            db.session.query(Invoice)
            .filter(
                Invoice.status == INVOICE_STATUS_PENDING,
                Invoice.due_date.isnot(None),
                Invoice.due_date < reference_day,
            )
            .all()
        )
        changed = 0
        for invoice in candidates:
            balance = invoice_balance(invoice, rate_map=rate_map, today=reference_day)
            if balance.is_overdue:
                invoice.status = INVOICE_STATUS_OVERDUE
                changed += 1
        return changed

    changed = run_in_transaction(_op, description="overdue sweep")
    if changed:
        logger.info("Marked %s invoices overdue", changed)
    return changed


# =============================================================================
# READS
# =============================================================================

def get_invoice(invoice_id: int) -> Invoice:
    return _get_invoice_or_raise(invoice_id)


def list_invoices(
    *,
    status: Optional[str] = None,
    search: Optional[str] = None,
    agent_id: Optional[int] = None,
    customer_id: Optional[int] = None,
    direction: Optional[str] = None,
    customer_user_id: Optional[int] = None,
) -> list[Invoice]:
    """
    Invoices matching every given filter, newest first.

    customer_user_id limits the list to invoices billed to the customer
    whose portal login is that user.
    """
    query = db.session.query(Invoice)
    if search or customer_user_id:
        query = query.outerjoin(Customer, Invoice.customer_id == Customer.id)
    if customer_user_id:
        query = query.filter(Customer.user_id == customer_user_id)
    if status:
        query = query.filter(Invoice.status == parse_choice(status, "status", VALID_INVOICE_STATUSES))
    if direction:
        query = query.filter(Invoice.invoice_direction == parse_choice(direction, "direction", VALID_DIRECTIONS))
    if agent_id:
        query = query.filter(Invoice.agent_id == agent_id)
    if customer_id:
        query = query.filter(Invoice.customer_id == customer_id)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(
            or_(
                Invoice.invoice_number.ilike(pattern),
                Invoice.notes.ilike(pattern),
                Customer.name.ilike(pattern),
            )
        )
    return query.order_by(Invoice.created_at.desc(), Invoice.id.desc()).all()


def get_invoice_detail(invoice_id: int, *, today: Optional[date] = None) -> dict:
    """
    Everything an invoice view shows, in one read.

    Includes items in position order, payments, the reconciled balance and
    base-currency equivalents of the totals (None when the invoice is in
    the base currency).
    """
    invoice = _get_invoice_or_raise(invoice_id)
    payments = (
        db.session.query(Payment)
        .filter_by(invoice_id=invoice.id)
        .order_by(Payment.paid_at.asc(), Payment.id.asc())
        .all()
    )

    rate_map = currency_service.load_rate_map()
    totals = invoice_calculator.calculate_totals(
        invoice.subtotal,
        invoice.discount,
        invoice.tax_rate,
        currency=invoice.currency,
        rates=rate_map,
        **currency_service.conversion_options(),
    )
    balance = invoice_balance(invoice, payments, rate_map=rate_map, today=today)

    detail = invoice.to_dict()
    detail["items"] = [item.to_dict() for item in invoice.items]
    detail["payments"] = [payment.to_dict() for payment in payments]
    detail["totals"] = totals.to_dict()
    detail["balance"] = balance.to_dict()
    return detail


def summarize_invoices(invoices: Iterable[Invoice]) -> list[dict]:
    """Listing rows: the invoice plus its reconciled balance."""
    rate_map = currency_service.load_rate_map()
    rows = []
    for invoice in invoices:
        row = invoice.to_dict()
        row["balance"] = invoice_balance(invoice, rate_map=rate_map).to_dict()
        rows.append(row)
    return rows
