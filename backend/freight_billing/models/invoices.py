from __future__ import annotations

from ..constants import DIRECTION_TO_CUSTOMER, INVOICE_STATUS_PENDING, UNIT_TYPE_FIXED
from ..extensions import db
from ..money import MONEY_PRECISION, decimal_to_str
from ..time_utils import to_iso_date, to_utc_z


class Invoice(db.Model):
    """
    Invoice header with its computed totals.

    WHY: Totals are derived from line items by the invoice calculator and
    persisted so listings do not have to re-run the fold.

    CACHE: amount_paid is a denormalized copy of the verified payment sum.
    It may lag the payments table; readers reconcile with
    max(amount_paid, sum(payments)) instead of trusting it.

    DIRECTION:
    - to_customer: company bills a customer (customer_id set)
    - to_agent: company owes an agent (agent_id set)
    - from_agent: agent owes the company (agent_id set)
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.Index("ix_invoices_agent_direction", "agent_id", "invoice_direction"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Document number (e.g., "INV-2026-0001")
    invoice_number = db.Column(db.String(32), nullable=False, unique=True, index=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    agent_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    invoice_direction = db.Column(db.String(16), nullable=False, default=DIRECTION_TO_CUSTOMER)

    currency = db.Column(db.String(3), nullable=False)

    # Calculation inputs and outputs (full precision)
    subtotal = db.Column(db.Numeric(*MONEY_PRECISION), nullable=False, default=0)
    discount = db.Column(db.String(32), nullable=True)  # free text: "10%" or "$25.00"
    discount_amount = db.Column(db.Numeric(*MONEY_PRECISION), nullable=False, default=0)
    tax_rate = db.Column(db.Numeric(*MONEY_PRECISION), nullable=False, default=0)
    tax_amount = db.Column(db.Numeric(*MONEY_PRECISION), nullable=False, default=0)
    amount = db.Column(db.Numeric(*MONEY_PRECISION), nullable=False, default=0)  # = total
    amount_in_base = db.Column(db.Numeric(*MONEY_PRECISION), nullable=True)

    amount_paid = db.Column(db.Numeric(*MONEY_PRECISION), nullable=False, default=0)

    # pending, paid, overdue, cancelled
    status = db.Column(db.String(16), nullable=False, default=INVOICE_STATUS_PENDING, index=True)

    due_date = db.Column(db.Date, nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    customer = db.relationship("Customer", backref=db.backref("invoices", lazy=True))
    agent = db.relationship("User", foreign_keys=[agent_id], backref=db.backref("agent_invoices", lazy=True))
    items = db.relationship(
        "InvoiceLineItem",
        backref="invoice",
        lazy=True,
        order_by="InvoiceLineItem.position",
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "customer_id": self.customer_id,
            "agent_id": self.agent_id,
            "invoice_direction": self.invoice_direction,
            "currency": self.currency,
            "subtotal": decimal_to_str(self.subtotal),
            "discount": self.discount,
            "discount_amount": decimal_to_str(self.discount_amount),
            "tax_rate": decimal_to_str(self.tax_rate),
            "tax_amount": decimal_to_str(self.tax_amount),
            "amount": decimal_to_str(self.amount),
            "amount_in_base": decimal_to_str(self.amount_in_base),
            "amount_paid": decimal_to_str(self.amount_paid),
            "status": self.status,
            "due_date": to_iso_date(self.due_date),
            "paid_at": to_utc_z(self.paid_at) if self.paid_at else None,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class InvoiceLineItem(db.Model):
    """
    Individual charge on an invoice.

    ORDER MATTERS: percent items are priced against the running total of
    the items before them, so position is part of the pricing, not just
    display.
    """
    __tablename__ = "invoice_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    description = db.Column(db.String(255), nullable=True)
    item_type = db.Column(db.String(16), nullable=False, default="other")

    quantity = db.Column(db.Numeric(*MONEY_PRECISION), nullable=False, default=1)
    unit_price = db.Column(db.Numeric(*MONEY_PRECISION), nullable=False, default=0)
    # fixed, percent, kg
    unit_type = db.Column(db.String(16), nullable=False, default=UNIT_TYPE_FIXED)
    weight_kg = db.Column(db.Numeric(*MONEY_PRECISION), nullable=True)

    amount = db.Column(db.Numeric(*MONEY_PRECISION), nullable=False, default=0)
    # kg only: amount was entered by hand and is kept on recalculation
    amount_supplied = db.Column(db.Boolean, nullable=False, default=False)
    currency = db.Column(db.String(3), nullable=False)

    product_service_id = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "position": self.position,
            "description": self.description,
            "item_type": self.item_type,
            "quantity": decimal_to_str(self.quantity),
            "unit_price": decimal_to_str(self.unit_price),
            "unit_type": self.unit_type,
            "weight_kg": decimal_to_str(self.weight_kg),
            "amount": decimal_to_str(self.amount),
            "amount_supplied": self.amount_supplied,
            "currency": self.currency,
            "product_service_id": self.product_service_id,
            "created_at": to_utc_z(self.created_at),
        }


class DocumentCounter(db.Model):
    """
    Sequential document numbers (INV-YYYY-NNNN, JE-YYYY-NNNN).

    WHY: Numbers are allocated by incrementing one row under lock so two
    invoices created together never share a number.
    """
    __tablename__ = "document_counters"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    counter_key = db.Column(db.String(32), nullable=False, unique=True, index=True)
    prefix = db.Column(db.String(16), nullable=False)
    counter_value = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "counter_key": self.counter_key,
            "prefix": self.prefix,
            "counter_value": self.counter_value,
            "updated_at": to_utc_z(self.updated_at),
        }
