from __future__ import annotations

from ..constants import ESTIMATE_PENDING
from ..extensions import db
from ..money import MONEY_PRECISION, decimal_to_str
from ..time_utils import to_iso_date, to_utc_z


class Estimate(db.Model):
    """
    Freight quote for a customer: weight x rate per kg plus a handling fee.

    Converting an estimate issues a regular invoice through the invoice
    calculator and links the two; a converted estimate is frozen.
    """
    __tablename__ = "estimates"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)

    # Document number (e.g., "EST-2026-0001")
    estimate_number = db.Column(db.String(32), nullable=False, unique=True, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    origin_region = db.Column(db.String(16), nullable=False)
    weight_kg = db.Column(db.Numeric(*MONEY_PRECISION), nullable=False)
    rate_per_kg = db.Column(db.Numeric(*MONEY_PRECISION), nullable=False)
    handling_fee = db.Column(db.Numeric(*MONEY_PRECISION), nullable=False, default=0)
    subtotal = db.Column(db.Numeric(*MONEY_PRECISION), nullable=False, default=0)
    total = db.Column(db.Numeric(*MONEY_PRECISION), nullable=False, default=0)
    currency = db.Column(db.String(3), nullable=False)

    # pending, approved, rejected, converted
    status = db.Column(db.String(16), nullable=False, default=ESTIMATE_PENDING, index=True)
    notes = db.Column(db.Text, nullable=True)
    valid_until = db.Column(db.Date, nullable=True)

    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    customer = db.relationship("Customer", backref=db.backref("estimates", lazy=True))
    invoice = db.relationship("Invoice")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "estimate_number": self.estimate_number,
            "customer_id": self.customer_id,
            "origin_region": self.origin_region,
            "weight_kg": decimal_to_str(self.weight_kg),
            "rate_per_kg": decimal_to_str(self.rate_per_kg),
            "handling_fee": decimal_to_str(self.handling_fee),
            "subtotal": decimal_to_str(self.subtotal),
            "total": decimal_to_str(self.total),
            "currency": self.currency,
            "status": self.status,
            "notes": self.notes,
            "valid_until": to_iso_date(self.valid_until),
            "invoice_id": self.invoice_id,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
