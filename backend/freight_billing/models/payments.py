from __future__ import annotations

from ..constants import VERIFICATION_PENDING
from ..extensions import db
from ..money import MONEY_PRECISION, decimal_to_str
from ..time_utils import to_utc_z


class Payment(db.Model):
    """
    Payment recorded against an invoice.

    WHY: Payments are separate rows so an invoice can be settled in several
    instalments, in more than one method, and by more than one party.

    VERIFICATION:
    - verified: counts toward the invoice's paid-to-date
    - pending: submitted by an agent or customer, awaiting an admin
    - rejected: never counts; kept for the audit trail

    Payments recorded directly by staff are created verified. Once verified
    a payment is immutable.

    CURRENCY: amount is always stored in the invoice's currency, converted
    when the payer used another one. amount_in_base freezes the base
    currency figure at the rate of the day the payment was taken.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.Index("ix_payments_invoice_verification", "invoice_id", "verification_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)

    amount = db.Column(db.Numeric(*MONEY_PRECISION), nullable=False)
    currency = db.Column(db.String(3), nullable=False)
    amount_in_base = db.Column(db.Numeric(*MONEY_PRECISION), nullable=True)

    # bank_transfer, cash, mobile_money, card
    payment_method = db.Column(db.String(32), nullable=False)
    deposit_account_code = db.Column(db.String(16), nullable=True)

    paid_at = db.Column(db.DateTime(timezone=True), nullable=False)
    reference = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    # pending, verified, rejected
    verification_status = db.Column(db.String(16), nullable=False, default=VERIFICATION_PENDING, index=True)
    verified_at = db.Column(db.DateTime(timezone=True), nullable=True)
    verified_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    rejection_reason = db.Column(db.String(255), nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    invoice = db.relationship("Invoice", backref=db.backref("payments", lazy=True))
    created_by = db.relationship("User", foreign_keys=[created_by_user_id])
    verified_by = db.relationship("User", foreign_keys=[verified_by_user_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "amount": decimal_to_str(self.amount),
            "currency": self.currency,
            "amount_in_base": decimal_to_str(self.amount_in_base),
            "payment_method": self.payment_method,
            "deposit_account_code": self.deposit_account_code,
            "paid_at": to_utc_z(self.paid_at),
            "reference": self.reference,
            "notes": self.notes,
            "verification_status": self.verification_status,
            "verified_at": to_utc_z(self.verified_at) if self.verified_at else None,
            "verified_by_user_id": self.verified_by_user_id,
            "rejection_reason": self.rejection_reason,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
