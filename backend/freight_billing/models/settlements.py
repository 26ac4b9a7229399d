from __future__ import annotations

from ..constants import SETTLEMENT_PENDING
from ..extensions import db
from ..money import MONEY_PRECISION, decimal_to_str
from ..time_utils import to_iso_date, to_utc_z


class AgentSettlement(db.Model):
    """
    Batch of paid agent invoices settled with one transfer.

    WHY: Agents are paid (or pay) periodically for many invoices at once.
    The batch freezes which invoices it covers and what each was worth in
    the settlement currency when the batch was drawn up.

    STATUS:
        pending --approve--> approved --mark paid--> paid
        pending | approved --cancel--> cancelled (invoices become unsettled)
    """
    __tablename__ = "agent_settlements"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)

    # Document number (e.g., "SET-2026-0001")
    settlement_number = db.Column(db.String(32), nullable=False, unique=True, index=True)

    agent_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    # payment_to_agent, collection_from_agent
    settlement_type = db.Column(db.String(32), nullable=False)

    period_start = db.Column(db.Date, nullable=True)
    period_end = db.Column(db.Date, nullable=True)

    total_amount = db.Column(db.Numeric(*MONEY_PRECISION), nullable=False, default=0)
    currency = db.Column(db.String(3), nullable=False)
    amount_in_base = db.Column(db.Numeric(*MONEY_PRECISION), nullable=True)

    # pending, approved, paid, cancelled
    status = db.Column(db.String(16), nullable=False, default=SETTLEMENT_PENDING, index=True)
    notes = db.Column(db.Text, nullable=True)

    approved_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    payment_reference = db.Column(db.String(128), nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    agent = db.relationship("User", foreign_keys=[agent_id])
    items = db.relationship(
        "AgentSettlementItem",
        backref="settlement",
        lazy=True,
        order_by="AgentSettlementItem.id",
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "settlement_number": self.settlement_number,
            "agent_id": self.agent_id,
            "settlement_type": self.settlement_type,
            "period_start": to_iso_date(self.period_start),
            "period_end": to_iso_date(self.period_end),
            "total_amount": decimal_to_str(self.total_amount),
            "currency": self.currency,
            "amount_in_base": decimal_to_str(self.amount_in_base),
            "status": self.status,
            "notes": self.notes,
            "approved_by_user_id": self.approved_by_user_id,
            "approved_at": to_utc_z(self.approved_at) if self.approved_at else None,
            "paid_at": to_utc_z(self.paid_at) if self.paid_at else None,
            "payment_reference": self.payment_reference,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class AgentSettlementItem(db.Model):
    """One invoice inside a settlement, valued in the settlement currency."""
    __tablename__ = "agent_settlement_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    settlement_id = db.Column(
        db.Integer, db.ForeignKey("agent_settlements.id", ondelete="CASCADE"), nullable=False, index=True
    )
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)

    amount = db.Column(db.Numeric(*MONEY_PRECISION), nullable=False)
    currency = db.Column(db.String(3), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    invoice = db.relationship("Invoice")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "settlement_id": self.settlement_id,
            "invoice_id": self.invoice_id,
            "invoice_number": self.invoice.invoice_number if self.invoice else None,
            "amount": decimal_to_str(self.amount),
            "currency": self.currency,
            "created_at": to_utc_z(self.created_at),
        }
