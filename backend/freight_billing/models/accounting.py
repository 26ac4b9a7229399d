from __future__ import annotations

from ..extensions import db
from ..money import MONEY_PRECISION, RATE_PRECISION, decimal_to_str
from ..time_utils import to_iso_date, to_utc_z


class JournalEntry(db.Model):
    """
    Append-only journal entry written as a side effect of invoicing events.

    This is a thin record of what happened (issuance, settlement), not a
    ledger engine: there are no balances, postings or period closes here.
    """
    __tablename__ = "journal_entries"
    __table_args__ = (
        db.Index("ix_journal_entries_reference", "reference_type", "reference_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    entry_number = db.Column(db.String(32), nullable=False, unique=True, index=True)
    entry_date = db.Column(db.Date, nullable=False)
    description = db.Column(db.String(255), nullable=False)

    # invoice, payment
    reference_type = db.Column(db.String(16), nullable=False)
    reference_id = db.Column(db.Integer, nullable=False)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    lines = db.relationship("JournalLine", backref="entry", lazy=True, cascade="all, delete-orphan")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entry_number": self.entry_number,
            "entry_date": to_iso_date(self.entry_date),
            "description": self.description,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "lines": [line.to_dict() for line in self.lines],
        }


class JournalLine(db.Model):
    __tablename__ = "journal_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    journal_entry_id = db.Column(db.Integer, db.ForeignKey("journal_entries.id"), nullable=False, index=True)

    account_code = db.Column(db.String(16), nullable=False, index=True)
    description = db.Column(db.String(255), nullable=True)
    debit_amount = db.Column(db.Numeric(*MONEY_PRECISION), nullable=False, default=0)
    credit_amount = db.Column(db.Numeric(*MONEY_PRECISION), nullable=False, default=0)
    currency = db.Column(db.String(3), nullable=False)
    exchange_rate = db.Column(db.Numeric(*RATE_PRECISION), nullable=False, default=1)
    amount_in_base = db.Column(db.Numeric(*MONEY_PRECISION), nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "journal_entry_id": self.journal_entry_id,
            "account_code": self.account_code,
            "description": self.description,
            "debit_amount": decimal_to_str(self.debit_amount),
            "credit_amount": decimal_to_str(self.credit_amount),
            "currency": self.currency,
            "exchange_rate": decimal_to_str(self.exchange_rate),
            "amount_in_base": decimal_to_str(self.amount_in_base),
        }
