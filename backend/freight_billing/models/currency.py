from __future__ import annotations

from ..extensions import db
from ..money import RATE_PRECISION, decimal_to_str
from ..time_utils import to_utc_z


class ExchangeRate(db.Model):
    """
    Rate of one unit of a currency expressed in the base currency.

    WHY: Every money-displaying view converts through the base unit.
    The base currency has an implicit rate of 1; a row for it may exist
    (seeded for display) but can never be deleted or re-rated.
    """
    __tablename__ = "currency_exchange_rates"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    currency_code = db.Column(db.String(3), nullable=False, unique=True, index=True)
    currency_name = db.Column(db.String(64), nullable=False)
    rate_to_base = db.Column(db.Numeric(*RATE_PRECISION), nullable=False)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    updated_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "currency_code": self.currency_code,
            "currency_name": self.currency_name,
            "rate_to_base": decimal_to_str(self.rate_to_base),
            "updated_at": to_utc_z(self.updated_at),
            "updated_by_user_id": self.updated_by_user_id,
        }
