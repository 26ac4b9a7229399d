"""
Exchange rate administration tests.

Verifies:
- Rates are created, updated and deleted with validation
- Currency codes are unique
- The base currency keeps a rate of 1 and cannot be deleted
"""

from decimal import Decimal

import pytest

from freight_billing.models import ExchangeRate
from freight_billing.services.currency_service import load_rate_map
from freight_billing.services.exchange_rate_service import (
    DEFAULT_EXCHANGE_RATES,
    ExchangeRateError,
    ExchangeRateNotFoundError,
    create_exchange_rate,
    delete_exchange_rate,
    seed_default_rates,
    update_exchange_rate,
)
from freight_billing.validation import ConflictError, ValidationError


class TestCreateExchangeRate:

    def test_create(self, db_session, admin):
        row = create_exchange_rate(
            currency_code="kes",
            currency_name="Kenyan Shilling",
            rate_to_base="19.5",
            actor_user_id=admin.id,
        )
        assert row.currency_code == "KES"
        assert row.rate_to_base == Decimal("19.5")
        assert row.updated_by_user_id == admin.id
        assert load_rate_map()["KES"] == Decimal("19.5")

    def test_duplicate_code_conflicts(self, db_session, rates):
        with pytest.raises(ConflictError):
            create_exchange_rate(currency_code="USD", currency_name="US Dollar", rate_to_base="2600")

    @pytest.mark.parametrize("rate", ["0", "-1", "abc", None])
    def test_rate_must_be_positive(self, db_session, rate):
        with pytest.raises(ValidationError):
            create_exchange_rate(currency_code="KES", currency_name="Kenyan Shilling", rate_to_base=rate)

    def test_bad_code(self, db_session):
        with pytest.raises(ValidationError):
            create_exchange_rate(currency_code="KENYA", currency_name="Kenyan Shilling", rate_to_base="19")

    def test_name_required(self, db_session):
        with pytest.raises(ValidationError):
            create_exchange_rate(currency_code="KES", currency_name="  ", rate_to_base="19")

    def test_base_currency_rate_must_be_one(self, db_session):
        with pytest.raises(ValidationError):
            create_exchange_rate(currency_code="TZS", currency_name="Tanzanian Shilling", rate_to_base="2")


class TestUpdateExchangeRate:

    def test_update_rate(self, db_session, rates, admin):
        row = update_exchange_rate("usd", rate_to_base="2550", actor_user_id=admin.id)
        assert row.rate_to_base == Decimal("2550")
        assert load_rate_map()["USD"] == Decimal("2550")

    def test_base_currency_can_be_renamed_only(self, db_session, rates):
        row = update_exchange_rate("TZS", currency_name="Shilingi")
        assert row.currency_name == "Shilingi"

        with pytest.raises(ValidationError):
            update_exchange_rate("TZS", rate_to_base="3")

    def test_unknown_code(self, db_session, rates):
        with pytest.raises(ExchangeRateNotFoundError):
            update_exchange_rate("KES", rate_to_base="19")


class TestDeleteExchangeRate:

    def test_delete(self, db_session, rates):
        delete_exchange_rate("GBP")
        assert db_session.query(ExchangeRate).filter_by(currency_code="GBP").first() is None

    def test_base_currency_cannot_be_deleted(self, db_session, rates):
        with pytest.raises(ExchangeRateError):
            delete_exchange_rate("TZS")
        assert db_session.query(ExchangeRate).filter_by(currency_code="TZS").first() is not None


class TestSeedDefaultRates:

    def test_seed_skips_existing(self, db_session, rates):
        created = seed_default_rates()

        assert created == len(DEFAULT_EXCHANGE_RATES) - 3
        # Existing USD row keeps its rate
        assert load_rate_map()["USD"] == Decimal("2500")
        assert load_rate_map()["JPY"] == Decimal("17")
