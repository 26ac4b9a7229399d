"""
Pytest fixtures for freight billing backend tests.

Provides test database setup, seeded users and exchange rates, and a test client.
"""

from decimal import Decimal

import pytest
from freight_billing import create_app
from freight_billing.extensions import db
from freight_billing.models import AgentSetting, Customer, ExchangeRate, User


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BASE_CURRENCY': 'TZS',
        'DEFAULT_INVOICE_CURRENCY': 'USD',
        'DEFAULT_AGENT_BASE_CURRENCY': 'USD',
        'STRICT_EXCHANGE_RATES': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def rates(db_session):
    """Base currency plus USD and GBP (units of TZS)."""
    rows = [
        ExchangeRate(currency_code="TZS", currency_name="Tanzanian Shilling", rate_to_base=Decimal("1")),
        ExchangeRate(currency_code="USD", currency_name="US Dollar", rate_to_base=Decimal("2500")),
        ExchangeRate(currency_code="GBP", currency_name="British Pound", rate_to_base=Decimal("3125")),
    ]
    db_session.add_all(rows)
    db_session.commit()
    return rows


@pytest.fixture(scope='function')
def admin(db_session):
    user = User(username="admin", full_name="Admin One", role="admin")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def second_admin(db_session):
    user = User(username="admin2", full_name="Admin Two", role="admin")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def employee(db_session):
    user = User(username="clerk", full_name="Billing Clerk", role="employee")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def agent(db_session):
    """Agent settling in GBP."""
    user = User(username="agent_uk", company_name="Thames Forwarding", role="agent")
    db_session.add(user)
    db_session.flush()
    db_session.add(AgentSetting(user_id=user.id, base_currency="GBP"))
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def customer(db_session):
    row = Customer(name="Mwanza Traders", email="accounts@mwanza.example")
    db_session.add(row)
    db_session.commit()
    return row


@pytest.fixture(scope='function')
def other_agent(db_session):
    """Agent with no settings (falls back to the default USD)."""
    user = User(username="agent_msa", company_name="Kilindini Freight", role="agent")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def portal_user(db_session, customer):
    """Customer portal login linked to the Mwanza Traders customer."""
    user = User(username="mwanza_portal", full_name="Mwanza Accounts", role="customer")
    db_session.add(user)
    db_session.flush()
    customer.user_id = user.id
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def admin_headers(admin):
    return {'X-Actor-Id': str(admin.id)}


@pytest.fixture(scope='function')
def employee_headers(employee):
    return {'X-Actor-Id': str(employee.id)}


@pytest.fixture(scope='function')
def agent_headers(agent):
    return {'X-Actor-Id': str(agent.id)}


@pytest.fixture(scope='function')
def other_agent_headers(other_agent):
    return {'X-Actor-Id': str(other_agent.id)}


@pytest.fixture(scope='function')
def portal_headers(portal_user):
    return {'X-Actor-Id': str(portal_user.id)}
