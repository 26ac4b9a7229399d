# Overview: Flask CLI command groups for bootstrap, rates and invoice maintenance.

# backend/freight_billing/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables, default exchange rates and an admin user.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users create --username agent1 --role agent [--company "Kariakoo Cargo"] [--base-currency GBP]
#   Create a user; agents can be given a settlement base currency.
#
# Exchange rates:
# - python -m flask rates list
# - python -m flask rates set USD 2550 [--name "US Dollar"]
#   Update a rate, or create it when the currency is new (--name required then).
#
# Invoices:
# - python -m flask invoices reconcile-paid [--invoice-id 12]
#   Rewrite amount_paid caches from the verified payments.
# - python -m flask invoices mark-overdue
#   Flip pending invoices past their due date with a balance left to overdue.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import AgentSetting, ExchangeRate, User
from .models.parties import ROLE_ADMIN, ROLE_AGENT, VALID_ROLES
from .money import decimal_to_str
from .services import exchange_rate_service, invoice_service, payment_service
from .services.exchange_rate_service import ExchangeRateError
from .validation import ValidationError, parse_currency_code


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--admin-username', default='admin', help='Username of the bootstrap admin')
@with_appcontext
def init_system(admin_username):
    """
    Initialize the billing system.

    Creates:
    - All tables (if missing)
    - Default exchange rates against the base currency
    - An admin user (pass its id as X-Actor-Id)
    """
    click.echo("START Initializing freight billing...")

    db.create_all()
    click.echo("PASS Tables ready")

    admin = db.session.query(User).filter_by(username=admin_username).first()
    if not admin:
        admin = User(username=admin_username, full_name="Administrator", role=ROLE_ADMIN)
        db.session.add(admin)
        db.session.commit()
        click.echo(f"PASS Created admin user: {admin.username} (ID: {admin.id})")
    else:
        click.echo(f"PASS Using existing admin user: {admin.username} (ID: {admin.id})")

    created = exchange_rate_service.seed_default_rates(actor_user_id=admin.id)
    click.echo(f"PASS Seeded {created} exchange rates")

    click.echo("\n" + "=" * 60)
    click.echo("DONE Freight billing initialized")
    click.echo("=" * 60)
    click.echo(f"\nSend 'X-Actor-Id: {admin.id}' to act as {admin.username}.\n")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


# =============================================================================
# USER COMMANDS
# =============================================================================

@click.group('users')
def users_group():
    """User management commands."""


@users_group.command('create')
@click.option('--username', required=True)
@click.option('--role', type=click.Choice(VALID_ROLES), default='employee')
@click.option('--full-name', default=None)
@click.option('--company', 'company_name', default=None)
@click.option('--email', default=None)
@click.option('--base-currency', default=None, help='Agent settlement currency')
@with_appcontext
def create_user_cli(username, role, full_name, company_name, email, base_currency):
    """Create a user."""
    if db.session.query(User).filter_by(username=username).first():
        click.echo(f"FAIL User '{username}' already exists")
        return

    user = User(
        username=username,
        role=role,
        full_name=full_name,
        company_name=company_name,
        email=email,
    )
    db.session.add(user)
    db.session.flush()

    if base_currency:
        if role != ROLE_AGENT:
            db.session.rollback()
            click.echo("FAIL --base-currency only applies to agents")
            return
        try:
            code = parse_currency_code(base_currency, "base_currency")
        except ValidationError as e:
            db.session.rollback()
            click.echo(f"FAIL {e}")
            return
        db.session.add(AgentSetting(user_id=user.id, base_currency=code))

    db.session.commit()
    click.echo(f"PASS Created user: {user.username} (ID: {user.id}) with role '{user.role}'")


# =============================================================================
# EXCHANGE RATE COMMANDS
# =============================================================================

@click.group('rates')
def rates_group():
    """Exchange rate commands."""


@rates_group.command('list')
@with_appcontext
def list_rates():
    """List exchange rates."""
    rates = exchange_rate_service.list_exchange_rates()
    if not rates:
        click.echo("No exchange rates found. Run: python -m flask system init")
        return

    click.echo("\n" + "=" * 60)
    click.echo(f"{'Code':<6} {'Name':<30} {'Rate to base':>20}")
    click.echo("=" * 60)
    for rate in rates:
        click.echo(f"{rate.currency_code:<6} {rate.currency_name:<30} {decimal_to_str(rate.rate_to_base):>20}")
    click.echo("=" * 60 + "\n")


@rates_group.command('set')
@click.argument('currency_code')
@click.argument('rate')
@click.option('--name', 'currency_name', default=None, help='Currency name (required for new currencies)')
@with_appcontext
def set_rate(currency_code, rate, currency_name):
    """Set the rate of CURRENCY_CODE to RATE (units of base currency)."""
    try:
        code = parse_currency_code(currency_code, "currency_code")
        existing = db.session.query(ExchangeRate).filter_by(currency_code=code).first()
        if existing:
            row = exchange_rate_service.update_exchange_rate(code, rate_to_base=rate, currency_name=currency_name)
            click.echo(f"PASS Updated {row.currency_code}: {decimal_to_str(row.rate_to_base)}")
        else:
            if not currency_name:
                click.echo(f"FAIL {code} is new; pass --name")
                return
            row = exchange_rate_service.create_exchange_rate(
                currency_code=code,
                currency_name=currency_name,
                rate_to_base=rate,
            )
            click.echo(f"PASS Created {row.currency_code}: {decimal_to_str(row.rate_to_base)}")
    except (ValidationError, ExchangeRateError) as e:
        click.echo(f"FAIL {e}")


# =============================================================================
# INVOICE MAINTENANCE COMMANDS
# =============================================================================

@click.group('invoices')
def invoices_group():
    """Invoice maintenance commands."""


@invoices_group.command('reconcile-paid')
@click.option('--invoice-id', type=int, default=None, help='Only this invoice')
@with_appcontext
def reconcile_paid(invoice_id):
    """Rewrite amount_paid caches from verified payments."""
    if invoice_id is not None:
        try:
            total = payment_service.reconcile_amount_paid(invoice_id)
        except invoice_service.InvoiceNotFoundError as e:
            click.echo(f"FAIL {e}")
            return
        click.echo(f"PASS Invoice {invoice_id} amount_paid = {decimal_to_str(total)}")
        return

    changed = payment_service.reconcile_all_amount_paid()
    click.echo(f"PASS Reconciled all invoices ({changed} changed)")


@invoices_group.command('mark-overdue')
@with_appcontext
def mark_overdue():
    """Flip pending invoices past their due date to overdue."""
    changed = invoice_service.mark_overdue_invoices()
    click.echo(f"PASS Marked {changed} invoices overdue")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(rates_group)
    app.cli.add_command(invoices_group)
