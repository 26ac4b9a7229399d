"""Initial billing schema: parties, exchange rates, invoices, payments, journal, settlements, estimates

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19

This migration adds:
1. users, agent_settings, customers
2. currency_exchange_rates
3. invoices, invoice_items, document_counters
4. payments (with verification columns)
5. journal_entries, journal_lines (append-only side effects)
6. agent_settlements, agent_settlement_items
7. estimates
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_initial'
down_revision = None
branch_labels = None
depends_on = None


MONEY = sa.Numeric(precision=20, scale=6)
RATE = sa.Numeric(precision=20, scale=8)


def upgrade():
    # ==========================================================================
    # 1. PARTIES
    # ==========================================================================
    op.create_table('users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('full_name', sa.String(length=255), nullable=True),
        sa.Column('company_name', sa.String(length=255), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('role', sa.String(length=16), nullable=False, server_default='employee'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('users', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_users_username'), ['username'], unique=True)
        batch_op.create_index(batch_op.f('ix_users_role'), ['role'], unique=False)

    op.create_table('agent_settings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('base_currency', sa.String(length=3), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('agent_settings', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_agent_settings_user_id'), ['user_id'], unique=True)

    op.create_table('customers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('company_name', sa.String(length=255), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('customers', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_customers_user_id'), ['user_id'], unique=False)

    # ==========================================================================
    # 2. EXCHANGE RATES
    # ==========================================================================
    op.create_table('currency_exchange_rates',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('currency_code', sa.String(length=3), nullable=False),
        sa.Column('currency_name', sa.String(length=64), nullable=False),
        sa.Column('rate_to_base', RATE, nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_by_user_id', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['updated_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('currency_exchange_rates', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_currency_exchange_rates_currency_code'), ['currency_code'], unique=True)

    # ==========================================================================
    # 3. INVOICES
    # ==========================================================================
    op.create_table('invoices',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('invoice_number', sa.String(length=32), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=True),
        sa.Column('agent_id', sa.Integer(), nullable=True),
        sa.Column('invoice_direction', sa.String(length=16), nullable=False, server_default='to_customer'),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('subtotal', MONEY, nullable=False, server_default='0'),
        sa.Column('discount', sa.String(length=32), nullable=True),
        sa.Column('discount_amount', MONEY, nullable=False, server_default='0'),
        sa.Column('tax_rate', MONEY, nullable=False, server_default='0'),
        sa.Column('tax_amount', MONEY, nullable=False, server_default='0'),
        sa.Column('amount', MONEY, nullable=False, server_default='0'),
        sa.Column('amount_in_base', MONEY, nullable=True),
        sa.Column('amount_paid', MONEY, nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('due_date', sa.Date(), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ),
        sa.ForeignKeyConstraint(['agent_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('invoices', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_invoices_invoice_number'), ['invoice_number'], unique=True)
        batch_op.create_index(batch_op.f('ix_invoices_customer_id'), ['customer_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_invoices_agent_id'), ['agent_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_invoices_status'), ['status'], unique=False)
        batch_op.create_index(batch_op.f('ix_invoices_created_at'), ['created_at'], unique=False)
        batch_op.create_index('ix_invoices_agent_direction', ['agent_id', 'invoice_direction'], unique=False)

    op.create_table('invoice_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('invoice_id', sa.Integer(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('item_type', sa.String(length=16), nullable=False, server_default='other'),
        sa.Column('quantity', MONEY, nullable=False, server_default='1'),
        sa.Column('unit_price', MONEY, nullable=False, server_default='0'),
        sa.Column('unit_type', sa.String(length=16), nullable=False, server_default='fixed'),
        sa.Column('weight_kg', MONEY, nullable=True),
        sa.Column('amount', MONEY, nullable=False, server_default='0'),
        sa.Column('amount_supplied', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('product_service_id', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('invoice_items', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_invoice_items_invoice_id'), ['invoice_id'], unique=False)

    op.create_table('document_counters',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('counter_key', sa.String(length=32), nullable=False),
        sa.Column('prefix', sa.String(length=16), nullable=False),
        sa.Column('counter_value', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('document_counters', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_document_counters_counter_key'), ['counter_key'], unique=True)

    # ==========================================================================
    # 4. PAYMENTS
    # ==========================================================================
    op.create_table('payments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('invoice_id', sa.Integer(), nullable=False),
        sa.Column('amount', MONEY, nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('amount_in_base', MONEY, nullable=True),
        sa.Column('payment_method', sa.String(length=32), nullable=False),
        sa.Column('deposit_account_code', sa.String(length=16), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('reference', sa.String(length=128), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('verification_status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('verified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('verified_by_user_id', sa.Integer(), nullable=True),
        sa.Column('rejection_reason', sa.String(length=255), nullable=True),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id'], ),
        sa.ForeignKeyConstraint(['verified_by_user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('payments', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_payments_invoice_id'), ['invoice_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_payments_verification_status'), ['verification_status'], unique=False)
        batch_op.create_index(batch_op.f('ix_payments_created_by_user_id'), ['created_by_user_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_payments_created_at'), ['created_at'], unique=False)
        batch_op.create_index('ix_payments_invoice_verification', ['invoice_id', 'verification_status'], unique=False)

    # ==========================================================================
    # 5. JOURNAL
    # ==========================================================================
    op.create_table('journal_entries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('entry_number', sa.String(length=32), nullable=False),
        sa.Column('entry_date', sa.Date(), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=False),
        sa.Column('reference_type', sa.String(length=16), nullable=False),
        sa.Column('reference_id', sa.Integer(), nullable=False),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('journal_entries', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_journal_entries_entry_number'), ['entry_number'], unique=True)
        batch_op.create_index('ix_journal_entries_reference', ['reference_type', 'reference_id'], unique=False)

    op.create_table('journal_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('journal_entry_id', sa.Integer(), nullable=False),
        sa.Column('account_code', sa.String(length=16), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('debit_amount', MONEY, nullable=False, server_default='0'),
        sa.Column('credit_amount', MONEY, nullable=False, server_default='0'),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('exchange_rate', RATE, nullable=False, server_default='1'),
        sa.Column('amount_in_base', MONEY, nullable=False, server_default='0'),
        sa.ForeignKeyConstraint(['journal_entry_id'], ['journal_entries.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('journal_lines', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_journal_lines_journal_entry_id'), ['journal_entry_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_journal_lines_account_code'), ['account_code'], unique=False)

    # ==========================================================================
    # 6. SETTLEMENTS
    # ==========================================================================
    op.create_table('agent_settlements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('settlement_number', sa.String(length=32), nullable=False),
        sa.Column('agent_id', sa.Integer(), nullable=False),
        sa.Column('settlement_type', sa.String(length=32), nullable=False),
        sa.Column('period_start', sa.Date(), nullable=True),
        sa.Column('period_end', sa.Date(), nullable=True),
        sa.Column('total_amount', MONEY, nullable=False, server_default='0'),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('amount_in_base', MONEY, nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('approved_by_user_id', sa.Integer(), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('payment_reference', sa.String(length=128), nullable=True),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['agent_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['approved_by_user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('agent_settlements', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_agent_settlements_settlement_number'), ['settlement_number'], unique=True)
        batch_op.create_index(batch_op.f('ix_agent_settlements_agent_id'), ['agent_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_agent_settlements_status'), ['status'], unique=False)
        batch_op.create_index(batch_op.f('ix_agent_settlements_created_at'), ['created_at'], unique=False)

    op.create_table('agent_settlement_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('settlement_id', sa.Integer(), nullable=False),
        sa.Column('invoice_id', sa.Integer(), nullable=False),
        sa.Column('amount', MONEY, nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['settlement_id'], ['agent_settlements.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('agent_settlement_items', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_agent_settlement_items_settlement_id'), ['settlement_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_agent_settlement_items_invoice_id'), ['invoice_id'], unique=False)

    # ==========================================================================
    # 7. ESTIMATES
    # ==========================================================================
    op.create_table('estimates',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('estimate_number', sa.String(length=32), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('origin_region', sa.String(length=16), nullable=False),
        sa.Column('weight_kg', MONEY, nullable=False),
        sa.Column('rate_per_kg', MONEY, nullable=False),
        sa.Column('handling_fee', MONEY, nullable=False, server_default='0'),
        sa.Column('subtotal', MONEY, nullable=False, server_default='0'),
        sa.Column('total', MONEY, nullable=False, server_default='0'),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('valid_until', sa.Date(), nullable=True),
        sa.Column('invoice_id', sa.Integer(), nullable=True),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], ),
        sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id'], ),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('estimates', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_estimates_estimate_number'), ['estimate_number'], unique=True)
        batch_op.create_index(batch_op.f('ix_estimates_customer_id'), ['customer_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_estimates_status'), ['status'], unique=False)
        batch_op.create_index(batch_op.f('ix_estimates_created_at'), ['created_at'], unique=False)


def downgrade():
    op.drop_table('estimates')
    op.drop_table('agent_settlement_items')
    op.drop_table('agent_settlements')
    op.drop_table('journal_lines')
    op.drop_table('journal_entries')
    op.drop_table('payments')
    op.drop_table('document_counters')
    op.drop_table('invoice_items')
    op.drop_table('invoices')
    op.drop_table('currency_exchange_rates')
    op.drop_table('customers')
    op.drop_table('agent_settings')
    op.drop_table('users')
