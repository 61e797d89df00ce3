"""initial ledger schema

Revision ID: 0001_initial_ledger_schema
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the complete AgriPOS ledger schema:
- staff: sign-in identities attributed on every ledger event
- staff_sessions: hashed bearer tokens for signed-in staff
- accounts: customers (FARMER, REGULAR, WHOLESALE) and vendors with credit terms
- products: sellable stock, egg products stocked by collections
- collection_routes / collection_route_farmers: farm-gate routes
- document_sequences: per-day receipt number counters
- transactions / transaction_items: sales and refunds
- egg_collections: graded egg procurement from farmers
- payment_records: money moved against an account balance
- ledger_entries: append-only record of every balance mutation
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0001_initial_ledger_schema'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ============================================================================
    # staff
    # ============================================================================
    op.create_table(
        'staff',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('employee_id', sa.String(length=32), nullable=True),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('first_name', sa.String(length=64), nullable=False),
        sa.Column('last_name', sa.String(length=64), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('position', sa.String(length=16), nullable=False),
        sa.Column('permissions', sa.JSON(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('employee_id'),
        sa.UniqueConstraint('username'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'staff_sessions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('staff_id', sa.Integer(), nullable=False),
        sa.Column('token_hash', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_used_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('user_agent', sa.String(length=255), nullable=True),
        sa.Column('ip_address', sa.String(length=64), nullable=True),
        sa.Column('is_revoked', sa.Boolean(), nullable=False),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('revoked_reason', sa.String(length=64), nullable=True),
        sa.ForeignKeyConstraint(['staff_id'], ['staff.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_staff_sessions_staff_active', 'staff_sessions', ['staff_id', 'is_revoked'])
    op.create_index('ix_staff_sessions_staff_id', 'staff_sessions', ['staff_id'])
    op.create_index('ix_staff_sessions_token_hash', 'staff_sessions', ['token_hash'], unique=True)

    # ============================================================================
    # accounts: credit-bearing counterparties
    # ============================================================================
    op.create_table(
        'accounts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('kind', sa.String(length=16), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('contact_person', sa.String(length=128), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('address', sa.String(length=255), nullable=True),
        sa.Column('credit_limit_cents', sa.BigInteger(), nullable=False),
        sa.Column('credit_balance_cents', sa.BigInteger(), nullable=False),
        sa.Column('payment_terms_days', sa.Integer(), nullable=False),
        sa.Column('credit_status', sa.String(length=16), nullable=False),
        sa.Column('total_purchases_cents', sa.BigInteger(), nullable=False),
        sa.Column('total_egg_sales_cents', sa.BigInteger(), nullable=False),
        sa.Column('last_purchase_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_payment_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.CheckConstraint('credit_limit_cents >= 0', name='ck_accounts_credit_limit_nonneg'),
        sa.CheckConstraint('payment_terms_days >= 0', name='ck_accounts_terms_nonneg'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_accounts_kind', 'accounts', ['kind'])
    op.create_index('ix_accounts_credit_status', 'accounts', ['credit_status'])
    op.create_index('ix_accounts_is_active', 'accounts', ['is_active'])
    op.create_index('ix_accounts_kind_active', 'accounts', ['kind', 'is_active'])

    # ============================================================================
    # products
    # ============================================================================
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('product_type', sa.String(length=16), nullable=False),
        sa.Column('category', sa.String(length=64), nullable=True),
        sa.Column('unit', sa.String(length=16), nullable=False),
        sa.Column('cost_price_cents', sa.Integer(), nullable=False),
        sa.Column('selling_price_cents', sa.Integer(), nullable=False),
        sa.Column('wholesale_price_cents', sa.Integer(), nullable=True),
        sa.Column('stock', sa.Integer(), nullable=False),
        sa.Column('minimum_stock', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.CheckConstraint('stock >= 0', name='ck_products_stock_nonneg'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sku'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_products_product_type', 'products', ['product_type'])
    op.create_index('ix_products_is_active', 'products', ['is_active'])
    op.create_index('ix_products_type_category', 'products', ['product_type', 'category'])

    # ============================================================================
    # collection routes
    # ============================================================================
    op.create_table(
        'collection_routes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
        sqlite_autoincrement=True
    )
    op.create_table(
        'collection_route_farmers',
        sa.Column('route_id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['route_id'], ['collection_routes.id']),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id']),
        sa.PrimaryKeyConstraint('route_id', 'account_id')
    )

    # ============================================================================
    # document_sequences: receipt numbers per (prefix, day)
    # ============================================================================
    op.create_table(
        'document_sequences',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('prefix', sa.String(length=8), nullable=False),
        sa.Column('period', sa.String(length=8), nullable=False),
        sa.Column('next_number', sa.Integer(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('prefix', 'period', name='uq_doc_sequences_prefix_period'),
        sqlite_autoincrement=True
    )

    # ============================================================================
    # transactions / transaction_items
    # ============================================================================
    op.create_table(
        'transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('receipt_number', sa.String(length=32), nullable=False),
        sa.Column('transaction_type', sa.String(length=16), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=True),
        sa.Column('staff_id', sa.Integer(), nullable=False),
        sa.Column('subtotal_cents', sa.Integer(), nullable=False),
        sa.Column('tax_cents', sa.Integer(), nullable=False),
        sa.Column('discount_cents', sa.Integer(), nullable=False),
        sa.Column('total_cents', sa.Integer(), nullable=False),
        sa.Column('payment_method', sa.String(length=16), nullable=False),
        sa.Column('paid_amount_cents', sa.Integer(), nullable=False),
        sa.Column('balance_amount_cents', sa.Integer(), nullable=False),
        sa.Column('due_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('refunded_cents', sa.Integer(), nullable=False),
        sa.Column('refund_of_id', sa.Integer(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('synced', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.CheckConstraint(
            'paid_amount_cents + balance_amount_cents = total_cents',
            name='ck_transactions_paid_plus_balance'
        ),
        sa.ForeignKeyConstraint(['customer_id'], ['accounts.id']),
        sa.ForeignKeyConstraint(['staff_id'], ['staff.id']),
        sa.ForeignKeyConstraint(['refund_of_id'], ['transactions.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('receipt_number'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_transactions_transaction_type', 'transactions', ['transaction_type'])
    op.create_index('ix_transactions_customer_id', 'transactions', ['customer_id'])
    op.create_index('ix_transactions_staff_id', 'transactions', ['staff_id'])
    op.create_index('ix_transactions_payment_method', 'transactions', ['payment_method'])
    op.create_index('ix_transactions_status', 'transactions', ['status'])
    op.create_index('ix_transactions_refund_of_id', 'transactions', ['refund_of_id'])
    op.create_index('ix_transactions_created_at', 'transactions', ['created_at'])
    op.create_index('ix_transactions_customer_created', 'transactions', ['customer_id', 'created_at'])
    op.create_index('ix_transactions_status_created', 'transactions', ['status', 'created_at'])

    op.create_table(
        'transaction_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('transaction_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('product_name', sa.String(length=128), nullable=False),
        sa.Column('product_sku', sa.String(length=64), nullable=False),
        sa.Column('unit', sa.String(length=16), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('line_total_cents', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['transaction_id'], ['transactions.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_transaction_items_transaction_id', 'transaction_items', ['transaction_id'])
    op.create_index('ix_transaction_items_product_id', 'transaction_items', ['product_id'])

    # ============================================================================
    # egg_collections
    # ============================================================================
    op.create_table(
        'egg_collections',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('farmer_id', sa.Integer(), nullable=False),
        sa.Column('route_id', sa.Integer(), nullable=True),
        sa.Column('staff_id', sa.Integer(), nullable=False),
        sa.Column('collection_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('hen_small', sa.Integer(), nullable=False),
        sa.Column('hen_medium', sa.Integer(), nullable=False),
        sa.Column('hen_large', sa.Integer(), nullable=False),
        sa.Column('hen_extra_large', sa.Integer(), nullable=False),
        sa.Column('hen_damaged', sa.Integer(), nullable=False),
        sa.Column('duck_small', sa.Integer(), nullable=False),
        sa.Column('duck_medium', sa.Integer(), nullable=False),
        sa.Column('duck_large', sa.Integer(), nullable=False),
        sa.Column('duck_damaged', sa.Integer(), nullable=False),
        sa.Column('hen_egg_price_cents', sa.Integer(), nullable=False),
        sa.Column('duck_egg_price_cents', sa.Integer(), nullable=False),
        sa.Column('total_hen_eggs', sa.Integer(), nullable=False),
        sa.Column('total_duck_eggs', sa.Integer(), nullable=False),
        sa.Column('total_value_cents', sa.Integer(), nullable=False),
        sa.Column('quality_notes', sa.Text(), nullable=True),
        sa.Column('paid', sa.Boolean(), nullable=False),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('payment_record_id', sa.Integer(), nullable=True),
        sa.Column('synced', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['farmer_id'], ['accounts.id']),
        sa.ForeignKeyConstraint(['route_id'], ['collection_routes.id']),
        sa.ForeignKeyConstraint(['staff_id'], ['staff.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_egg_collections_farmer_id', 'egg_collections', ['farmer_id'])
    op.create_index('ix_egg_collections_route_id', 'egg_collections', ['route_id'])
    op.create_index('ix_egg_collections_staff_id', 'egg_collections', ['staff_id'])
    op.create_index('ix_egg_collections_collection_date', 'egg_collections', ['collection_date'])
    op.create_index('ix_egg_collections_paid', 'egg_collections', ['paid'])
    op.create_index('ix_egg_collections_farmer_paid', 'egg_collections', ['farmer_id', 'paid'])

    # ============================================================================
    # payment_records
    # ============================================================================
    op.create_table(
        'payment_records',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('payment_type', sa.String(length=24), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('payment_method', sa.String(length=16), nullable=False),
        sa.Column('payment_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('staff_id', sa.Integer(), nullable=False),
        sa.Column('reference_number', sa.String(length=64), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('egg_collection_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('amount_cents > 0', name='ck_payment_records_amount_positive'),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id']),
        sa.ForeignKeyConstraint(['staff_id'], ['staff.id']),
        sa.ForeignKeyConstraint(['egg_collection_id'], ['egg_collections.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_payment_records_payment_type', 'payment_records', ['payment_type'])
    op.create_index('ix_payment_records_account_id', 'payment_records', ['account_id'])
    op.create_index('ix_payment_records_staff_id', 'payment_records', ['staff_id'])
    op.create_index('ix_payment_records_egg_collection_id', 'payment_records', ['egg_collection_id'])
    op.create_index('ix_payment_records_account_date', 'payment_records', ['account_id', 'payment_date'])

    # ============================================================================
    # ledger_entries: append-only
    # ============================================================================
    op.create_table(
        'ledger_entries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('entry_type', sa.String(length=24), nullable=False),
        sa.Column('delta_cents', sa.BigInteger(), nullable=False),
        sa.Column('balance_after_cents', sa.BigInteger(), nullable=False),
        sa.Column('transaction_id', sa.Integer(), nullable=True),
        sa.Column('payment_record_id', sa.Integer(), nullable=True),
        sa.Column('egg_collection_id', sa.Integer(), nullable=True),
        sa.Column('staff_id', sa.Integer(), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('note', sa.String(length=255), nullable=True),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id']),
        sa.ForeignKeyConstraint(['transaction_id'], ['transactions.id']),
        sa.ForeignKeyConstraint(['payment_record_id'], ['payment_records.id']),
        sa.ForeignKeyConstraint(['egg_collection_id'], ['egg_collections.id']),
        sa.ForeignKeyConstraint(['staff_id'], ['staff.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_ledger_entries_account_id', 'ledger_entries', ['account_id'])
    op.create_index('ix_ledger_entries_entry_type', 'ledger_entries', ['entry_type'])
    op.create_index('ix_ledger_entries_transaction_id', 'ledger_entries', ['transaction_id'])
    op.create_index('ix_ledger_entries_payment_record_id', 'ledger_entries', ['payment_record_id'])
    op.create_index('ix_ledger_entries_egg_collection_id', 'ledger_entries', ['egg_collection_id'])
    op.create_index('ix_ledger_entries_staff_id', 'ledger_entries', ['staff_id'])
    op.create_index('ix_ledger_entries_occurred_at', 'ledger_entries', ['occurred_at'])
    op.create_index('ix_ledger_entries_account_occurred', 'ledger_entries', ['account_id', 'occurred_at'])


def downgrade():
    op.drop_table('ledger_entries')
    op.drop_table('payment_records')
    op.drop_table('egg_collections')
    op.drop_table('transaction_items')
    op.drop_table('transactions')
    op.drop_table('document_sequences')
    op.drop_table('collection_route_farmers')
    op.drop_table('collection_routes')
    op.drop_table('products')
    op.drop_table('accounts')
    op.drop_table('staff_sessions')
    op.drop_table('staff')
