"""initial ledger schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the complete shop ledger schema:
- users, session_tokens: operator login
- accounts, transactions: payment accounts and the append-only ledger
- products, inventory (+ purchase/sale history): stock and weighted cost
- suppliers, customers (+ history): party aggregates
- purchases, sales (+ lines, sale payments)

Money columns are BigInteger cents; unit costs are BigInteger 1/10000 units.
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0001_initial'
down_revision = None
branch_labels = None
depends_on = None


def _now():
    return sa.text('CURRENT_TIMESTAMP')


def upgrade():
    # ============================================================================
    # users / session_tokens
    # ============================================================================
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_users')),
        sqlite_autoincrement=True
    )
    op.create_index(op.f('ix_users_username'), 'users', ['username'], unique=True)

    op.create_table(
        'session_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('token_hash', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column('last_used_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_revoked', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('revoked_reason', sa.String(length=255), nullable=True),
        sa.Column('user_agent', sa.String(length=512), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], name=op.f('fk_session_tokens_user_id_users')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_session_tokens')),
        sqlite_autoincrement=True
    )
    op.create_index(op.f('ix_session_tokens_user_id'), 'session_tokens', ['user_id'])
    op.create_index(op.f('ix_session_tokens_token_hash'), 'session_tokens', ['token_hash'], unique=True)
    op.create_index(op.f('ix_session_tokens_expires_at'), 'session_tokens', ['expires_at'])
    op.create_index(op.f('ix_session_tokens_is_revoked'), 'session_tokens', ['is_revoked'])
    op.create_index('ix_session_tokens_user_active', 'session_tokens', ['user_id', 'is_revoked'])

    # ============================================================================
    # accounts / transactions
    # ============================================================================
    op.create_table(
        'accounts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=True),
        sa.Column('bank_name', sa.String(length=120), nullable=True),
        sa.Column('account_number', sa.String(length=64), nullable=True),
        sa.Column('routing_number', sa.String(length=64), nullable=True),
        sa.Column('branch_name', sa.String(length=120), nullable=True),
        sa.Column('method', sa.String(length=32), nullable=True),
        sa.Column('number', sa.String(length=32), nullable=True),
        sa.Column('owner_name', sa.String(length=120), nullable=True),
        sa.Column('balance', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('is_default', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_accounts')),
        sqlite_autoincrement=True
    )
    op.create_index(op.f('ix_accounts_type'), 'accounts', ['type'])
    op.create_index('ix_accounts_type_method', 'accounts', ['type', 'method'])

    op.create_table(
        'transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('time', sa.String(length=8), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=True),
        sa.Column('account_type', sa.String(length=16), nullable=True),
        sa.Column('entry_source', sa.String(length=64), nullable=False),
        sa.Column('transaction_type', sa.String(length=8), nullable=False),
        sa.Column('amount', sa.BigInteger(), nullable=False),
        sa.Column('balance_before_transaction', sa.BigInteger(), nullable=True),
        sa.Column('balance_after_transaction', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('particulars', sa.String(length=255), nullable=True),
        sa.Column('remarks', sa.Text(), nullable=True),
        sa.Column('reference_type', sa.String(length=16), nullable=True),
        sa.Column('reference_id', sa.Integer(), nullable=True),
        sa.Column('payment_details', sa.JSON(), nullable=True),
        sa.Column('products', sa.JSON(), nullable=True),
        sa.Column('created_by', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], name=op.f('fk_transactions_account_id_accounts')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_transactions')),
        sqlite_autoincrement=True
    )
    op.create_index(op.f('ix_transactions_account_id'), 'transactions', ['account_id'])
    op.create_index(op.f('ix_transactions_entry_source'), 'transactions', ['entry_source'])
    op.create_index('ix_transactions_account_order', 'transactions', ['account_id', 'date', 'time', 'id'])
    op.create_index('ix_transactions_reference', 'transactions', ['reference_type', 'reference_id'])

    # ============================================================================
    # products / inventory
    # ============================================================================
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('sale_price', sa.BigInteger(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_products')),
        sa.UniqueConstraint('sku', name=op.f('uq_products_sku')),
        sqlite_autoincrement=True
    )
    op.create_index('ix_products_name', 'products', ['name'])

    op.create_table(
        'inventory',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('item_name', sa.String(length=255), nullable=False),
        sa.Column('stock_qty', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('sale_price', sa.BigInteger(), nullable=True),
        sa.Column('last_purchase_price', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('average_purchase_price', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('reorder_level', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_updated', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], name=op.f('fk_inventory_product_id_products')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_inventory')),
        sqlite_autoincrement=True
    )
    op.create_index(op.f('ix_inventory_product_id'), 'inventory', ['product_id'], unique=True)

    op.create_table(
        'inventory_purchase_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('item_id', sa.Integer(), nullable=False),
        sa.Column('invoice_id', sa.Integer(), nullable=True),
        sa.Column('qty', sa.Integer(), nullable=False),
        sa.Column('purchase_price', sa.BigInteger(), nullable=False),
        sa.Column('subtotal', sa.BigInteger(), nullable=False),
        sa.Column('date', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['item_id'], ['inventory.id'], name=op.f('fk_inventory_purchase_history_item_id_inventory')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_inventory_purchase_history')),
        sqlite_autoincrement=True
    )
    op.create_index(op.f('ix_inventory_purchase_history_item_id'), 'inventory_purchase_history', ['item_id'])
    op.create_index('ix_inventory_purchase_history_item_invoice', 'inventory_purchase_history', ['item_id', 'invoice_id'])

    op.create_table(
        'inventory_sale_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('item_id', sa.Integer(), nullable=False),
        sa.Column('memo_id', sa.Integer(), nullable=True),
        sa.Column('qty', sa.Integer(), nullable=False),
        sa.Column('price', sa.BigInteger(), nullable=False),
        sa.Column('subtotal', sa.BigInteger(), nullable=False),
        sa.Column('date', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['item_id'], ['inventory.id'], name=op.f('fk_inventory_sale_history_item_id_inventory')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_inventory_sale_history')),
        sqlite_autoincrement=True
    )
    op.create_index(op.f('ix_inventory_sale_history_item_id'), 'inventory_sale_history', ['item_id'])
    op.create_index('ix_inventory_sale_history_item_memo', 'inventory_sale_history', ['item_id', 'memo_id'])

    # ============================================================================
    # suppliers / customers
    # ============================================================================
    op.create_table(
        'suppliers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('address', sa.String(length=255), nullable=True),
        sa.Column('supplier_type', sa.String(length=32), nullable=True),
        sa.Column('total_purchase', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('total_due', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('last_purchase_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_payment_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('supplied_products', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_suppliers')),
        sqlite_autoincrement=True
    )
    op.create_index('ix_suppliers_name', 'suppliers', ['name'])

    op.create_table(
        'supplier_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('supplier_id', sa.Integer(), nullable=False),
        sa.Column('date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('type', sa.String(length=32), nullable=False),
        sa.Column('purchase_id', sa.Integer(), nullable=True),
        sa.Column('products', sa.JSON(), nullable=True),
        sa.Column('total_amount', sa.BigInteger(), nullable=True),
        sa.Column('paid_amount', sa.BigInteger(), nullable=True),
        sa.Column('previous_due', sa.BigInteger(), nullable=True),
        sa.Column('due_after_payment', sa.BigInteger(), nullable=True),
        sa.Column('remarks', sa.String(length=255), nullable=True),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id'], name=op.f('fk_supplier_history_supplier_id_suppliers')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_supplier_history')),
        sqlite_autoincrement=True
    )
    op.create_index(op.f('ix_supplier_history_supplier_id'), 'supplier_history', ['supplier_id'])
    op.create_index(op.f('ix_supplier_history_purchase_id'), 'supplier_history', ['purchase_id'])

    op.create_table(
        'customers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('address', sa.String(length=255), nullable=True),
        sa.Column('customer_type', sa.String(length=16), nullable=False, server_default='regular'),
        sa.Column('total_sales', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('total_due', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('advance', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('last_sale_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_payment_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('purchased_products', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_customers')),
        sqlite_autoincrement=True
    )
    op.create_index('ix_customers_name', 'customers', ['name'])

    op.create_table(
        'customer_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('type', sa.String(length=32), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=True),
        sa.Column('products', sa.JSON(), nullable=True),
        sa.Column('total_amount', sa.BigInteger(), nullable=True),
        sa.Column('paid_amount', sa.BigInteger(), nullable=True),
        sa.Column('previous_due', sa.BigInteger(), nullable=True),
        sa.Column('due_after_payment', sa.BigInteger(), nullable=True),
        sa.Column('remarks', sa.String(length=255), nullable=True),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], name=op.f('fk_customer_history_customer_id_customers')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_customer_history')),
        sqlite_autoincrement=True
    )
    op.create_index(op.f('ix_customer_history_customer_id'), 'customer_history', ['customer_id'])
    op.create_index(op.f('ix_customer_history_sale_id'), 'customer_history', ['sale_id'])

    # ============================================================================
    # purchases
    # ============================================================================
    op.create_table(
        'purchases',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('supplier_id', sa.Integer(), nullable=True),
        sa.Column('total_amount', sa.BigInteger(), nullable=False),
        sa.Column('paid_amount', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('payment_due', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('payment_account_id', sa.Integer(), nullable=True),
        sa.Column('payment_type', sa.String(length=32), nullable=True),
        sa.Column('date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_payment_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_by', sa.String(length=64), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id'], name=op.f('fk_purchases_supplier_id_suppliers')),
        sa.ForeignKeyConstraint(['payment_account_id'], ['accounts.id'], name=op.f('fk_purchases_payment_account_id_accounts')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_purchases')),
        sqlite_autoincrement=True
    )
    op.create_index(op.f('ix_purchases_supplier_id'), 'purchases', ['supplier_id'])
    op.create_index('ix_purchases_supplier_date', 'purchases', ['supplier_id', 'date'])

    op.create_table(
        'purchase_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('purchase_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('qty', sa.Integer(), nullable=False),
        sa.Column('purchase_price', sa.BigInteger(), nullable=False),
        sa.Column('subtotal', sa.BigInteger(), nullable=False),
        sa.ForeignKeyConstraint(['purchase_id'], ['purchases.id'], name=op.f('fk_purchase_lines_purchase_id_purchases')),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], name=op.f('fk_purchase_lines_product_id_products')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_purchase_lines')),
        sqlite_autoincrement=True
    )
    op.create_index(op.f('ix_purchase_lines_purchase_id'), 'purchase_lines', ['purchase_id'])
    op.create_index(op.f('ix_purchase_lines_product_id'), 'purchase_lines', ['product_id'])

    # ============================================================================
    # sales
    # ============================================================================
    op.create_table(
        'sales',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('memo_no', sa.String(length=64), nullable=True),
        sa.Column('date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=True),
        sa.Column('customer_name', sa.String(length=255), nullable=True),
        sa.Column('total', sa.BigInteger(), nullable=False),
        sa.Column('paid_amount', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('due', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('advance', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('account_id', sa.Integer(), nullable=True),
        sa.Column('payment_method', sa.String(length=32), nullable=True),
        sa.Column('last_payment_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_by', sa.String(length=64), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], name=op.f('fk_sales_customer_id_customers')),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], name=op.f('fk_sales_account_id_accounts')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_sales')),
        sqlite_autoincrement=True
    )
    op.create_index(op.f('ix_sales_memo_no'), 'sales', ['memo_no'])
    op.create_index(op.f('ix_sales_customer_id'), 'sales', ['customer_id'])
    op.create_index('ix_sales_customer_date', 'sales', ['customer_id', 'date'])

    op.create_table(
        'sale_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('qty', sa.Integer(), nullable=False),
        sa.Column('sale_price', sa.BigInteger(), nullable=False),
        sa.Column('subtotal', sa.BigInteger(), nullable=False),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id'], name=op.f('fk_sale_lines_sale_id_sales')),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], name=op.f('fk_sale_lines_product_id_products')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_sale_lines')),
        sqlite_autoincrement=True
    )
    op.create_index(op.f('ix_sale_lines_sale_id'), 'sale_lines', ['sale_id'])
    op.create_index(op.f('ix_sale_lines_product_id'), 'sale_lines', ['product_id'])

    op.create_table(
        'sale_payments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('amount', sa.BigInteger(), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=True),
        sa.Column('due_after_payment', sa.BigInteger(), nullable=False),
        sa.Column('remarks', sa.String(length=255), nullable=True),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id'], name=op.f('fk_sale_payments_sale_id_sales')),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], name=op.f('fk_sale_payments_account_id_accounts')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_sale_payments')),
        sqlite_autoincrement=True
    )
    op.create_index(op.f('ix_sale_payments_sale_id'), 'sale_payments', ['sale_id'])


def downgrade():
    for table in (
        'sale_payments', 'sale_lines', 'sales',
        'purchase_lines', 'purchases',
        'customer_history', 'customers',
        'supplier_history', 'suppliers',
        'inventory_sale_history', 'inventory_purchase_history', 'inventory', 'products',
        'transactions', 'accounts',
        'session_tokens', 'users',
    ):
        op.drop_table(table)
