"""initial stock ledger schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the complete schema from scratch:
- users / session_tokens: role-based accounts and hashed bearer tokens
- company_profiles: single-row company profile with document prefixes
- categories / products / variant_types / variant_options /
  product_variants / product_variant_values: the catalog
- stock_entries / stock_entry_items: incoming stock
- customers / sales / sale_items: outgoing stock
- activity_logs: audit trail for every mutating action
- document_sequences: per-day invoice and stock entry counters
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ============================================================================
    # users / session_tokens
    # ============================================================================
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=32), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id', name='pk_users'),
        sa.UniqueConstraint('email', name='uq_users_email'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_users_role_active', 'users', ['role', 'is_active'])

    op.create_table(
        'session_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('token_hash', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_used_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_revoked', sa.Boolean(), nullable=False),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('revoked_reason', sa.String(length=255), nullable=True),
        sa.Column('user_agent', sa.String(length=512), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], name='fk_session_tokens_user_id_users'),
        sa.PrimaryKeyConstraint('id', name='pk_session_tokens'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_session_tokens_user_id', 'session_tokens', ['user_id'])
    op.create_index('ix_session_tokens_token_hash', 'session_tokens', ['token_hash'], unique=True)
    op.create_index('ix_session_tokens_expires_at', 'session_tokens', ['expires_at'])
    op.create_index('ix_session_tokens_is_revoked', 'session_tokens', ['is_revoked'])
    op.create_index('ix_session_tokens_user_active', 'session_tokens', ['user_id', 'is_revoked'])

    # ============================================================================
    # company_profiles
    # ============================================================================
    op.create_table(
        'company_profiles',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('tax_number', sa.String(length=64), nullable=True),
        sa.Column('invoice_prefix', sa.String(length=10), nullable=False),
        sa.Column('stock_entry_prefix', sa.String(length=10), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_company_profiles'),
        sqlite_autoincrement=True
    )

    # ============================================================================
    # catalog
    # ============================================================================
    op.create_table(
        'categories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id', name='pk_categories'),
        sa.UniqueConstraint('name', name='uq_categories_name'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category_id', sa.Integer(), nullable=False),
        sa.Column('image_url', sa.String(length=512), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['category_id'], ['categories.id'], name='fk_products_category_id_categories'),
        sa.PrimaryKeyConstraint('id', name='pk_products'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_products_category_id', 'products', ['category_id'])
    op.create_index('ix_products_name', 'products', ['name'])
    op.create_index('ix_products_category_active', 'products', ['category_id', 'is_active'])

    op.create_table(
        'variant_types',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], name='fk_variant_types_product_id_products'),
        sa.PrimaryKeyConstraint('id', name='pk_variant_types'),
        sa.UniqueConstraint('product_id', 'name', name='uq_variant_types_product_name'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_variant_types_product_id', 'variant_types', ['product_id'])

    op.create_table(
        'variant_options',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('variant_type_id', sa.Integer(), nullable=False),
        sa.Column('value', sa.String(length=64), nullable=False),
        sa.ForeignKeyConstraint(['variant_type_id'], ['variant_types.id'],
                                name='fk_variant_options_variant_type_id_variant_types'),
        sa.PrimaryKeyConstraint('id', name='pk_variant_options'),
        sa.UniqueConstraint('variant_type_id', 'value', name='uq_variant_options_type_value'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_variant_options_variant_type_id', 'variant_options', ['variant_type_id'])

    # current_stock is only ever changed by conditional UPDATEs in the stock
    # ledger; the CHECK is the last line against a negative balance.
    op.create_table(
        'product_variants',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('cost_price_cents', sa.Integer(), nullable=False),
        sa.Column('selling_price_cents', sa.Integer(), nullable=False),
        sa.Column('current_stock', sa.Integer(), nullable=False),
        sa.Column('min_stock_level', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.CheckConstraint('current_stock >= 0', name='ck_product_variants_current_stock_non_negative'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], name='fk_product_variants_product_id_products'),
        sa.PrimaryKeyConstraint('id', name='pk_product_variants'),
        sa.UniqueConstraint('sku', name='uq_product_variants_sku'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_product_variants_product_id', 'product_variants', ['product_id'])
    op.create_index('ix_product_variants_product_active', 'product_variants', ['product_id', 'is_active'])

    op.create_table(
        'product_variant_values',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('variant_id', sa.Integer(), nullable=False),
        sa.Column('option_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['variant_id'], ['product_variants.id'],
                                name='fk_product_variant_values_variant_id_product_variants'),
        sa.ForeignKeyConstraint(['option_id'], ['variant_options.id'],
                                name='fk_product_variant_values_option_id_variant_options'),
        sa.PrimaryKeyConstraint('id', name='pk_product_variant_values'),
        sa.UniqueConstraint('variant_id', 'option_id', name='uq_product_variant_values_variant_option'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_product_variant_values_variant_id', 'product_variant_values', ['variant_id'])
    op.create_index('ix_product_variant_values_option_id', 'product_variant_values', ['option_id'])

    # ============================================================================
    # stock entries
    # ============================================================================
    op.create_table(
        'stock_entries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('entry_number', sa.String(length=64), nullable=False),
        sa.Column('entry_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('recorded_by_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('cancel_reason', sa.Text(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_by_id', sa.Integer(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['recorded_by_id'], ['users.id'], name='fk_stock_entries_recorded_by_id_users'),
        sa.ForeignKeyConstraint(['cancelled_by_id'], ['users.id'], name='fk_stock_entries_cancelled_by_id_users'),
        sa.PrimaryKeyConstraint('id', name='pk_stock_entries'),
        sa.UniqueConstraint('entry_number', name='uq_stock_entries_entry_number'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_stock_entries_entry_date', 'stock_entries', ['entry_date'])
    op.create_index('ix_stock_entries_recorded_by_id', 'stock_entries', ['recorded_by_id'])
    op.create_index('ix_stock_entries_status', 'stock_entries', ['status'])
    op.create_index('ix_stock_entries_status_date', 'stock_entries', ['status', 'entry_date'])

    op.create_table(
        'stock_entry_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('stock_entry_id', sa.Integer(), nullable=False),
        sa.Column('variant_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('cost_price_cents', sa.Integer(), nullable=False),
        sa.CheckConstraint('quantity > 0', name='ck_stock_entry_items_quantity_positive'),
        sa.ForeignKeyConstraint(['stock_entry_id'], ['stock_entries.id'],
                                name='fk_stock_entry_items_stock_entry_id_stock_entries'),
        sa.ForeignKeyConstraint(['variant_id'], ['product_variants.id'],
                                name='fk_stock_entry_items_variant_id_product_variants'),
        sa.PrimaryKeyConstraint('id', name='pk_stock_entry_items'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_stock_entry_items_stock_entry_id', 'stock_entry_items', ['stock_entry_id'])
    op.create_index('ix_stock_entry_items_variant_id', 'stock_entry_items', ['variant_id'])

    # ============================================================================
    # customers / sales
    # ============================================================================
    op.create_table(
        'customers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id', name='pk_customers'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_customers_name', 'customers', ['name'])
    op.create_index('ix_customers_phone', 'customers', ['phone'])

    op.create_table(
        'sales',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('invoice_number', sa.String(length=64), nullable=False),
        sa.Column('sale_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('salesperson_id', sa.Integer(), nullable=False),
        sa.Column('subtotal_cents', sa.Integer(), nullable=False),
        sa.Column('discount_cents', sa.Integer(), nullable=False),
        sa.Column('total_cents', sa.Integer(), nullable=False),
        sa.Column('payment_method', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('cancel_reason', sa.Text(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('approved_by_id', sa.Integer(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], name='fk_sales_customer_id_customers'),
        sa.ForeignKeyConstraint(['salesperson_id'], ['users.id'], name='fk_sales_salesperson_id_users'),
        sa.ForeignKeyConstraint(['approved_by_id'], ['users.id'], name='fk_sales_approved_by_id_users'),
        sa.PrimaryKeyConstraint('id', name='pk_sales'),
        sa.UniqueConstraint('invoice_number', name='uq_sales_invoice_number'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_sales_sale_date', 'sales', ['sale_date'])
    op.create_index('ix_sales_customer_id', 'sales', ['customer_id'])
    op.create_index('ix_sales_salesperson_id', 'sales', ['salesperson_id'])
    op.create_index('ix_sales_status', 'sales', ['status'])
    op.create_index('ix_sales_status_date', 'sales', ['status', 'sale_date'])
    op.create_index('ix_sales_salesperson_date', 'sales', ['salesperson_id', 'sale_date'])

    op.create_table(
        'sale_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('variant_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('discount_bps', sa.Integer(), nullable=False),
        sa.Column('discount_cents', sa.Integer(), nullable=False),
        sa.Column('total_cents', sa.Integer(), nullable=False),
        sa.CheckConstraint('quantity > 0', name='ck_sale_items_quantity_positive'),
        sa.CheckConstraint('discount_bps >= 0 AND discount_bps <= 10000', name='ck_sale_items_discount_bps_range'),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id'], name='fk_sale_items_sale_id_sales'),
        sa.ForeignKeyConstraint(['variant_id'], ['product_variants.id'],
                                name='fk_sale_items_variant_id_product_variants'),
        sa.PrimaryKeyConstraint('id', name='pk_sale_items'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_sale_items_sale_id', 'sale_items', ['sale_id'])
    op.create_index('ix_sale_items_variant_id', 'sale_items', ['variant_id'])

    # ============================================================================
    # audit trail and numbering
    # ============================================================================
    op.create_table(
        'activity_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('entity_type', sa.String(length=64), nullable=False),
        sa.Column('entity_id', sa.String(length=64), nullable=False),
        sa.Column('details', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], name='fk_activity_logs_user_id_users'),
        sa.PrimaryKeyConstraint('id', name='pk_activity_logs'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_activity_logs_user_id', 'activity_logs', ['user_id'])
    op.create_index('ix_activity_logs_action', 'activity_logs', ['action'])
    op.create_index('ix_activity_logs_created_at', 'activity_logs', ['created_at'])
    op.create_index('ix_activity_logs_entity', 'activity_logs', ['entity_type', 'entity_id'])

    op.create_table(
        'document_sequences',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('document_type', sa.String(length=32), nullable=False),
        sa.Column('prefix', sa.String(length=10), nullable=False),
        sa.Column('day', sa.String(length=6), nullable=False),
        sa.Column('next_number', sa.Integer(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_document_sequences'),
        sa.UniqueConstraint('document_type', 'prefix', 'day', name='uq_document_sequences_type_prefix_day'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_document_sequences_document_type', 'document_sequences', ['document_type'])


def downgrade():
    op.drop_table('document_sequences')
    op.drop_table('activity_logs')
    op.drop_table('sale_items')
    op.drop_table('sales')
    op.drop_table('customers')
    op.drop_table('stock_entry_items')
    op.drop_table('stock_entries')
    op.drop_table('product_variant_values')
    op.drop_table('product_variants')
    op.drop_table('variant_options')
    op.drop_table('variant_types')
    op.drop_table('products')
    op.drop_table('categories')
    op.drop_table('company_profiles')
    op.drop_table('session_tokens')
    op.drop_table('users')
