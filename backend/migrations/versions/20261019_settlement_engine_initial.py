"""settlement engine initial schema

Revision ID: 20261019_settlement
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the storefront settlement schema from scratch:
- locations, products, product_variants, custom_duty_rates: catalog (read-only for settlement)
- stock, location_stock, stock_history: central + franchise stock and its append-only history
- orders, order_lines: immutable order snapshots
- tax_configuration, financial_transactions, product_cost_breakdown: accounting
- procurement_queue: replenishment worklist
- audit_events, settlement_tasks: audit trail and post-commit bookkeeping
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_settlement'
down_revision = None
branch_labels = None
depends_on = None


def _now():
    return sa.text('CURRENT_TIMESTAMP')


def upgrade():
    # ============================================================================
    # Catalog
    # ============================================================================
    op.create_table(
        'locations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('kind', sa.String(length=16), nullable=False),
        sa.Column('is_default', sa.Boolean(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code', name='uq_locations_code'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('category', sa.String(length=128), nullable=True),
        sa.Column('price_cents', sa.Integer(), nullable=True),
        sa.Column('cost_cents', sa.Integer(), nullable=True),
        sa.Column('has_variants', sa.Boolean(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_products_category', 'products', ['category'])
    op.create_index('ix_products_location_id', 'products', ['location_id'])
    op.create_index('ix_products_category_active', 'products', ['category', 'is_active'])

    op.create_table(
        'product_variants',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=True),
        sa.Column('attributes', sa.JSON(), nullable=False),
        sa.Column('price_cents', sa.Integer(), nullable=True),
        sa.Column('cost_cents', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_product_variants_product_id', 'product_variants', ['product_id'])

    op.create_table(
        'custom_duty_rates',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('category', sa.String(length=128), nullable=False),
        sa.Column('duty_rate', sa.Numeric(6, 2), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('category', name='uq_custom_duty_rates_category'),
        sqlite_autoincrement=True
    )

    # ============================================================================
    # Orders (before stock_history, which references them)
    # ============================================================================
    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('customer_email', sa.String(length=255), nullable=False),
        sa.Column('customer_id', sa.String(length=64), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('stock_status', sa.String(length=24), nullable=False),
        sa.Column('total_cents', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('franchise_location_id', sa.Integer(), nullable=True),
        sa.Column('delivery_info', sa.JSON(), nullable=True),
        sa.Column('created_by', sa.String(length=128), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column('cancelled_reason', sa.String(length=255), nullable=True),
        sa.ForeignKeyConstraint(['franchise_location_id'], ['locations.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_orders_customer_email', 'orders', ['customer_email'])
    op.create_index('ix_orders_customer_id', 'orders', ['customer_id'])
    op.create_index('ix_orders_status', 'orders', ['status'])
    op.create_index('ix_orders_stock_status', 'orders', ['stock_status'])
    op.create_index('ix_orders_franchise_location_id', 'orders', ['franchise_location_id'])
    op.create_index('ix_orders_status_created', 'orders', ['status', 'created_at'])

    op.create_table(
        'order_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('line_number', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('variant_id', sa.Integer(), nullable=True),
        sa.Column('product_name', sa.String(length=255), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('unit_cost_cents', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('line_total_cents', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['variant_id'], ['product_variants.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_id', 'line_number', name='uq_order_lines_number'),
        sa.CheckConstraint('quantity > 0', name='ck_order_lines_quantity_pos'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_order_lines_order_id', 'order_lines', ['order_id'])
    op.create_index('ix_order_lines_product_id', 'order_lines', ['product_id'])

    # ============================================================================
    # Stock
    # ============================================================================
    op.create_table(
        'stock',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('variant_id', sa.Integer(), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['variant_id'], ['product_variants.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('product_id', 'variant_id', name='uq_stock_product_variant'),
        sa.CheckConstraint('quantity >= 0', name='ck_stock_quantity_nonneg'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_stock_product_id', 'stock', ['product_id'])
    op.create_index('ix_stock_variant_id', 'stock', ['variant_id'])
    op.create_index(
        'uq_stock_product_no_variant',
        'stock',
        ['product_id'],
        unique=True,
        sqlite_where=sa.text('variant_id IS NULL'),
        postgresql_where=sa.text('variant_id IS NULL'),
    )

    op.create_table(
        'location_stock',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('variant_id', sa.Integer(), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['variant_id'], ['product_variants.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('location_id', 'product_id', 'variant_id', name='uq_location_stock_key'),
        sa.CheckConstraint('quantity >= 0', name='ck_location_stock_quantity_nonneg'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_location_stock_location_id', 'location_stock', ['location_id'])
    op.create_index('ix_location_stock_product_id', 'location_stock', ['product_id'])
    op.create_index('ix_location_stock_variant_id', 'location_stock', ['variant_id'])
    op.create_index(
        'uq_location_stock_no_variant',
        'location_stock',
        ['location_id', 'product_id'],
        unique=True,
        sqlite_where=sa.text('variant_id IS NULL'),
        postgresql_where=sa.text('variant_id IS NULL'),
    )

    op.create_table(
        'stock_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('variant_id', sa.Integer(), nullable=True),
        sa.Column('location_id', sa.Integer(), nullable=True),
        sa.Column('change_type', sa.String(length=32), nullable=False),
        sa.Column('quantity_change', sa.Integer(), nullable=False),
        sa.Column('previous_quantity', sa.Integer(), nullable=False),
        sa.Column('new_quantity', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=True),
        sa.Column('created_by', sa.String(length=128), nullable=False),
        sa.Column('note', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['variant_id'], ['product_variants.id']),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id']),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint(
            'new_quantity = previous_quantity + quantity_change',
            name='ck_stock_history_arithmetic',
        ),
        sqlite_autoincrement=True
    )
    op.create_index('ix_stock_history_change_type', 'stock_history', ['change_type'])
    op.create_index('ix_stock_history_order_id', 'stock_history', ['order_id'])
    op.create_index('ix_stock_history_key', 'stock_history', ['product_id', 'variant_id', 'location_id', 'id'])

    # ============================================================================
    # Accounting
    # ============================================================================
    op.create_table(
        'tax_configuration',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tax_rate', sa.Numeric(6, 2), nullable=False),
        sa.Column('tax_inclusive', sa.Boolean(), nullable=False),
        sa.Column('import_vat_rate', sa.Numeric(6, 2), nullable=False),
        sa.Column('corporate_tax_rate', sa.Numeric(6, 2), nullable=False),
        sa.Column('import_vat_reclaim_rate', sa.Numeric(6, 2), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('updated_by', sa.String(length=128), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_tax_configuration_is_active', 'tax_configuration', ['is_active'])

    op.create_table(
        'financial_transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('transaction_type', sa.String(length=16), nullable=False),
        sa.Column('revenue_amount_cents', sa.Integer(), nullable=False),
        sa.Column('tax_amount_cents', sa.Integer(), nullable=False),
        sa.Column('cost_amount_cents', sa.Integer(), nullable=False),
        sa.Column('import_vat_amount_cents', sa.Integer(), nullable=False),
        sa.Column('corporate_tax_amount_cents', sa.Integer(), nullable=False),
        sa.Column('profit_before_tax_cents', sa.Integer(), nullable=False),
        sa.Column('net_profit_after_tax_cents', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('tax_rate', sa.Numeric(6, 2), nullable=False),
        sa.Column('tax_inclusive', sa.Boolean(), nullable=False),
        sa.Column('import_vat_rate', sa.Numeric(6, 2), nullable=False),
        sa.Column('corporate_tax_rate', sa.Numeric(6, 2), nullable=False),
        sa.Column('import_vat_reclaim_rate', sa.Numeric(6, 2), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_id', 'transaction_type', name='uq_financial_transactions_order_type'),
        sa.CheckConstraint('corporate_tax_amount_cents >= 0', name='ck_financial_transactions_corp_tax_nonneg'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_financial_transactions_order_id', 'financial_transactions', ['order_id'])
    op.create_index('ix_financial_transactions_created_at', 'financial_transactions', ['created_at'])

    op.create_table(
        'product_cost_breakdown',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('variant_id', sa.Integer(), nullable=True),
        sa.Column('base_cost_cents', sa.Integer(), nullable=False),
        sa.Column('transport_cost_per_unit_cents', sa.Integer(), nullable=False),
        sa.Column('transport_cost_per_shipment_cents', sa.Integer(), nullable=False),
        sa.Column('transport_cost_allocated_per_unit_cents', sa.Integer(), nullable=False),
        sa.Column('custom_duty_rate', sa.Numeric(6, 2), nullable=False),
        sa.Column('custom_duty_amount_cents', sa.Integer(), nullable=False),
        sa.Column('import_vat_amount_cents', sa.Integer(), nullable=False),
        sa.Column('total_landed_cost_cents', sa.Integer(), nullable=False),
        sa.Column('effective_cost_cents', sa.Integer(), nullable=False),
        sa.Column('suggested_selling_price_cents', sa.Integer(), nullable=True),
        sa.Column('desired_profit_margin', sa.Numeric(6, 2), nullable=False),
        sa.Column('calculated_by', sa.String(length=128), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['variant_id'], ['product_variants.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('product_id', 'variant_id', name='uq_product_cost_breakdown_item'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_product_cost_breakdown_product_id', 'product_cost_breakdown', ['product_id'])
    op.create_index(
        'uq_product_cost_breakdown_no_variant',
        'product_cost_breakdown',
        ['product_id'],
        unique=True,
        sqlite_where=sa.text('variant_id IS NULL'),
        postgresql_where=sa.text('variant_id IS NULL'),
    )

    # ============================================================================
    # Procurement
    # ============================================================================
    op.create_table(
        'procurement_queue',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('variant_id', sa.Integer(), nullable=True),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('quantity_needed', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('priority', sa.String(length=16), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('source_order_id', sa.Integer(), nullable=True),
        sa.Column('created_by', sa.String(length=128), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column('ordered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('received_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['variant_id'], ['product_variants.id']),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id']),
        sa.ForeignKeyConstraint(['source_order_id'], ['orders.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('quantity_needed > 0', name='ck_procurement_queue_qty_pos'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_procurement_queue_location_id', 'procurement_queue', ['location_id'])
    op.create_index('ix_procurement_queue_status', 'procurement_queue', ['status'])
    op.create_index(
        'ix_procurement_queue_key_status',
        'procurement_queue',
        ['product_id', 'variant_id', 'location_id', 'status'],
    )
    op.create_index(
        'uq_procurement_queue_pending_variant',
        'procurement_queue',
        ['product_id', 'variant_id', 'location_id'],
        unique=True,
        sqlite_where=sa.text("status = 'pending'"),
        postgresql_where=sa.text("status = 'pending'"),
    )
    op.create_index(
        'uq_procurement_queue_pending_no_variant',
        'procurement_queue',
        ['product_id', 'location_id'],
        unique=True,
        sqlite_where=sa.text("status = 'pending' AND variant_id IS NULL"),
        postgresql_where=sa.text("status = 'pending' AND variant_id IS NULL"),
    )

    # ============================================================================
    # Audit trail + post-commit tasks
    # ============================================================================
    op.create_table(
        'audit_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('event_type', sa.String(length=64), nullable=False),
        sa.Column('entity_type', sa.String(length=32), nullable=False),
        sa.Column('entity_id', sa.Integer(), nullable=False),
        sa.Column('actor_id', sa.String(length=128), nullable=False),
        sa.Column('actor_kind', sa.String(length=16), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=True),
        sa.Column('note', sa.String(length=255), nullable=True),
        sa.Column('payload', sa.JSON(), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_audit_events_event_type', 'audit_events', ['event_type'])
    op.create_index('ix_audit_events_order_id', 'audit_events', ['order_id'])
    op.create_index('ix_audit_events_entity', 'audit_events', ['entity_type', 'entity_id'])

    op.create_table(
        'settlement_tasks',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('task_type', sa.String(length=16), nullable=False),
        sa.Column('order_line_number', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('attempts', sa.Integer(), nullable=False),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_settlement_tasks_order_id', 'settlement_tasks', ['order_id'])
    op.create_index('ix_settlement_tasks_status', 'settlement_tasks', ['status', 'task_type'])


def downgrade():
    for table in (
        'settlement_tasks',
        'audit_events',
        'procurement_queue',
        'product_cost_breakdown',
        'financial_transactions',
        'tax_configuration',
        'stock_history',
        'location_stock',
        'stock',
        'order_lines',
        'orders',
        'custom_duty_rates',
        'product_variants',
        'products',
        'locations',
    ):
        op.drop_table(table)
