"""Initial schema: products, inventory movements, orders, cashbook

Revision ID: 20261001_initial
Revises:
Create Date: 2026-10-01

This migration adds:
1. products (denormalized on_hand, CHECK on_hand >= 0)
2. inventory_movements (append-only stock history)
3. orders, order_items, shipments, refunds
4. cashbook_transactions (signed amounts with running balance)
5. document_sequences, event_logs
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ==========================================================================
    # 1. PRODUCTS
    # ==========================================================================
    op.create_table('products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=100), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('category', sa.String(length=64), nullable=True),
        sa.Column('model', sa.String(length=64), nullable=True),
        sa.Column('color', sa.String(length=64), nullable=True),
        sa.Column('brand', sa.String(length=64), nullable=True),
        sa.Column('cost_cny', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('sale_price_krw', sa.Integer(), nullable=True),
        sa.Column('on_hand', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('low_stock_threshold', sa.Integer(), nullable=False, server_default='5'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.CheckConstraint('on_hand >= 0', name='ck_products_on_hand_non_negative'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sku'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('products', schema=None) as batch_op:
        batch_op.create_index('ix_products_active_name', ['is_active', 'name'], unique=False)

    # ==========================================================================
    # 2. INVENTORY MOVEMENTS
    # ==========================================================================
    op.create_table('inventory_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('movement_type', sa.String(length=16), nullable=False),
        sa.Column('quantity_delta', sa.Integer(), nullable=False),
        sa.Column('balance_before', sa.Integer(), nullable=False),
        sa.Column('balance_after', sa.Integer(), nullable=False),
        sa.Column('ref_type', sa.String(length=32), nullable=True),
        sa.Column('ref_id', sa.Integer(), nullable=True),
        sa.Column('ref_no', sa.String(length=64), nullable=True),
        sa.Column('unit_cost_krw', sa.Integer(), nullable=True),
        sa.Column('total_cost_krw', sa.Integer(), nullable=True),
        sa.Column('note', sa.String(length=255), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('inventory_movements', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_inventory_movements_product_id'), ['product_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_inventory_movements_movement_type'), ['movement_type'], unique=False)
        batch_op.create_index(batch_op.f('ix_inventory_movements_occurred_at'), ['occurred_at'], unique=False)
        batch_op.create_index('ix_inventory_movements_product_occurred', ['product_id', 'occurred_at'], unique=False)

    # ==========================================================================
    # 3. ORDERS
    # ==========================================================================
    op.create_table('orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_number', sa.String(length=32), nullable=False),
        sa.Column('customer_name', sa.String(length=100), nullable=False),
        sa.Column('customer_phone', sa.String(length=20), nullable=False),
        sa.Column('pccc', sa.String(length=13), nullable=False),
        sa.Column('shipping_address', sa.String(length=255), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='paid'),
        sa.Column('total_amount', sa.Integer(), nullable=False),
        sa.Column('shipping_fee', sa.Integer(), nullable=True),
        sa.Column('courier_company', sa.String(length=64), nullable=True),
        sa.Column('tracking_number', sa.String(length=64), nullable=True),
        sa.Column('refund_reason', sa.String(length=255), nullable=True),
        sa.Column('shipped_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('refunded_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_number'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('orders', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_orders_pccc'), ['pccc'], unique=False)
        batch_op.create_index(batch_op.f('ix_orders_status'), ['status'], unique=False)
        batch_op.create_index('ix_orders_status_created', ['status', 'created_at'], unique=False)

    op.create_table('order_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Integer(), nullable=False),
        sa.Column('line_total', sa.Integer(), nullable=False),
        sa.CheckConstraint('quantity > 0', name='ck_order_items_quantity_positive'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('order_items', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_order_items_order_id'), ['order_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_order_items_product_id'), ['product_id'], unique=False)

    op.create_table('shipments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('courier_company', sa.String(length=64), nullable=False),
        sa.Column('tracking_number', sa.String(length=64), nullable=False),
        sa.Column('shipping_fee', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('shipping_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_id', name='uq_shipments_order'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('shipments', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_shipments_order_id'), ['order_id'], unique=False)

    op.create_table('refunds',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('refund_fee', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('shipping_refund', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('refunds', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_refunds_order_id'), ['order_id'], unique=False)

    # ==========================================================================
    # 4. CASHBOOK
    # ==========================================================================
    op.create_table('cashbook_transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=32), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='KRW'),
        sa.Column('fx_rate', sa.Numeric(precision=12, scale=4), nullable=True),
        sa.Column('original_amount', sa.Numeric(precision=14, scale=2), nullable=True),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('product_id', sa.Integer(), nullable=True),
        sa.Column('order_id', sa.Integer(), nullable=True),
        sa.Column('supplier', sa.String(length=128), nullable=True),
        sa.Column('invoice_number', sa.String(length=64), nullable=True),
        sa.Column('courier_company', sa.String(length=64), nullable=True),
        sa.Column('customer_name', sa.String(length=100), nullable=True),
        sa.Column('refund_reason', sa.String(length=255), nullable=True),
        sa.Column('balance', sa.Integer(), nullable=False),
        sa.Column('transaction_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('cashbook_transactions', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_cashbook_transactions_type'), ['type'], unique=False)
        batch_op.create_index(batch_op.f('ix_cashbook_transactions_product_id'), ['product_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_cashbook_transactions_order_id'), ['order_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_cashbook_transactions_transaction_date'), ['transaction_date'], unique=False)
        batch_op.create_index('ix_cashbook_type_date', ['type', 'transaction_date'], unique=False)

    # ==========================================================================
    # 5. SEQUENCES & EVENT LOG
    # ==========================================================================
    op.create_table('document_sequences',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('document_type', sa.String(length=32), nullable=False),
        sa.Column('period_key', sa.String(length=16), nullable=False, server_default=''),
        sa.Column('next_number', sa.Integer(), nullable=False, server_default='1'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('document_type', 'period_key', name='uq_document_sequences_type_period')
    )

    op.create_table('event_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('table_name', sa.String(length=64), nullable=False),
        sa.Column('record_id', sa.Integer(), nullable=False),
        sa.Column('action', sa.String(length=32), nullable=False),
        sa.Column('actor', sa.String(length=64), nullable=False, server_default='system'),
        sa.Column('payload', sa.JSON(), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('event_logs', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_event_logs_action'), ['action'], unique=False)
        batch_op.create_index(batch_op.f('ix_event_logs_occurred_at'), ['occurred_at'], unique=False)
        batch_op.create_index('ix_event_logs_table_record', ['table_name', 'record_id'], unique=False)


def downgrade():
    op.drop_table('event_logs')
    op.drop_table('document_sequences')
    op.drop_table('cashbook_transactions')
    op.drop_table('refunds')
    op.drop_table('shipments')
    op.drop_table('order_items')
    op.drop_table('orders')
    op.drop_table('inventory_movements')
    op.drop_table('products')
