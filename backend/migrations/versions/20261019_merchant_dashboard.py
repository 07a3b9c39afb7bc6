"""Merchant dashboard schema

Revision ID: 20261019_dashboard
Revises:
Create Date: 2026-10-19

Creates:
1. merchants and merchant_status (one status row per merchant)
2. orders and order_items
3. notifications
4. merchant_inventory
5. payment_requests
6. Append-only tracking: merchant_activity_log, merchant_performance_log, payment_logs
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_dashboard'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ==========================================================================
    # 1. MERCHANTS
    # ==========================================================================
    op.create_table('merchants',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('merchant_id', sa.String(length=64), nullable=False),
        sa.Column('merchant_name', sa.String(length=255), nullable=False),
        sa.Column('merchant_email', sa.String(length=255), nullable=True),
        sa.Column('merchant_phone', sa.String(length=32), nullable=True),
        sa.Column('merchant_location', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('merchants', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_merchants_user_id'), ['user_id'], unique=True)
        batch_op.create_index(batch_op.f('ix_merchants_merchant_id'), ['merchant_id'], unique=True)

    op.create_table('merchant_status',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('merchant_id', sa.String(length=64), nullable=False),
        sa.Column('is_visible', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('prep_time', sa.Integer(), nullable=False, server_default='30'),
        sa.Column('auto_print_receipt', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('order_chime_enabled', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('merchant_status', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_merchant_status_merchant_id'), ['merchant_id'], unique=True)

    # ==========================================================================
    # 2. ORDERS
    # ==========================================================================
    op.create_table('orders',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('order_id', sa.String(length=64), nullable=False),
        sa.Column('merchant_id', sa.String(length=64), nullable=False),
        sa.Column('customer_name', sa.String(length=255), nullable=True),
        sa.Column('customer_phone', sa.String(length=32), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('total_amount', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('orders', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_orders_merchant_id'), ['merchant_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_orders_status'), ['status'], unique=False)
        batch_op.create_index('ix_orders_merchant_created', ['merchant_id', 'created_at'], unique=False)

    op.create_table('order_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.String(length=64), nullable=False),
        sa.Column('merchant_id', sa.String(length=64), nullable=True),
        sa.Column('product_id', sa.String(length=64), nullable=False),
        sa.Column('product_name', sa.String(length=255), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('order_items', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_order_items_order_id'), ['order_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_order_items_merchant_id'), ['merchant_id'], unique=False)

    # ==========================================================================
    # 3. NOTIFICATIONS
    # ==========================================================================
    op.create_table('notifications',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('merchant_id', sa.String(length=64), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('type', sa.String(length=16), nullable=False, server_default='message'),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('admin_id', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('notifications', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_notifications_merchant_id'), ['merchant_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_notifications_is_read'), ['is_read'], unique=False)
        batch_op.create_index('ix_notifications_merchant_created', ['merchant_id', 'created_at'], unique=False)

    # ==========================================================================
    # 4. INVENTORY
    # ==========================================================================
    op.create_table('merchant_inventory',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('merchant_id', sa.String(length=64), nullable=False),
        sa.Column('product_id', sa.String(length=64), nullable=False),
        sa.Column('product_name', sa.String(length=255), nullable=False),
        sa.Column('current_stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('minimum_stock', sa.Integer(), nullable=False, server_default='10'),
        sa.Column('maximum_stock', sa.Integer(), nullable=False, server_default='100'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='danger'),
        sa.Column('last_updated', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.CheckConstraint('current_stock >= 0', name='ck_inventory_current_nonneg'),
        sa.CheckConstraint('maximum_stock > 0', name='ck_inventory_maximum_pos'),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('merchant_inventory', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_merchant_inventory_merchant_id'), ['merchant_id'], unique=False)

    # ==========================================================================
    # 5. PAYOUT REQUESTS
    # ==========================================================================
    op.create_table('payment_requests',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('merchant_id', sa.String(length=64), nullable=False),
        sa.Column('merchant_name', sa.String(length=255), nullable=True),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('mpesa_phone', sa.String(length=32), nullable=False),
        sa.Column('request_date', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('approved_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completion_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('admin_notes', sa.Text(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('payment_requests', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_payment_requests_merchant_id'), ['merchant_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_payment_requests_status'), ['status'], unique=False)

    # ==========================================================================
    # 6. TRACKING LOGS
    # ==========================================================================
    op.create_table('merchant_activity_log',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('merchant_id', sa.String(length=64), nullable=False),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('details', sa.Text(), nullable=True),
        sa.Column('timestamp', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('merchant_activity_log', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_merchant_activity_log_merchant_id'), ['merchant_id'], unique=False)

    op.create_table('merchant_performance_log',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('merchant_id', sa.String(length=64), nullable=False),
        sa.Column('event_type', sa.String(length=64), nullable=False),
        sa.Column('event_details', sa.Text(), nullable=True),
        sa.Column('timestamp', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('merchant_performance_log', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_merchant_performance_log_merchant_id'), ['merchant_id'], unique=False)

    op.create_table('payment_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('merchant_id', sa.String(length=64), nullable=False),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=True),
        sa.Column('details', sa.Text(), nullable=True),
        sa.Column('timestamp', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('payment_logs', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_payment_logs_merchant_id'), ['merchant_id'], unique=False)


def downgrade():
    for table in (
        'payment_logs',
        'merchant_performance_log',
        'merchant_activity_log',
        'payment_requests',
        'merchant_inventory',
        'notifications',
        'order_items',
        'orders',
        'merchant_status',
        'merchants',
    ):
        op.drop_table(table)
