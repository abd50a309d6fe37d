"""initial_order_split_schema

Revision ID: 3c7d21e9b4a0
Revises: 
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
import sqlmodel

# revision identifiers, used by Alembic.
revision: str = '3c7d21e9b4a0'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create orders table
    op.create_table(
        'orders',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('order_number', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('checkout_id', sa.UUID(), nullable=True),
        sa.Column('customer_id', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('customer_email', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('seller_id', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('subtotal', sa.Float(), nullable=False),
        sa.Column('tax', sa.Float(), nullable=False),
        sa.Column('shipping', sa.Float(), nullable=False),
        sa.Column('discount', sa.Float(), nullable=False),
        sa.Column('total', sa.Float(), nullable=False),
        sa.Column('coupon_code', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('order_status', sa.String(), nullable=False),
        sa.Column('payment_status', sa.String(), nullable=False),
        sa.Column('payment_method', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('shipping_address', sa.JSON(), nullable=False),
        sa.Column('notes', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_orders_order_number'), 'orders', ['order_number'], unique=True)
    op.create_index(op.f('ix_orders_checkout_id'), 'orders', ['checkout_id'], unique=False)
    op.create_index(op.f('ix_orders_customer_id'), 'orders', ['customer_id'], unique=False)
    op.create_index(op.f('ix_orders_seller_id'), 'orders', ['seller_id'], unique=False)
    op.create_index(op.f('ix_orders_order_status'), 'orders', ['order_status'], unique=False)

    # Create order_items table
    op.create_table(
        'order_items',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('order_id', sa.UUID(), nullable=True),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('product_id', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('product_name', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('price', sa.Float(), nullable=False),
        sa.Column('seller_id', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('subtotal', sa.Float(), nullable=False),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_order_items_order_id'), 'order_items', ['order_id'], unique=False)
    op.create_index(op.f('ix_order_items_seller_id'), 'order_items', ['seller_id'], unique=False)

    # Create checkout_splits table
    op.create_table(
        'checkout_splits',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('customer_id', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('expected_orders', sa.Integer(), nullable=False),
        sa.Column('order_numbers', sa.JSON(), nullable=True),
        sa.Column('last_error', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_checkout_splits_customer_id'), 'checkout_splits', ['customer_id'], unique=False)
    op.create_index(op.f('ix_checkout_splits_status'), 'checkout_splits', ['status'], unique=False)

    # Create order_audit_log table
    op.create_table(
        'order_audit_log',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('order_id', sa.UUID(), nullable=False),
        sa.Column('kind', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('operation', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('from_status', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('to_status', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('off_graph', sa.Boolean(), nullable=False),
        sa.Column('actor_id', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('actor_role', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('reason', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_order_audit_log_order_id'), 'order_audit_log', ['order_id'], unique=False)


def downgrade() -> None:
    # Drop tables in reverse order
    op.drop_index(op.f('ix_order_audit_log_order_id'), table_name='order_audit_log')
    op.drop_table('order_audit_log')

    op.drop_index(op.f('ix_checkout_splits_status'), table_name='checkout_splits')
    op.drop_index(op.f('ix_checkout_splits_customer_id'), table_name='checkout_splits')
    op.drop_table('checkout_splits')

    op.drop_index(op.f('ix_order_items_seller_id'), table_name='order_items')
    op.drop_index(op.f('ix_order_items_order_id'), table_name='order_items')
    op.drop_table('order_items')

    op.drop_index(op.f('ix_orders_order_status'), table_name='orders')
    op.drop_index(op.f('ix_orders_seller_id'), table_name='orders')
    op.drop_index(op.f('ix_orders_customer_id'), table_name='orders')
    op.drop_index(op.f('ix_orders_checkout_id'), table_name='orders')
    op.drop_index(op.f('ix_orders_order_number'), table_name='orders')
    op.drop_table('orders')
