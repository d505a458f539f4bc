"""create_checkout_tables

Revision ID: 3c1f0a7d9e21
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '3c1f0a7d9e21'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

delivery_type_enum = sa.Enum('pickup', 'delivery', 'stockpile', name='delivery_type_enum')
order_payment_method_enum = sa.Enum('cash', 'points', 'mixed', name='order_payment_method_enum')
order_status_enum = sa.Enum('pending', 'confirmed', 'cancelled', name='order_status_enum')
order_payment_status_enum = sa.Enum('pending', 'paid', 'failed', name='order_payment_status_enum')
points_transaction_type_enum = sa.Enum(
    'earned', 'spent', 'expired', 'refunded', name='points_transaction_type_enum'
)
payment_status_enum = sa.Enum('pending', 'completed', 'failed', name='payment_status_enum')


def upgrade() -> None:
    """Upgrade schema - Add checkout tables."""

    op.create_table(
        'profiles',
        sa.Column('id', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('points_balance', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('points_balance >= 0', name='ck_profiles_points_non_negative'),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'orders',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.String(length=255), nullable=False),
        sa.Column('total_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('delivery_type', delivery_type_enum, nullable=False),
        sa.Column('delivery_address_id', sa.String(length=255), nullable=True),
        sa.Column('pickup_location_id', sa.String(length=255), nullable=True),
        sa.Column('delivery_fee', sa.Numeric(12, 2), nullable=False),
        sa.Column('peps_amount', sa.Integer(), nullable=False),
        sa.Column('payment_method', order_payment_method_enum, nullable=False),
        sa.Column('points_debited', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', order_status_enum, nullable=False),
        sa.Column('payment_status', order_payment_status_enum, nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_orders_user_id', 'orders', ['user_id'])
    op.create_index('ix_orders_created_at', 'orders', ['created_at'])

    op.create_table(
        'order_items',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('order_id', sa.Uuid(), nullable=False),
        sa.Column('product_id', sa.String(length=255), nullable=False),
        sa.Column('vendor_id', sa.String(length=255), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('subtotal', sa.Numeric(12, 2), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('quantity > 0', name='ck_order_items_quantity'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])
    op.create_index('ix_order_items_vendor_id', 'order_items', ['vendor_id'])

    op.create_table(
        'affiliate_points',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.String(length=255), nullable=False),
        sa.Column('points', sa.Integer(), nullable=False),
        sa.Column('transaction_type', points_transaction_type_enum, nullable=False),
        sa.Column('source', sa.String(length=64), nullable=False),
        sa.Column('reference_id', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('points <> 0', name='ck_affiliate_points_nonzero'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_affiliate_points_user_id', 'affiliate_points', ['user_id'])
    op.create_index('ix_affiliate_points_reference_id', 'affiliate_points', ['reference_id'])

    op.create_table(
        'payments',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('order_id', sa.Uuid(), nullable=False),
        sa.Column('reference', sa.String(length=128), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('charged_amount_kobo', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=8), nullable=False),
        sa.Column('split_config', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('status', payment_status_enum, nullable=False),
        sa.Column('gateway_status', sa.String(length=32), nullable=True),
        sa.Column('payment_metadata', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('verified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_payments_order_id', 'payments', ['order_id'], unique=True)
    op.create_index('ix_payments_reference', 'payments', ['reference'], unique=True)
    op.create_index('ix_payments_created_at', 'payments', ['created_at'])


def downgrade() -> None:
    """Downgrade schema - Drop checkout tables."""
    op.drop_index('ix_payments_created_at', table_name='payments')
    op.drop_index('ix_payments_reference', table_name='payments')
    op.drop_index('ix_payments_order_id', table_name='payments')
    op.drop_table('payments')
    op.drop_index('ix_affiliate_points_reference_id', table_name='affiliate_points')
    op.drop_index('ix_affiliate_points_user_id', table_name='affiliate_points')
    op.drop_table('affiliate_points')
    op.drop_index('ix_order_items_vendor_id', table_name='order_items')
    op.drop_index('ix_order_items_order_id', table_name='order_items')
    op.drop_table('order_items')
    op.drop_index('ix_orders_created_at', table_name='orders')
    op.drop_index('ix_orders_user_id', table_name='orders')
    op.drop_table('orders')
    op.drop_table('profiles')

    bind = op.get_bind()
    for enum_type in (
        payment_status_enum,
        points_transaction_type_enum,
        order_payment_status_enum,
        order_status_enum,
        order_payment_method_enum,
        delivery_type_enum,
    ):
        enum_type.drop(bind, checkfirst=True)
