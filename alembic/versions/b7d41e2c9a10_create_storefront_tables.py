"""create_storefront_tables

Revision ID: b7d41e2c9a10
Revises:
Create Date: 2026-10-18 09:30:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'b7d41e2c9a10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema - Create storefront catalog, cart, logistics and order tables."""

    op.create_table(
        'products',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('price', sa.Numeric(12, 2), nullable=False),
        sa.Column('image', sa.String(512), nullable=True),
        sa.Column('weight', sa.Numeric(10, 3), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table(
        'product_variants',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('product_id', sa.String(36), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('value', sa.String(100), nullable=False),
        sa.Column('price_modifier', sa.Numeric(12, 2), nullable=False),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_product_variants_product_id', 'product_variants', ['product_id'])

    op.create_table(
        'cart_lines',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('product_id', sa.String(36), nullable=False),
        sa.Column('variant_id', sa.String(36), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('quantity > 0', name='cart_line_positive_quantity'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_cart_lines_user_id', 'cart_lines', ['user_id'])
    op.create_index(
        'ix_cart_lines_user_product', 'cart_lines', ['user_id', 'product_id', 'variant_id']
    )

    op.create_table(
        'shipping_addresses',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('full_name', sa.String(255), nullable=False),
        sa.Column('phone', sa.String(50), nullable=False),
        sa.Column('address_line', sa.String(512), nullable=False),
        sa.Column('zone_id', sa.String(36), nullable=False),
        sa.Column('sub_zone_id', sa.String(36), nullable=False),
        sa.Column('area_id', sa.String(36), nullable=False),
        sa.Column('is_default', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_shipping_addresses_user_id', 'shipping_addresses', ['user_id'])

    op.create_table(
        'discount_codes',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('code', sa.String(50), nullable=False),
        sa.Column(
            'type',
            sa.Enum('percentage', 'fixed', name='discount_type_enum'),
            nullable=False,
        ),
        sa.Column('value', sa.Numeric(12, 2), nullable=False),
        sa.Column('max_uses', sa.Integer(), nullable=True),
        sa.Column('used_count', sa.Integer(), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_discount_codes_code', 'discount_codes', ['code'], unique=True)

    op.create_table(
        'logistics_zones',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('parent_id', sa.String(36), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['parent_id'], ['logistics_zones.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_logistics_zones_parent_id', 'logistics_zones', ['parent_id'])

    op.create_table(
        'admin_settings',
        sa.Column('key', sa.String(100), nullable=False),
        sa.Column('value', sa.JSON(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('key')
    )

    op.create_table(
        'payment_transactions',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('reference', sa.String(128), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column(
            'status',
            sa.Enum('success', 'failed', name='payment_transaction_status_enum'),
            nullable=False,
        ),
        sa.Column('provider', sa.String(32), nullable=True),
        sa.Column('provider_response', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_payment_transactions_user_id', 'payment_transactions', ['user_id'])
    op.create_index(
        'ix_payment_transactions_reference', 'payment_transactions', ['reference'], unique=True
    )

    op.create_table(
        'orders',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('order_number', sa.String(32), nullable=False),
        sa.Column('payment_reference', sa.String(128), nullable=False),
        sa.Column(
            'status',
            sa.Enum(
                'pending_payment', 'paid', 'processing', 'shipped', 'delivered', 'cancelled',
                name='order_status_enum',
            ),
            nullable=False,
        ),
        sa.Column('total_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('items_count', sa.Integer(), nullable=False),
        sa.Column('shipping_address_id', sa.String(36), nullable=True),
        sa.Column('shipping_address', sa.Text(), nullable=True),
        sa.Column('delivery_method', sa.String(32), nullable=False),
        sa.Column('discount_code', sa.String(50), nullable=True),
        sa.Column('payment_method', sa.String(32), nullable=True),
        sa.Column('payment_transaction_id', sa.String(36), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['payment_transaction_id'], ['payment_transactions.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_orders_user_id', 'orders', ['user_id'])
    op.create_index('ix_orders_order_number', 'orders', ['order_number'], unique=True)
    op.create_index('ix_orders_payment_reference', 'orders', ['payment_reference'], unique=True)

    op.create_table(
        'order_items',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('order_id', sa.String(36), nullable=False),
        sa.Column('product_id', sa.String(36), nullable=False),
        sa.Column('variant_id', sa.String(36), nullable=True),
        sa.Column('product_name', sa.String(255), nullable=False),
        sa.Column('variant_name', sa.String(255), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('price', sa.Numeric(12, 2), nullable=False),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )


def downgrade() -> None:
    """Downgrade schema - Drop storefront tables."""
    op.drop_table('order_items')
    op.drop_table('orders')
    op.drop_table('payment_transactions')
    op.drop_table('admin_settings')
    op.drop_table('logistics_zones')
    op.drop_table('discount_codes')
    op.drop_table('shipping_addresses')
    op.drop_table('cart_lines')
    op.drop_table('product_variants')
    op.drop_table('products')
    sa.Enum(name='order_status_enum').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='payment_transaction_status_enum').drop(op.get_bind(), checkfirst=True)
    sa.Enum(name='discount_type_enum').drop(op.get_bind(), checkfirst=True)
