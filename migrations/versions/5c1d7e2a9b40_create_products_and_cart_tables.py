"""create products and cart tables

Revision ID: 5c1d7e2a9b40
Revises:
Create Date: 2026-10-17 12:40:11.482913

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '5c1d7e2a9b40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.String(length=1000), nullable=False),
        sa.Column('price', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('category', sa.String(length=100), nullable=False),
        sa.Column('in_stock', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_products_id'), 'products', ['id'], unique=False)
    op.create_index('name_idx', 'products', ['name'], unique=False)
    op.create_index('category_idx', 'products', ['category'], unique=False)
    op.create_index('price_idx', 'products', ['price'], unique=False)
    op.create_index('in_stock_idx', 'products', ['in_stock'], unique=False)

    op.create_table(
        'cart',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('unit_price', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('price', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('product_id', 'user_id', name='unique_cart_item')
    )
    op.create_index(op.f('ix_cart_id'), 'cart', ['id'], unique=False)
    op.create_index('product_id_idx', 'cart', ['product_id'], unique=False)
    op.create_index('user_id_idx', 'cart', ['user_id'], unique=False)
    op.create_index('expires_at_idx', 'cart', ['expires_at'], unique=False)
    op.create_index('created_at_idx', 'cart', ['created_at'], unique=False)


def downgrade() -> None:
    op.drop_index('created_at_idx', table_name='cart')
    op.drop_index('expires_at_idx', table_name='cart')
    op.drop_index('user_id_idx', table_name='cart')
    op.drop_index('product_id_idx', table_name='cart')
    op.drop_index(op.f('ix_cart_id'), table_name='cart')
    op.drop_table('cart')
    op.drop_index('in_stock_idx', table_name='products')
    op.drop_index('price_idx', table_name='products')
    op.drop_index('category_idx', table_name='products')
    op.drop_index('name_idx', table_name='products')
    op.drop_index(op.f('ix_products_id'), table_name='products')
    op.drop_table('products')
