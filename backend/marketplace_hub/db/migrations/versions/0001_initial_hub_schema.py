"""initial marketplace hub schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = '0001_initial'
down_revision = None
branch_labels = None
depends_on = None


JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB(), 'postgresql')


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    ]


def upgrade() -> None:
    # ---------- orders ----------
    op.create_table(
        'orders',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('reference_id', sa.String(length=64), nullable=False),
        sa.Column('shop_id', sa.String(length=64), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('status_updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('payload', JSON_TYPE, nullable=False),
        sa.Column('meta', JSON_TYPE, nullable=False),
        sa.Column('tenant_id', sa.String(length=64), nullable=True),
        sa.Column('tenant_order_id', sa.String(length=64), nullable=True),
        sa.Column('erp_order_id', sa.String(length=64), nullable=True),
        sa.Column('erp_status', sa.String(length=32), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_orders'),
        sa.UniqueConstraint('reference_id', 'shop_id', name='uq_orders_reference_shop'),
    )
    op.create_index('ix_orders_reference_id', 'orders', ['reference_id'])
    op.create_index('ix_orders_shop_id', 'orders', ['shop_id'])
    op.create_index('ix_orders_tenant_order_id', 'orders', ['tenant_order_id'])
    op.create_index('ix_orders_shop_status', 'orders', ['shop_id', 'status'])

    op.create_table(
        'integration_checkpoints',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('last_update', sa.String(length=40), nullable=False),
        sa.Column('window_from', sa.String(length=40), nullable=False),
        sa.Column('window_to', sa.String(length=40), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_integration_checkpoints'),
    )

    # ---------- catalog ----------
    op.create_table(
        'products',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('shop_id', sa.String(length=64), nullable=False),
        sa.Column('sku', sa.String(length=128), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('brand', sa.String(length=255), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category', sa.String(length=64), nullable=True),
        sa.Column('subcategory', sa.String(length=64), nullable=True),
        sa.Column('images', JSON_TYPE, nullable=False),
        sa.Column('ean', sa.String(length=32), nullable=True),
        sa.Column('price', sa.Numeric(12, 2), nullable=True),
        sa.Column('price_discounted', sa.Numeric(12, 2), nullable=True),
        sa.Column('weight', sa.Numeric(12, 3), nullable=True),
        sa.Column('height', sa.Numeric(12, 3), nullable=True),
        sa.Column('width', sa.Numeric(12, 3), nullable=True),
        sa.Column('length', sa.Numeric(12, 3), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('validation_errors', JSON_TYPE, nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_products'),
        sa.UniqueConstraint('shop_id', 'sku', name='uq_products_shop_sku'),
    )
    op.create_index('ix_products_shop_id', 'products', ['shop_id'])

    op.create_table(
        'variations',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('product_id', sa.Uuid(), nullable=False),
        sa.Column('source_sku', sa.String(length=128), nullable=True),
        sa.Column('mapping_id', sa.String(length=128), nullable=True),
        sa.Column('stock', sa.Integer(), nullable=False),
        sa.Column('size', sa.String(length=64), nullable=True),
        sa.Column('color', sa.String(length=64), nullable=True),
        sa.Column('flavor', sa.String(length=64), nullable=True),
        sa.Column('voltage', sa.String(length=16), nullable=True),
        sa.Column('gluten_free', sa.Boolean(), nullable=True),
        sa.Column('lactose_free', sa.Boolean(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ['product_id'], ['products.id'], name='fk_variations_product_id_products', ondelete='CASCADE'
        ),
        sa.PrimaryKeyConstraint('id', name='pk_variations'),
    )
    op.create_index('ix_variations_product_id', 'variations', ['product_id'])
    op.create_index('ix_variations_source_sku', 'variations', ['source_sku'])
    op.create_index('ix_variations_product_source', 'variations', ['product_id', 'source_sku'])

    # ---------- credentials / integrations ----------
    op.create_table(
        'credentials',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('scope', sa.String(length=64), nullable=False),
        sa.Column('access_token', sa.Text(), nullable=False),
        sa.Column('refresh_token', sa.Text(), nullable=True),
        sa.Column('token_type', sa.String(length=32), nullable=False),
        sa.Column('expires_in', sa.Integer(), nullable=False),
        sa.Column('issued_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_credentials'),
    )
    op.create_index('ix_credentials_scope_issued', 'credentials', ['scope', 'issued_at'])

    op.create_table(
        'system_integrations',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('shop_id', sa.String(length=64), nullable=False),
        sa.Column('system_name', sa.String(length=32), nullable=False),
        sa.Column('credentials', JSON_TYPE, nullable=False),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_system_integrations'),
        sa.UniqueConstraint('shop_id', name='uq_system_integrations_shop_id'),
    )

    op.create_table(
        'tenant_accounts',
        sa.Column('tenant_id', sa.String(length=64), nullable=False),
        sa.Column('shop_id', sa.String(length=64), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('owner_email', sa.String(length=255), nullable=True),
        sa.Column('api_username', sa.String(length=255), nullable=True),
        sa.Column('api_password', sa.String(length=255), nullable=True),
        sa.Column('catalog_offset', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('tenant_id', name='pk_tenant_accounts'),
    )
    op.create_index('ix_tenant_accounts_shop_id', 'tenant_accounts', ['shop_id'])


def downgrade() -> None:
    op.drop_index('ix_tenant_accounts_shop_id', table_name='tenant_accounts')
    op.drop_table('tenant_accounts')
    op.drop_table('system_integrations')
    op.drop_index('ix_credentials_scope_issued', table_name='credentials')
    op.drop_table('credentials')
    op.drop_index('ix_variations_product_source', table_name='variations')
    op.drop_index('ix_variations_source_sku', table_name='variations')
    op.drop_index('ix_variations_product_id', table_name='variations')
    op.drop_table('variations')
    op.drop_index('ix_products_shop_id', table_name='products')
    op.drop_table('products')
    op.drop_table('integration_checkpoints')
    op.drop_index('ix_orders_shop_status', table_name='orders')
    op.drop_index('ix_orders_tenant_order_id', table_name='orders')
    op.drop_index('ix_orders_shop_id', table_name='orders')
    op.drop_index('ix_orders_reference_id', table_name='orders')
    op.drop_table('orders')
