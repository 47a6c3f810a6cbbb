"""initial ledger schema

Revision ID: c0a1e2d3b4f5
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the complete commerce ledger schema:
- products: catalog rows with pricing rules and stock policy
- stock_movements: append-only stock ledger with per-movement state snapshots
- token_accounts: per-user lock anchor, plan mirror, ad-free window
- token_transactions: immutable token ledger
- token_purchase_requests: manual purchase workflow (one PENDING per user)
- order_unlocks: one row per unlocked order
- app_settings: admin-editable JSON settings
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'c0a1e2d3b4f5'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ============================================================================
    # products
    # ============================================================================
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('base_price', sa.Numeric(12, 2), nullable=True),  # NULL = contact for price
        sa.Column('shipping_fee', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('variations', sa.JSON(), nullable=False),
        sa.Column('promotions', sa.JSON(), nullable=False),
        sa.Column('track_stock', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('valuation_method', sa.String(length=32), nullable=False,
                  server_default='WEIGHTED_AVERAGE'),
        sa.Column('low_stock_threshold', sa.Integer(), nullable=False, server_default='5'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sku', name='uq_products_sku'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_products_active_name', 'products', ['is_active', 'name'])

    # ============================================================================
    # stock_movements: append-only, never updated or deleted
    # ============================================================================
    op.create_table(
        'stock_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=32), nullable=False),
        sa.Column('quantity_delta', sa.Integer(), nullable=False),
        sa.Column('unit_cost', sa.Numeric(14, 4), nullable=True),
        sa.Column('cost_of_goods', sa.Numeric(14, 2), nullable=True),
        sa.Column('quantity_after', sa.Integer(), nullable=False),
        sa.Column('unit_cost_after', sa.Numeric(14, 4), nullable=True),
        sa.Column('note', sa.String(length=255), nullable=True),
        sa.Column('reference', sa.String(length=128), nullable=True),
        sa.Column('order_ref', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('product_id', 'type', 'reference', name='uq_stock_movements_product_type_ref'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('stock_movements', schema=None) as batch_op:
        batch_op.create_index('ix_stock_movements_product_id', ['product_id'])
        batch_op.create_index('ix_stock_movements_type', ['type'])
        batch_op.create_index('ix_stock_movements_reference', ['reference'])
        batch_op.create_index('ix_stock_movements_order_ref', ['order_ref'])
        batch_op.create_index('ix_stock_movements_created_at', ['created_at'])
        batch_op.create_index('ix_stock_movements_product_seq', ['product_id', 'id'])

    # ============================================================================
    # token_accounts: one per user, the row every balance change locks
    # ============================================================================
    op.create_table(
        'token_accounts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('plan', sa.String(length=16), nullable=False, server_default='FREE'),
        sa.Column('plan_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('received_pro_bonus', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('ad_free_until', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', name='uq_token_accounts_user'),
        sqlite_autoincrement=True
    )

    # ============================================================================
    # token_transactions: balance = SUM(amount)
    # ============================================================================
    op.create_table(
        'token_transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=32), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('reference', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('type', 'reference', name='uq_token_transactions_type_ref'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('token_transactions', schema=None) as batch_op:
        batch_op.create_index('ix_token_transactions_user_id', ['user_id'])
        batch_op.create_index('ix_token_transactions_type', ['type'])
        batch_op.create_index('ix_token_transactions_user_created', ['user_id', 'created_at'])

    # ============================================================================
    # token_purchase_requests
    # ============================================================================
    op.create_table(
        'token_purchase_requests',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('pack_id', sa.String(length=32), nullable=False),
        sa.Column('tokens', sa.Integer(), nullable=False),
        sa.Column('price_da', sa.Integer(), nullable=False),
        sa.Column('proof_ref', sa.String(length=512), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('rejection_reason', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('reviewed_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('token_purchase_requests', schema=None) as batch_op:
        batch_op.create_index('ix_token_purchase_requests_user_id', ['user_id'])
        batch_op.create_index('ix_token_purchase_requests_status_created', ['status', 'created_at'])
        # at most one PENDING request per user
        batch_op.create_index(
            'uq_token_purchase_requests_one_pending',
            ['user_id'],
            unique=True,
            sqlite_where=sa.text("status = 'PENDING'"),
            postgresql_where=sa.text("status = 'PENDING'"),
        )

    # ============================================================================
    # order_unlocks
    # ============================================================================
    op.create_table(
        'order_unlocks',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('order_id', sa.String(length=64), nullable=False),
        sa.Column('tokens_spent', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_id', name='uq_order_unlocks_order'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_order_unlocks_user_id', 'order_unlocks', ['user_id'])

    # ============================================================================
    # app_settings
    # ============================================================================
    op.create_table(
        'app_settings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('key', sa.String(length=128), nullable=False),
        sa.Column('value', sa.JSON(), nullable=False),
        sa.Column('updated_by', sa.String(length=64), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('key', name='uq_app_settings_key'),
        sqlite_autoincrement=True
    )


def downgrade():
    op.drop_table('app_settings')
    op.drop_index('ix_order_unlocks_user_id', table_name='order_unlocks')
    op.drop_table('order_unlocks')
    op.drop_table('token_purchase_requests')
    op.drop_table('token_transactions')
    op.drop_table('token_accounts')
    op.drop_table('stock_movements')
    op.drop_index('ix_products_active_name', table_name='products')
    op.drop_table('products')
