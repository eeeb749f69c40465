"""Create merchants, QR codes, points balances and tier reward tables.

Revision ID: e1f2a3b4c5d6
Revises:
Create Date: 2026-10-17

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'e1f2a3b4c5d6'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    """Create all loyalty tables."""
    op.create_table(
        'merchants',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('shop_name', sa.String(255), nullable=False),
        sa.Column('shopify_domain', sa.String(255), nullable=False),
        sa.Column('shopify_access_token', sa.Text(), nullable=True),
        sa.Column('settings', sa.JSON(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('shopify_domain'),
    )

    op.create_table(
        'loyalty_programs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('merchant_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(100), nullable=True),
        sa.Column('description', sa.String(500), nullable=True),
        sa.Column('points_per_scan', sa.Integer(), nullable=False, server_default=sa.text('10')),
        sa.Column('tier_thresholds', sa.JSON(), nullable=True),
        sa.Column('active', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['merchant_id'], ['merchants.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('merchant_id'),
    )

    op.create_table(
        'qr_codes',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('merchant_id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('slug', sa.String(255), nullable=True),
        sa.Column('type', sa.String(20), nullable=False),
        sa.Column('destination', sa.String(2048), nullable=False),
        sa.Column('campaign_id', sa.String(100), nullable=True),
        sa.Column('active', sa.Boolean(), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        sa.Column('scan_count', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['merchant_id'], ['merchants.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('slug'),
    )
    op.create_index('ix_qr_codes_merchant_type', 'qr_codes', ['merchant_id', 'type'])

    op.create_table(
        'analytics_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('qr_id', sa.String(36), nullable=False),
        sa.Column('type', sa.String(20), nullable=False),
        sa.Column('meta', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['qr_id'], ['qr_codes.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_analytics_events_qr_created', 'analytics_events', ['qr_id', 'created_at'])

    op.create_table(
        'points_balances',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('merchant_id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.String(255), nullable=False),
        sa.Column('points', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('last_source', sa.String(20), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['merchant_id'], ['merchants.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('merchant_id', 'customer_id', name='uq_points_balances_merchant_customer'),
        sa.CheckConstraint('points >= 0', name='ck_points_balances_non_negative'),
    )
    op.create_index('ix_points_balances_points', 'points_balances', ['points'])

    op.create_table(
        'reward_templates',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('merchant_id', sa.Integer(), nullable=False),
        sa.Column('tier', sa.String(50), nullable=False),
        sa.Column('reward_type', sa.String(30), nullable=False),
        sa.Column('config', sa.JSON(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['merchant_id'], ['merchants.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('merchant_id', 'tier', 'reward_type', name='uq_reward_templates_merchant_tier_type'),
    )
    op.create_index('ix_reward_templates_merchant_tier', 'reward_templates', ['merchant_id', 'tier'])

    op.create_table(
        'customer_reward_states',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('merchant_id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.String(255), nullable=False),
        sa.Column('current_tier', sa.String(50), nullable=False),
        sa.Column('active_reward_kinds', sa.JSON(), nullable=True),
        sa.Column('primary_code', sa.String(100), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['merchant_id'], ['merchants.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('merchant_id', 'customer_id', name='uq_customer_reward_states_merchant_customer'),
    )

    op.create_table(
        'external_discount_records',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('merchant_id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.String(255), nullable=False),
        sa.Column('tier', sa.String(50), nullable=False),
        sa.Column('code', sa.String(100), nullable=False),
        sa.Column('external_id', sa.String(255), nullable=False),
        sa.Column('synced', sa.Boolean(), nullable=True),
        sa.Column('percentage', sa.Float(), nullable=True),
        sa.Column('is_used', sa.Boolean(), nullable=True),
        sa.Column('used_at', sa.DateTime(), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['merchant_id'], ['merchants.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('code'),
    )
    op.create_index('ix_external_discount_records_customer', 'external_discount_records',
                    ['merchant_id', 'customer_id', 'tier'])

    op.create_table(
        'reward_provisioning_locks',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('merchant_id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.String(255), nullable=False),
        sa.Column('owner', sa.String(64), nullable=False),
        sa.Column('acquired_at', sa.DateTime(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('merchant_id', 'customer_id', name='uq_reward_provisioning_locks_merchant_customer'),
    )


def downgrade():
    """Drop all loyalty tables."""
    op.drop_table('reward_provisioning_locks')
    op.drop_index('ix_external_discount_records_customer', table_name='external_discount_records')
    op.drop_table('external_discount_records')
    op.drop_table('customer_reward_states')
    op.drop_index('ix_reward_templates_merchant_tier', table_name='reward_templates')
    op.drop_table('reward_templates')
    op.drop_index('ix_points_balances_points', table_name='points_balances')
    op.drop_table('points_balances')
    op.drop_index('ix_analytics_events_qr_created', table_name='analytics_events')
    op.drop_table('analytics_events')
    op.drop_index('ix_qr_codes_merchant_type', table_name='qr_codes')
    op.drop_table('qr_codes')
    op.drop_table('loyalty_programs')
    op.drop_table('merchants')
