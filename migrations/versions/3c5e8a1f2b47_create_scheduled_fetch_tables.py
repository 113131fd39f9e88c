"""create scheduled fetch tables

Revision ID: 3c5e8a1f2b47
Revises:
Create Date: 2026-10-18 09:12:40.118204

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = '3c5e8a1f2b47'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.String(), nullable=False, comment='User ID'),
        sa.Column('email', sa.Text(), nullable=True, comment='Notification email address'),
        sa.Column('first_name', sa.Text(), nullable=True, comment='Greeting name for emails'),
        sa.Column('analyse_account_success', sa.Integer(), nullable=False, server_default='0',
                  comment="1 while an 'analysis ready' email is owed"),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'seller_accounts',
        sa.Column('id', sa.BIGINT(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.String(), nullable=False, comment='Owning user'),
        sa.Column('country', sa.String(length=8), nullable=False, comment='Marketplace country code (e.g., US)'),
        sa.Column('region', sa.String(length=4), nullable=False, comment='SP-API region (NA, EU, FE)'),
        sa.Column('selling_partner_id', sa.Text(), nullable=True, comment='Seller ID'),
        sa.Column('sp_refresh_token', sa.Text(), nullable=True, comment='SP-API LWA refresh token'),
        sa.Column('ads_refresh_token', sa.Text(), nullable=True, comment='Amazon Ads LWA refresh token'),
        sa.Column('profile_id', sa.Text(), nullable=True, comment='Amazon Ads profile ID'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_seller_accounts_user_region_country', 'seller_accounts',
                    ['user_id', 'region', 'country'], unique=True)

    op.create_table(
        'report_snapshots',
        sa.Column('id', sa.BIGINT(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.String(), nullable=False, comment='Owning user'),
        sa.Column('country', sa.String(length=8), nullable=False),
        sa.Column('region', sa.String(length=4), nullable=False),
        sa.Column('data_key', sa.String(), nullable=False, comment='Schedule data key (e.g., ppcSpendsBySKU)'),
        sa.Column('payload', postgresql.JSONB(astext_type=sa.Text()), nullable=True,
                  comment='Normalized job payload'),
        sa.Column('captured_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False,
                  comment='Snapshot capture time (UTC)'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_report_snapshots_lookup', 'report_snapshots',
                    ['user_id', 'country', 'region', 'data_key', 'captured_at'], unique=False)

    op.create_table(
        'data_fetch_tracking',
        sa.Column('id', sa.BIGINT(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('country', sa.String(length=8), nullable=False),
        sa.Column('region', sa.String(length=4), nullable=False),
        sa.Column('session_id', sa.String(), nullable=True, comment='Run trace ID for correlation'),
        sa.Column('day_name', sa.String(length=12), nullable=False, comment='UTC weekday name at start'),
        sa.Column('date_string', sa.String(length=10), nullable=False, comment='UTC date at start (YYYY-MM-DD)'),
        sa.Column('time_string', sa.String(length=8), nullable=False, comment='UTC time at start (HH:MM:SS)'),
        sa.Column('start_date', sa.String(length=10), nullable=False,
                  comment='First day of the fetched data range'),
        sa.Column('end_date', sa.String(length=10), nullable=False, comment='Last day of the fetched data range'),
        sa.Column('status', sa.String(length=12), nullable=False, server_default='pending',
                  comment='pending | completed | partial | failed'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('started_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('finished_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_data_fetch_tracking_lookup', 'data_fetch_tracking',
                    ['user_id', 'country', 'region', 'started_at'], unique=False)


def downgrade() -> None:
    op.drop_index('idx_data_fetch_tracking_lookup', table_name='data_fetch_tracking')
    op.drop_table('data_fetch_tracking')
    op.drop_index('idx_report_snapshots_lookup', table_name='report_snapshots')
    op.drop_table('report_snapshots')
    op.drop_index('idx_seller_accounts_user_region_country', table_name='seller_accounts')
    op.drop_table('seller_accounts')
    op.drop_table('users')
