"""create_auction_tables

Revision ID: 001_auction_tables
Revises:
Create Date: 2026-10-19

Creates the auction schema: submitter and buyer accounts, the credit
journal, auctionable posts, bids, won-auction download grants and
submitter earnings.

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001_auction_tables'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        'submitter_accounts',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('display_name', sa.String(100), nullable=True),
        sa.Column('balance', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_earned', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps(),
        sa.CheckConstraint('balance >= 0', name='chk_submitter_balance_positive'),
    )

    op.create_table(
        'buyer_accounts',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('phone_number', sa.String(20), nullable=False, unique=True),
        sa.Column('organization_name', sa.String(200), nullable=True),
        sa.Column('credit_balance', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_spent', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('auctions_won', sa.Integer(), nullable=False, server_default='0'),
        *_timestamps(),
        sa.CheckConstraint('credit_balance >= 0', name='chk_buyer_balance_positive'),
    )

    op.create_table(
        'credit_transactions',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('buyer_id', sa.Uuid(), sa.ForeignKey('buyer_accounts.id'), nullable=False),
        sa.Column('type', sa.String(20), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('balance_before', sa.Integer(), nullable=False),
        sa.Column('balance_after', sa.Integer(), nullable=False),
        sa.Column('reference_type', sa.String(20), nullable=True),
        sa.Column('reference_id', sa.String(64), nullable=True),
        sa.Column('description', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('idx_credit_tx_buyer_created', 'credit_transactions', ['buyer_id', 'created_at'])
    op.create_index('idx_credit_tx_reference', 'credit_transactions', ['reference_type', 'reference_id'])

    op.create_table(
        'auction_posts',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('public_id', sa.String(32), nullable=False, unique=True),
        sa.Column('owner_account_id', sa.Uuid(), sa.ForeignKey('submitter_accounts.id'), nullable=True),
        sa.Column('media_ref', sa.String(500), nullable=True),
        sa.Column('revenue_share_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('auction_status', sa.String(20), nullable=False, server_default='ACTIVE'),
        sa.Column('auction_ends_at', sa.DateTime(), nullable=False),
        sa.Column('current_bid', sa.Integer(), nullable=True),
        sa.Column('bid_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_exclusive', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('exclusive_buyer_id', sa.Uuid(), sa.ForeignKey('buyer_accounts.id'), nullable=True),
        sa.Column('exclusive_buyer_name', sa.String(200), nullable=True),
        sa.Column('sold_at', sa.DateTime(), nullable=True),
        sa.Column('ended_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('bid_count >= 0', name='chk_post_bid_count_positive'),
        sa.CheckConstraint(
            "auction_status IN ('ACTIVE', 'ENDED', 'SOLD')", name='chk_post_auction_status'
        ),
        sa.CheckConstraint(
            "is_exclusive = (auction_status = 'SOLD')", name='chk_post_exclusive_iff_sold'
        ),
    )
    op.create_index('idx_posts_status_ends_at', 'auction_posts', ['auction_status', 'auction_ends_at'])

    op.create_table(
        'auction_bids',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('post_id', sa.Uuid(), sa.ForeignKey('auction_posts.id'), nullable=False),
        sa.Column('bidder_identity', sa.String(64), nullable=False),
        sa.Column('bidder_display_name', sa.String(200), nullable=True),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('is_winning', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_winner', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('payment_status', sa.String(20), nullable=False, server_default='PENDING'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('amount > 0', name='chk_bid_amount_positive'),
    )
    op.create_index('idx_bids_post_winning', 'auction_bids', ['post_id', 'is_winning'])
    op.create_index('idx_bids_post_created', 'auction_bids', ['post_id', 'created_at'])
    op.create_index('idx_bids_bidder', 'auction_bids', ['bidder_identity'])

    op.create_table(
        'won_auctions',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('buyer_id', sa.Uuid(), sa.ForeignKey('buyer_accounts.id'), nullable=False),
        sa.Column('post_id', sa.Uuid(), sa.ForeignKey('auction_posts.id'), nullable=False, unique=True),
        sa.Column('winning_bid', sa.Integer(), nullable=False),
        sa.Column('submitter_share', sa.Integer(), nullable=False),
        sa.Column('platform_share', sa.Integer(), nullable=False),
        sa.Column('download_token', sa.String(64), nullable=False, unique=True),
        sa.Column('downloads_used', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('max_downloads', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='ACTIVE'),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('winning_bid > 0', name='chk_grant_winning_bid_positive'),
        sa.CheckConstraint(
            'submitter_share + platform_share = winning_bid', name='chk_grant_split_sums'
        ),
    )
    op.create_index('idx_grants_buyer_created', 'won_auctions', ['buyer_id', 'created_at'])

    op.create_table(
        'submitter_earnings',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('account_id', sa.Uuid(), sa.ForeignKey('submitter_accounts.id'), nullable=False),
        sa.Column('won_auction_id', sa.Uuid(), sa.ForeignKey('won_auctions.id'), nullable=False, unique=True),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('gross_amount', sa.Integer(), nullable=False),
        sa.Column('description', sa.String(255), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='AVAILABLE'),
        sa.Column('available_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('amount >= 0', name='chk_earning_amount_positive'),
    )


def downgrade() -> None:
    op.drop_table('submitter_earnings')
    op.drop_index('idx_grants_buyer_created', table_name='won_auctions')
    op.drop_table('won_auctions')
    op.drop_index('idx_bids_bidder', table_name='auction_bids')
    op.drop_index('idx_bids_post_created', table_name='auction_bids')
    op.drop_index('idx_bids_post_winning', table_name='auction_bids')
    op.drop_table('auction_bids')
    op.drop_index('idx_posts_status_ends_at', table_name='auction_posts')
    op.drop_table('auction_posts')
    op.drop_index('idx_credit_tx_reference', table_name='credit_transactions')
    op.drop_index('idx_credit_tx_buyer_created', table_name='credit_transactions')
    op.drop_table('credit_transactions')
    op.drop_table('buyer_accounts')
    op.drop_table('submitter_accounts')
