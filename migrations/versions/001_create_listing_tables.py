"""Create sniper_listings and wallet_holdings.

Revision ID: 001_listing_tables
Revises: 
Create Date: 2026-10-17

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001_listing_tables'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Durable mirror of the in-memory listing store
    op.create_table(
        'sniper_listings',
        sa.Column('item_id', sa.String(64), nullable=False),
        sa.Column('listing_ref', sa.String(64), nullable=True),
        sa.Column('group_id', sa.String(64), nullable=True),
        sa.Column('listing_data', sa.JSON(), nullable=False),
        sa.Column('is_sold', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('is_unlisted', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('buyer_address', sa.String(64), nullable=True),
        sa.Column('seller_address', sa.String(64), nullable=True),
        sa.Column('listed_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('item_id'),
    )
    op.create_index('idx_sniper_listings_listed_at', 'sniper_listings', ['listed_at'])
    op.create_index('idx_sniper_listings_updated_at', 'sniper_listings', ['updated_at'])
    op.create_index('idx_sniper_listings_status', 'sniper_listings', ['is_sold', 'is_unlisted'])
    op.create_index('idx_sniper_listings_seller_address', 'sniper_listings', ['seller_address'])
    op.alter_column('sniper_listings', 'is_sold', server_default=None)
    op.alter_column('sniper_listings', 'is_unlisted', server_default=None)

    # Holdings ledger, rewritten when a tracked listing sells
    op.create_table(
        'wallet_holdings',
        sa.Column('wallet_address', sa.String(64), nullable=False),
        sa.Column('item_id', sa.String(64), nullable=False),
        sa.Column('is_locked', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('last_event_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('last_synced_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('wallet_address', 'item_id'),
    )
    op.alter_column('wallet_holdings', 'is_locked', server_default=None)


def downgrade() -> None:
    op.drop_table('wallet_holdings')

    op.drop_index('idx_sniper_listings_seller_address', table_name='sniper_listings')
    op.drop_index('idx_sniper_listings_status', table_name='sniper_listings')
    op.drop_index('idx_sniper_listings_updated_at', table_name='sniper_listings')
    op.drop_index('idx_sniper_listings_listed_at', table_name='sniper_listings')
    op.drop_table('sniper_listings')
