"""add single-row price_feed table

Revision ID: 7c8d9e0f1a2b
Revises: 1a2b3c4d5e6f
Create Date: 2026-02-20 09:30:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '7c8d9e0f1a2b'
down_revision = '1a2b3c4d5e6f'
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    if 'price_feed' in set(insp.get_table_names()):
        return

    price_feed = op.create_table(
        'price_feed',
        sa.Column('k', sa.String(length=16), nullable=False),
        sa.Column('usd', sa.Numeric(20, 8), nullable=False),
        sa.Column('ts', sa.DateTime(), nullable=True),
        sa.Column('source', sa.String(length=32), nullable=True),
        sa.PrimaryKeyConstraint('k'),
    )
    # Zero sentinel: the store reports "unavailable" until the first fetch lands
    op.bulk_insert(price_feed, [{'k': 'btc', 'usd': 0, 'ts': None, 'source': None}])


def downgrade():
    op.drop_table('price_feed')
