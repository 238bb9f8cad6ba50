"""create player and guess tables

Revision ID: 1a2b3c4d5e6f
Revises:
Create Date: 2026-02-14 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '1a2b3c4d5e6f'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'player',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('score', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_seen', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_player_last_seen', 'player', ['last_seen'])

    op.create_table(
        'guess',
        sa.Column('id', sa.String(length=32), nullable=False),
        sa.Column('player_id', sa.String(length=64), nullable=False),
        sa.Column('direction', sa.String(length=8), nullable=False),
        sa.Column('price_at_guess', sa.Numeric(20, 8), nullable=False),
        sa.Column('guessed_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('resolved_at', sa.DateTime(), nullable=True),
        sa.Column('price_at_resolve', sa.Numeric(20, 8), nullable=True),
        sa.Column('outcome', sa.String(length=16), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.CheckConstraint("direction IN ('up', 'down')", name='ck_guess_direction'),
        sa.CheckConstraint("status IN ('pending', 'resolved')", name='ck_guess_status'),
        sa.CheckConstraint("outcome IS NULL OR outcome IN ('correct', 'wrong')", name='ck_guess_outcome'),
        sa.ForeignKeyConstraint(['player_id'], ['player.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    # Session restore looks up the in-flight guess by player
    op.create_index('idx_guesses_player_status', 'guess', ['player_id', 'status'])
    op.create_index(
        'uq_guess_one_pending_per_player',
        'guess',
        ['player_id'],
        unique=True,
        sqlite_where=sa.text("status = 'pending'"),
        postgresql_where=sa.text("status = 'pending'"),
    )


def downgrade():
    op.drop_index('uq_guess_one_pending_per_player', table_name='guess')
    op.drop_index('idx_guesses_player_status', table_name='guess')
    op.drop_table('guess')
    op.drop_index('ix_player_last_seen', table_name='player')
    op.drop_table('player')
