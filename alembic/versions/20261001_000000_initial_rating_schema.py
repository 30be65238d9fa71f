"""Initial rating schema: players, ratings, rating_lists

Revision ID: 5f1c2a9d7e30
Revises:
Create Date: 2026-10-01

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# Revision identifiers, used by Alembic
revision: str = '5f1c2a9d7e30'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'players',
        sa.Column('fide_id', sa.BigInteger(), autoincrement=False, nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('federation', sa.String(length=10), nullable=True),
        sa.Column('sex', sa.String(length=1), nullable=True),
        sa.Column('title', sa.String(length=10), nullable=True),
        sa.Column('birth_year', sa.Integer(), nullable=True),
        sa.Column('flag', sa.String(length=10), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('inactive_date', sa.Date(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('fide_id'),
    )
    op.create_index('idx_players_name', 'players', ['name'])
    op.create_index('idx_players_federation', 'players', ['federation'])

    op.create_table(
        'ratings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('fide_id', sa.BigInteger(), nullable=False),
        sa.Column('period', sa.String(length=8), nullable=False),
        sa.Column('standard_rating', sa.Integer(), nullable=True),
        sa.Column('standard_games', sa.Integer(), nullable=True),
        sa.Column('rapid_rating', sa.Integer(), nullable=True),
        sa.Column('rapid_games', sa.Integer(), nullable=True),
        sa.Column('blitz_rating', sa.Integer(), nullable=True),
        sa.Column('blitz_games', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['fide_id'], ['players.fide_id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('fide_id', 'period', name='uq_ratings_fide_id_period'),
    )
    op.create_index('idx_ratings_period', 'ratings', ['period'])

    op.create_table(
        'rating_lists',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('period', sa.String(length=8), nullable=False),
        sa.Column('category', sa.String(length=10), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('total_players', sa.Integer(), nullable=True),
        sa.Column('skipped_records', sa.Integer(), nullable=True),
        sa.Column('failed_records', sa.Integer(), nullable=True),
        sa.Column('source_file', sa.String(length=500), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('import_date', sa.DateTime(), nullable=True),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed')",
            name='ck_rating_lists_status',
        ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('period', 'category', name='uq_rating_lists_period_category'),
    )
    op.create_index('idx_rating_lists_status', 'rating_lists', ['status'])


def downgrade() -> None:
    op.drop_index('idx_rating_lists_status', table_name='rating_lists')
    op.drop_table('rating_lists')
    op.drop_index('idx_ratings_period', table_name='ratings')
    op.drop_table('ratings')
    op.drop_index('idx_players_federation', table_name='players')
    op.drop_index('idx_players_name', table_name='players')
    op.drop_table('players')
