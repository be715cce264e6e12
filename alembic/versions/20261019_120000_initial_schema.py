"""Initial schema: tournaments, players, games, profiles, settings, prizes

Revision ID: 3f9c1a7e2b10
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# Revision identifiers, used by Alembic
revision: str = '3f9c1a7e2b10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'tournaments',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('tournament_size', sa.Integer(), nullable=False),
        sa.Column('entry_fee', sa.Numeric(20, 6), nullable=False),
        sa.Column('currency', sa.String(length=40), nullable=False),
        sa.Column('issuer', sa.String(length=64), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='waiting'),
        sa.Column('prize_pool', sa.Numeric(20, 6), nullable=False),
        sa.Column('winner', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        sa.Column('cancelled_reason', sa.String(length=255), nullable=True),
        sa.Column('forfeit_reason', sa.String(length=255), nullable=True),
        sa.CheckConstraint('tournament_size IN (2, 4, 8, 16)', name='ck_tournament_size'),
    )
    # Matchmaking: "oldest waiting bracket with this size/fee/currency"
    op.create_index(
        'idx_tournaments_matchmaking',
        'tournaments',
        ['status', 'tournament_size', 'entry_fee', 'currency'],
    )
    op.create_index('idx_tournaments_status_created', 'tournaments', ['status', 'created_at'])

    op.create_table(
        'tournament_players',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column(
            'tournament_id', sa.String(length=36),
            sa.ForeignKey('tournaments.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('player_address', sa.String(length=64), nullable=False),
        sa.Column('player_order', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='waiting'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_winner', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('forfeited', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('tx_hash', sa.String(length=64), nullable=True),
        sa.Column('joined_at', sa.DateTime(), nullable=False),
        sa.Column('forfeited_at', sa.DateTime(), nullable=True),
        sa.Column('won_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('tournament_id', 'player_address', name='uq_tournament_player'),
    )
    op.create_index('idx_tournament_players_address', 'tournament_players', ['player_address'])

    op.create_table(
        'tournament_games',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column(
            'tournament_id', sa.String(length=36),
            sa.ForeignKey('tournaments.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('player_white', sa.String(length=64), nullable=False),
        sa.Column('player_black', sa.String(length=64), nullable=False),
        sa.Column('fen', sa.Text(), nullable=False),
        sa.Column('moves', postgresql.JSONB(), nullable=False, server_default='[]'),
        sa.Column('white_time_remaining', sa.Float(), nullable=False),
        sa.Column('black_time_remaining', sa.Float(), nullable=False),
        sa.Column('turn_started_at', sa.DateTime(), nullable=True),
        sa.Column('first_move_made', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('result', sa.String(length=10), nullable=True),
        sa.Column('result_reason', sa.String(length=40), nullable=True),
        sa.Column('winner', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('tournament_id', name='uq_tournament_game'),
    )
    op.create_index('idx_games_status_created', 'tournament_games', ['status', 'created_at'])
    op.create_index('idx_games_white', 'tournament_games', ['player_white'])
    op.create_index('idx_games_black', 'tournament_games', ['player_black'])

    op.create_table(
        'player_profiles',
        sa.Column('wallet_address', sa.String(length=64), primary_key=True),
        sa.Column('bot_elo', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('multiplayer_elo', sa.Float(), nullable=False, server_default='1200'),
        sa.Column('bot_wins', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('bot_losses', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('bot_draws', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('multiplayer_wins', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('multiplayer_losses', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('multiplayer_draws', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_games', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )

    op.create_table(
        'player_settings',
        sa.Column('wallet_address', sa.String(length=64), primary_key=True),
        sa.Column('confirm_moves', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('highlight_legal_moves', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('auto_queen_promotion', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )

    op.create_table(
        'prize_distributions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column(
            'tournament_id', sa.String(length=36),
            sa.ForeignKey('tournaments.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('recipient_address', sa.String(length=64), nullable=False),
        sa.Column('amount', sa.Numeric(20, 6), nullable=False),
        sa.Column('currency', sa.String(length=40), nullable=False),
        sa.Column('issuer', sa.String(length=64), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('distribution_type', sa.String(length=20), nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    # Payout worker polls pending rows oldest first
    op.create_index(
        'idx_prize_distributions_status', 'prize_distributions', ['status', 'created_at']
    )
    op.create_index(
        'idx_prize_distributions_tournament', 'prize_distributions', ['tournament_id']
    )


def downgrade() -> None:
    op.drop_index('idx_prize_distributions_tournament', table_name='prize_distributions')
    op.drop_index('idx_prize_distributions_status', table_name='prize_distributions')
    op.drop_table('prize_distributions')
    op.drop_table('player_settings')
    op.drop_table('player_profiles')
    op.drop_index('idx_games_black', table_name='tournament_games')
    op.drop_index('idx_games_white', table_name='tournament_games')
    op.drop_index('idx_games_status_created', table_name='tournament_games')
    op.drop_table('tournament_games')
    op.drop_index('idx_tournament_players_address', table_name='tournament_players')
    op.drop_table('tournament_players')
    op.drop_index('idx_tournaments_status_created', table_name='tournaments')
    op.drop_index('idx_tournaments_matchmaking', table_name='tournaments')
    op.drop_table('tournaments')
