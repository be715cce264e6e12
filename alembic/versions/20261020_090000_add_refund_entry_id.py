"""Add entry_id to prize_distributions so refunds are tracked per entry

Each refund records the tournament_players row id of the entry it returns,
and at most one refund exists per entry.

Revision ID: 8b2d4e6f1a93
Revises: 3f9c1a7e2b10
Create Date: 2026-10-20

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# Revision identifiers, used by Alembic
revision: str = '8b2d4e6f1a93'
down_revision: Union[str, None] = '3f9c1a7e2b10'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column(
        'prize_distributions',
        sa.Column('entry_id', sa.Integer(), nullable=True),
    )
    op.create_unique_constraint(
        'uq_prize_distribution_entry',
        'prize_distributions',
        ['entry_id', 'distribution_type'],
    )


def downgrade() -> None:
    op.drop_constraint('uq_prize_distribution_entry', 'prize_distributions', type_='unique')
    op.drop_column('prize_distributions', 'entry_id')
