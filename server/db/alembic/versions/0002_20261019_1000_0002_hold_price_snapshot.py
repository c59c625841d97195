"""Snapshot the quoted price breakdown on holds

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-19 10:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = '0002'
down_revision: str | None = '0001'
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Upgrade database schema."""
    # Holds created before this revision keep an empty snapshot
    op.add_column(
        'holds',
        sa.Column('price_breakdown', sa.JSON(), server_default=sa.text("'{}'"), nullable=False),
    )


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_column('holds', 'price_breakdown')
