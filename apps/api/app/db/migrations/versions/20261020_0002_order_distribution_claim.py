"""add distribution claim columns to token_orders

Revision ID: 20261020_0002
Revises: 20261019_0001
Create Date: 2026-10-20 00:02:00
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "20261020_0002"
down_revision: Union[str, None] = "20261019_0001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column(
        "token_orders",
        sa.Column("distribution_claim", sa.String(length=64), nullable=True),
    )
    op.add_column(
        "token_orders",
        sa.Column("distribution_claimed_at", sa.DateTime(timezone=True), nullable=True),
    )


def downgrade() -> None:
    op.drop_column("token_orders", "distribution_claimed_at")
    op.drop_column("token_orders", "distribution_claim")
