"""create token_orders, order_events, distribution_leases

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 00:00:00
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "20261019_0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

token_order_type = sa.Enum("buy", "sell", name="token_order_type")
token_order_status = sa.Enum(
    "awaiting_distribution", "fulfilled", "failed", name="token_order_status"
)
order_event_type = sa.Enum("insert", "update", name="order_event_type")


def upgrade() -> None:
    bind = op.get_bind()
    token_order_type.create(bind, checkfirst=True)
    token_order_status.create(bind, checkfirst=True)
    order_event_type.create(bind, checkfirst=True)

    op.create_table(
        "token_orders",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("wallet_address", sa.String(length=64), nullable=False),
        sa.Column("order_type", token_order_type, nullable=False),
        sa.Column("token_amount", sa.Numeric(36, 18), nullable=False),
        sa.Column("payment_amount", sa.Numeric(36, 18), nullable=False),
        sa.Column("payment_currency", sa.String(length=16), nullable=False),
        sa.Column("transaction_hash", sa.String(length=128), nullable=False),
        sa.Column("payment_transaction_hash", sa.String(length=128), nullable=False),
        sa.Column("status", token_order_status, nullable=False),
        sa.Column("liquidity_added", sa.Boolean(), nullable=False),
        sa.Column("distribution_attempts", sa.Integer(), nullable=False),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("fulfilled_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("token_amount > 0", name="ck_token_orders_token_amount_positive"),
        sa.CheckConstraint("payment_amount > 0", name="ck_token_orders_payment_amount_positive"),
        sa.CheckConstraint(
            "(status = 'fulfilled' AND fulfilled_at IS NOT NULL)"
            " OR (status <> 'fulfilled' AND fulfilled_at IS NULL)",
            name="ck_token_orders_fulfilled_at_matches_status",
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("transaction_hash"),
        sa.UniqueConstraint("payment_transaction_hash"),
    )
    op.create_index(
        op.f("ix_token_orders_wallet_address"), "token_orders", ["wallet_address"], unique=False
    )
    op.create_index(
        "ix_token_orders_type_status_created",
        "token_orders",
        ["order_type", "status", "created_at"],
        unique=False,
    )

    op.create_table(
        "order_events",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("order_id", sa.Uuid(), nullable=False),
        sa.Column("wallet_address", sa.String(length=64), nullable=False),
        sa.Column("type", order_event_type, nullable=False),
        sa.Column(
            "snapshot",
            sa.JSON().with_variant(postgresql.JSONB(), "postgresql"),
            nullable=False,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(["order_id"], ["token_orders.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_order_events_order_id"), "order_events", ["order_id"], unique=False)
    op.create_index(
        op.f("ix_order_events_wallet_address"), "order_events", ["wallet_address"], unique=False
    )

    op.create_table(
        "distribution_leases",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(length=64), nullable=False),
        sa.Column("holder", sa.String(length=64), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name", name="uq_distribution_lease_name"),
    )


def downgrade() -> None:
    op.drop_table("distribution_leases")

    op.drop_index(op.f("ix_order_events_wallet_address"), table_name="order_events")
    op.drop_index(op.f("ix_order_events_order_id"), table_name="order_events")
    op.drop_table("order_events")

    op.drop_index("ix_token_orders_type_status_created", table_name="token_orders")
    op.drop_index(op.f("ix_token_orders_wallet_address"), table_name="token_orders")
    op.drop_table("token_orders")

    bind = op.get_bind()
    order_event_type.drop(bind, checkfirst=True)
    token_order_status.drop(bind, checkfirst=True)
    token_order_type.drop(bind, checkfirst=True)
