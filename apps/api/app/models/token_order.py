import enum
import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class OrderType(str, enum.Enum):
    BUY = "buy"
    SELL = "sell"


class OrderStatus(str, enum.Enum):
    AWAITING_DISTRIBUTION = "awaiting_distribution"
    FULFILLED = "fulfilled"
    FAILED = "failed"


class TokenOrder(Base):
    __tablename__ = "token_orders"
    __table_args__ = (
        CheckConstraint("token_amount > 0", name="ck_token_orders_token_amount_positive"),
        CheckConstraint("payment_amount > 0", name="ck_token_orders_payment_amount_positive"),
        CheckConstraint(
            "(status = 'fulfilled' AND fulfilled_at IS NOT NULL)"
            " OR (status <> 'fulfilled' AND fulfilled_at IS NULL)",
            name="ck_token_orders_fulfilled_at_matches_status",
        ),
        Index("ix_token_orders_type_status_created", "order_type", "status", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    wallet_address: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    order_type: Mapped[OrderType] = mapped_column(
        Enum(OrderType, name="token_order_type", values_callable=_enum_values),
        nullable=False,
    )
    token_amount: Mapped[Decimal] = mapped_column(Numeric(36, 18), nullable=False)
    payment_amount: Mapped[Decimal] = mapped_column(Numeric(36, 18), nullable=False)
    payment_currency: Mapped[str] = mapped_column(String(16), nullable=False)

    # Current hash: the payment hash until settlement, then the distribution hash.
    transaction_hash: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    payment_transaction_hash: Mapped[str] = mapped_column(
        String(128), unique=True, nullable=False
    )

    status: Mapped[OrderStatus] = mapped_column(
        Enum(OrderStatus, name="token_order_status", values_callable=_enum_values),
        nullable=False,
        default=OrderStatus.AWAITING_DISTRIBUTION,
    )
    liquidity_added: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    distribution_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Holder of the batch lease that is transferring tokens for this order.
    distribution_claim: Mapped[str | None] = mapped_column(String(64), nullable=True)
    distribution_claimed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=func.now(),
        onupdate=_utcnow,
    )
    fulfilled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
