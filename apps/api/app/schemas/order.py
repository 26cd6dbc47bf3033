import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from app.models.order_event import OrderEventType
from app.models.token_order import OrderStatus, OrderType


class PurchaseRequest(BaseModel):
    """Purchase recording body.

    Every field is optional at the schema level so that missing fields are
    reported by the recorder as a 400 validation error.
    """

    model_config = ConfigDict(populate_by_name=True)

    wallet_address: str | None = Field(default=None, alias="walletAddress")
    token_amount: Decimal | None = Field(default=None, alias="tokenAmount")
    payment_amount: Decimal | None = Field(default=None, alias="paymentAmount")
    transaction_hash: str | None = Field(default=None, alias="transactionHash")
    order_type: str | None = Field(default="buy", alias="orderType")


class OrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    wallet_address: str
    order_type: OrderType
    token_amount: Decimal
    payment_amount: Decimal
    payment_currency: str
    transaction_hash: str
    payment_transaction_hash: str
    status: OrderStatus
    liquidity_added: bool
    distribution_attempts: int
    last_error: str | None
    distribution_claimed_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
    fulfilled_at: datetime | None


class PurchaseResponse(BaseModel):
    success: bool = True
    order: OrderResponse
    message: str


class PaginationMeta(BaseModel):
    page: int
    page_size: int
    total: int


class OrdersListResponse(BaseModel):
    items: list[OrderResponse]
    pagination: PaginationMeta


class WalletOrdersResponse(BaseModel):
    wallet_address: str
    items: list[OrderResponse]


class LiquidityMarkRequest(BaseModel):
    order_ids: list[uuid.UUID] = Field(min_length=1, max_length=500)


class LiquidityMarkResponse(BaseModel):
    updated: list[uuid.UUID]


class OrderEventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    order_id: uuid.UUID
    wallet_address: str
    type: OrderEventType
    snapshot: dict
    created_at: datetime


class OrderEventsResponse(BaseModel):
    items: list[OrderEventResponse]
    next_cursor: int
