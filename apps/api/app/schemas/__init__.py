from app.schemas.distribution import (
    DistributionResultItem,
    DistributionRunRequest,
    DistributionRunResponse,
)
from app.schemas.order import (
    OrderEventResponse,
    OrderEventsResponse,
    OrderResponse,
    OrdersListResponse,
    PurchaseRequest,
    PurchaseResponse,
)

__all__ = [
    "PurchaseRequest",
    "PurchaseResponse",
    "OrderResponse",
    "OrdersListResponse",
    "OrderEventResponse",
    "OrderEventsResponse",
    "DistributionRunRequest",
    "DistributionRunResponse",
    "DistributionResultItem",
]
