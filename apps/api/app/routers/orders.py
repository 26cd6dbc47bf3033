import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.auth.dependencies import AuthContext, require_admin, require_backoffice
from app.db.session import get_db
from app.models.token_order import OrderStatus, OrderType
from app.observability import log_event, metrics_store
from app.schemas.order import (
    LiquidityMarkRequest,
    LiquidityMarkResponse,
    OrderEventResponse,
    OrderEventsResponse,
    OrderResponse,
    OrdersListResponse,
    PaginationMeta,
)
from app.services.order_events import MAX_EVENTS_PER_POLL, list_order_events
from app.services.orders_service import (
    get_order,
    list_liquidity_candidates,
    list_orders,
    mark_liquidity_added,
    requeue_order,
)

router = APIRouter(prefix="/api/v1/orders", tags=["orders"])


@router.get("", response_model=OrdersListResponse, summary="List orders for the admin view")
def list_orders_endpoint(
    db: Session = Depends(get_db),
    status: OrderStatus | None = Query(default=None),
    order_type: OrderType | None = Query(default=None),
    wallet_address: str | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
    _auth: AuthContext = Depends(require_backoffice),
) -> OrdersListResponse:
    items, total = list_orders(
        db,
        page=page,
        page_size=page_size,
        status_filter=status,
        order_type=order_type,
        wallet_address=wallet_address,
    )
    return OrdersListResponse(
        items=[OrderResponse.model_validate(order) for order in items],
        pagination=PaginationMeta(page=page, page_size=page_size, total=total),
    )


@router.get("/events", response_model=OrderEventsResponse, summary="Poll the order change feed")
def list_order_events_endpoint(
    after: int = Query(default=0, ge=0),
    wallet_address: str | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=MAX_EVENTS_PER_POLL),
    db: Session = Depends(get_db),
) -> OrderEventsResponse:
    events, next_cursor = list_order_events(
        db, after=after, wallet_address=wallet_address, limit=limit
    )
    return OrderEventsResponse(
        items=[OrderEventResponse.model_validate(event) for event in events],
        next_cursor=next_cursor,
    )


@router.get(
    "/liquidity/pending",
    response_model=list[OrderResponse],
    summary="Buy orders not yet added to liquidity",
)
def list_liquidity_pending_endpoint(
    db: Session = Depends(get_db),
    _auth: AuthContext = Depends(require_admin),
) -> list[OrderResponse]:
    return [OrderResponse.model_validate(order) for order in list_liquidity_candidates(db)]


@router.post("/liquidity", response_model=LiquidityMarkResponse, summary="Flag orders as added to liquidity")
def mark_liquidity_endpoint(
    payload: LiquidityMarkRequest,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_admin),
) -> LiquidityMarkResponse:
    updated = mark_liquidity_added(db, payload.order_ids)
    metrics_store.increment("liquidity_marked_total", len(updated))
    log_event("liquidity_marked", detail=f"user={auth.user_id} count={len(updated)}")
    return LiquidityMarkResponse(updated=[order.id for order in updated])


@router.get("/{order_id}", response_model=OrderResponse, summary="Get order detail")
def get_order_endpoint(
    order_id: uuid.UUID,
    db: Session = Depends(get_db),
    _auth: AuthContext = Depends(require_backoffice),
) -> OrderResponse:
    return OrderResponse.model_validate(get_order(db, order_id))


@router.post("/{order_id}/requeue", response_model=OrderResponse, summary="Requeue a failed order or release a stale distribution claim")
def requeue_order_endpoint(
    order_id: uuid.UUID,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_admin),
) -> OrderResponse:
    order = requeue_order(db, order_id)
    metrics_store.increment("order_requeued_total")
    log_event("order_requeued", order_id=str(order.id), detail=f"user={auth.user_id}")
    return OrderResponse.model_validate(order)
