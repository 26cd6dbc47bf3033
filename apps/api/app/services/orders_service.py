import logging
import uuid

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.models.order_event import OrderEventType
from app.models.token_order import OrderStatus, OrderType, TokenOrder
from app.observability import log_event
from app.services.errors import OrderNotFoundError, ValidationError
from app.services.order_events import append_order_event
from app.services.state_machine import ensure_valid_transition


def get_order(db: Session, order_id: uuid.UUID) -> TokenOrder:
    order = db.get(TokenOrder, order_id)
    if not order:
        raise OrderNotFoundError()
    return order


def list_orders(
    db: Session,
    *,
    page: int = 1,
    page_size: int = 20,
    status_filter: OrderStatus | None = None,
    order_type: OrderType | None = None,
    wallet_address: str | None = None,
) -> tuple[list[TokenOrder], int]:
    query = select(TokenOrder)
    if status_filter:
        query = query.where(TokenOrder.status == status_filter)
    if order_type:
        query = query.where(TokenOrder.order_type == order_type)
    if wallet_address:
        query = query.where(TokenOrder.wallet_address == wallet_address.strip().lower())

    total = db.scalar(select(func.count()).select_from(query.subquery())) or 0
    items = db.scalars(
        query.order_by(TokenOrder.created_at.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return list(items), int(total)


def list_wallet_orders(db: Session, wallet_address: str) -> list[TokenOrder]:
    items, _total = list_orders(db, page=1, page_size=100, wallet_address=wallet_address)
    return items


def transition_order_status(db: Session, order: TokenOrder, next_status: OrderStatus) -> TokenOrder:
    ensure_valid_transition(order.status, next_status)
    order.status = next_status
    return order


def requeue_order(db: Session, order_id: uuid.UUID) -> TokenOrder:
    """Move a failed order back to the queue, or release a stale distribution claim.

    A claim survives when a batch died between transfer and bookkeeping. Check
    the ledger for a transfer to this wallet before releasing it.
    """
    order = get_order(db, order_id)
    if order.status == OrderStatus.AWAITING_DISTRIBUTION and order.distribution_claim:
        log_event(
            "distribution_claim_released",
            level=logging.WARNING,
            order_id=str(order.id),
            detail=f"claim={order.distribution_claim}",
        )
    else:
        transition_order_status(db, order, OrderStatus.AWAITING_DISTRIBUTION)
    order.distribution_claim = None
    order.distribution_claimed_at = None
    order.distribution_attempts = 0
    order.last_error = None
    db.flush()
    append_order_event(db, order, OrderEventType.UPDATE)
    db.commit()
    db.refresh(order)
    return order


def list_liquidity_candidates(db: Session) -> list[TokenOrder]:
    """Buy orders whose proceeds have not yet been added to the liquidity pool."""
    query = (
        select(TokenOrder)
        .where(
            TokenOrder.order_type == OrderType.BUY,
            TokenOrder.liquidity_added.is_(False),
            TokenOrder.status != OrderStatus.FAILED,
        )
        .order_by(TokenOrder.created_at.asc())
    )
    return list(db.scalars(query))


def mark_liquidity_added(db: Session, order_ids: list[uuid.UUID]) -> list[TokenOrder]:
    orders = [get_order(db, order_id) for order_id in dict.fromkeys(order_ids)]
    sell_orders = [str(order.id) for order in orders if order.order_type != OrderType.BUY]
    if sell_orders:
        raise ValidationError("Only buy orders can be folded into liquidity: " + ", ".join(sell_orders))

    updated: list[TokenOrder] = []
    for order in orders:
        if order.liquidity_added:
            continue
        order.liquidity_added = True
        updated.append(order)

    if updated:
        db.flush()
        for order in updated:
            append_order_event(db, order, OrderEventType.UPDATE)
        db.commit()
    return updated
