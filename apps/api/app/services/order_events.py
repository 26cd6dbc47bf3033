"""Change feed for presentation consumers.

Every insert or update of a token order appends an ``OrderEvent`` carrying a
full row snapshot, inside the same transaction as the change. Consumers poll
with the last cursor they saw.
"""

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.order_event import OrderEvent, OrderEventType
from app.models.token_order import TokenOrder
from app.schemas.order import OrderResponse

MAX_EVENTS_PER_POLL = 200


def order_snapshot(order: TokenOrder) -> dict:
    return OrderResponse.model_validate(order).model_dump(mode="json")


def append_order_event(db: Session, order: TokenOrder, event_type: OrderEventType) -> OrderEvent:
    event = OrderEvent(
        order_id=order.id,
        wallet_address=order.wallet_address,
        type=event_type,
        snapshot=order_snapshot(order),
    )
    db.add(event)
    return event


def list_order_events(
    db: Session,
    *,
    after: int = 0,
    wallet_address: str | None = None,
    limit: int = MAX_EVENTS_PER_POLL,
) -> tuple[list[OrderEvent], int]:
    query = select(OrderEvent).where(OrderEvent.id > after)
    if wallet_address:
        query = query.where(OrderEvent.wallet_address == wallet_address.strip().lower())
    events = list(db.scalars(query.order_by(OrderEvent.id.asc()).limit(min(limit, MAX_EVENTS_PER_POLL))))
    next_cursor = events[-1].id if events else after
    return events, next_cursor
