from app.models.token_order import OrderStatus
from app.services.errors import InvalidTransitionError

ORDER_STATE_TRANSITIONS: dict[OrderStatus, set[OrderStatus]] = {
    OrderStatus.AWAITING_DISTRIBUTION: {OrderStatus.FULFILLED, OrderStatus.FAILED},
    # admin requeue only
    OrderStatus.FAILED: {OrderStatus.AWAITING_DISTRIBUTION},
    OrderStatus.FULFILLED: set(),
}


def ensure_valid_transition(current: OrderStatus, next_status: OrderStatus) -> None:
    if next_status == current:
        return

    allowed = ORDER_STATE_TRANSITIONS.get(current, set())
    if next_status not in allowed:
        raise InvalidTransitionError(
            f"Invalid state transition: {current.value} -> {next_status.value}"
        )
