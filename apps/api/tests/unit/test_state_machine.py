import pytest

from app.models.token_order import OrderStatus
from app.services.errors import InvalidTransitionError
from app.services.state_machine import ensure_valid_transition


@pytest.mark.parametrize(
    ("current", "next_status"),
    [
        (OrderStatus.AWAITING_DISTRIBUTION, OrderStatus.FULFILLED),
        (OrderStatus.AWAITING_DISTRIBUTION, OrderStatus.FAILED),
        (OrderStatus.FAILED, OrderStatus.AWAITING_DISTRIBUTION),
        (OrderStatus.FULFILLED, OrderStatus.FULFILLED),
    ],
)
def test_allowed_transitions(current, next_status):
    ensure_valid_transition(current, next_status)


@pytest.mark.parametrize(
    "next_status", [OrderStatus.AWAITING_DISTRIBUTION, OrderStatus.FAILED]
)
def test_fulfilled_is_terminal(next_status):
    with pytest.raises(InvalidTransitionError, match="fulfilled ->"):
        ensure_valid_transition(OrderStatus.FULFILLED, next_status)


def test_failed_cannot_jump_to_fulfilled():
    with pytest.raises(InvalidTransitionError):
        ensure_valid_transition(OrderStatus.FAILED, OrderStatus.FULFILLED)
