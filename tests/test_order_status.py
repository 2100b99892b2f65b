import pytest

from gestro.exceptions import InvalidStatusTransitionError
from gestro.models import OrderStatus
from gestro.services.order_status import (
    ALLOWED_TRANSITIONS,
    CUSTOMER_MESSAGES,
    STATUS_LABELS,
    STATUS_SEVERITY,
    can_transition,
    ensure_transition,
    is_terminal,
    next_statuses,
)


@pytest.mark.parametrize("current,target", [
    (OrderStatus.PENDING, OrderStatus.PREPARING),
    (OrderStatus.PENDING, OrderStatus.CANCELLED),
    (OrderStatus.PREPARING, OrderStatus.READY),
    (OrderStatus.READY, OrderStatus.DELIVERED),
])
def test_forward_transitions_allowed(current, target):
    assert can_transition(current, target)
    ensure_transition(current, target)


@pytest.mark.parametrize("current,target", [
    (OrderStatus.PENDING, OrderStatus.READY),
    (OrderStatus.PENDING, OrderStatus.DELIVERED),
    (OrderStatus.PREPARING, OrderStatus.PENDING),
    (OrderStatus.PREPARING, OrderStatus.CANCELLED),
    (OrderStatus.READY, OrderStatus.PREPARING),
    (OrderStatus.DELIVERED, OrderStatus.PENDING),
    (OrderStatus.CANCELLED, OrderStatus.PENDING),
])
def test_other_transitions_rejected(current, target):
    assert not can_transition(current, target)
    with pytest.raises(InvalidStatusTransitionError) as exc_info:
        ensure_transition(current, target)
    assert exc_info.value.current == current.value
    assert exc_info.value.target == target.value
    assert exc_info.value.status_code == 409


def test_terminal_statuses():
    assert is_terminal(OrderStatus.DELIVERED)
    assert is_terminal(OrderStatus.CANCELLED)
    assert not is_terminal(OrderStatus.PENDING)
    assert next_statuses(OrderStatus.DELIVERED) == []


def test_next_statuses_follow_workflow_order():
    assert next_statuses(OrderStatus.PENDING) == [OrderStatus.PREPARING, OrderStatus.CANCELLED]
    assert next_statuses(OrderStatus.PREPARING) == [OrderStatus.READY]


def test_every_status_has_label_severity_and_message():
    for status in OrderStatus:
        assert status in ALLOWED_TRANSITIONS
        assert STATUS_LABELS[status]
        assert CUSTOMER_MESSAGES[status]
        assert STATUS_SEVERITY[status] in ("info", "success", "error")

    assert STATUS_SEVERITY[OrderStatus.CANCELLED] == "error"
    assert STATUS_SEVERITY[OrderStatus.READY] == "success"
