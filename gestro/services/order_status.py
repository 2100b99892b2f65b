"""
Order Status Workflow

    pending ──► preparing ──► ready ──► delivered
       │
       └──────► cancelled

delivered and cancelled are terminal. Administrators may bypass the
table with an explicit override (see OrderRepository.update_order_status).
"""

from gestro.exceptions import InvalidStatusTransitionError
from gestro.models import OrderStatus


ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PREPARING, OrderStatus.CANCELLED}),
    OrderStatus.PREPARING: frozenset({OrderStatus.READY}),
    OrderStatus.READY: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

STATUS_LABELS: dict[OrderStatus, str] = {
    OrderStatus.PENDING: "Pending",
    OrderStatus.PREPARING: "Preparing",
    OrderStatus.READY: "Ready",
    OrderStatus.DELIVERED: "Delivered",
    OrderStatus.CANCELLED: "Cancelled",
}

# Severity shown to staff when an order reaches the status
STATUS_SEVERITY: dict[OrderStatus, str] = {
    OrderStatus.PENDING: "info",
    OrderStatus.PREPARING: "info",
    OrderStatus.READY: "success",
    OrderStatus.DELIVERED: "success",
    OrderStatus.CANCELLED: "error",
}

# Customer-facing wording for each status
CUSTOMER_MESSAGES: dict[OrderStatus, str] = {
    OrderStatus.PENDING: "We received your order and it is waiting to be confirmed.",
    OrderStatus.PREPARING: "Your order is being prepared in the kitchen.",
    OrderStatus.READY: "Your order is ready!",
    OrderStatus.DELIVERED: "Your order has been delivered. Enjoy your meal!",
    OrderStatus.CANCELLED: "Your order has been cancelled.",
}


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def ensure_transition(current: OrderStatus, target: OrderStatus) -> None:
    """Raise InvalidStatusTransitionError unless current -> target is allowed."""
    if not can_transition(current, target):
        raise InvalidStatusTransitionError(current.value, target.value)


def next_statuses(current: OrderStatus) -> list[OrderStatus]:
    """Statuses reachable in one step, in workflow order."""
    return [s for s in OrderStatus if s in ALLOWED_TRANSITIONS[current]]


def is_terminal(status: OrderStatus) -> bool:
    return not ALLOWED_TRANSITIONS[status]
