from enum import Enum


class OrderStatus(str, Enum):
    PENDING_PAYMENT = "PendingPayment"
    PAYMENT_SUCCEEDED = "PaymentSucceeded"
    PAYMENT_FAILED = "PaymentFailed"
    FULFILLED = "Fulfilled"


class PaymentStatus(str, Enum):
    PENDING = "Pending"
    PAYMENT_SUCCEEDED = "PaymentSucceeded"
    PAYMENT_FAILED = "PaymentFailed"


# Legal forward moves of an Order. Anything not listed is a regression.
ORDER_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING_PAYMENT: frozenset({OrderStatus.PAYMENT_SUCCEEDED, OrderStatus.PAYMENT_FAILED}),
    OrderStatus.PAYMENT_SUCCEEDED: frozenset({OrderStatus.FULFILLED}),
    OrderStatus.PAYMENT_FAILED: frozenset(),
    OrderStatus.FULFILLED: frozenset(),
}

PAYMENT_OUTCOMES = frozenset({OrderStatus.PAYMENT_SUCCEEDED, OrderStatus.PAYMENT_FAILED})


def can_transition(current: OrderStatus | str, target: OrderStatus | str) -> bool:
    return OrderStatus(target) in ORDER_TRANSITIONS[OrderStatus(current)]


def predecessors(target: OrderStatus | str) -> frozenset[OrderStatus]:
    """Statuses an Order may hold when ``target`` is written to it."""
    target = OrderStatus(target)
    return frozenset(status for status, nexts in ORDER_TRANSITIONS.items() if target in nexts)
