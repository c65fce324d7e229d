"""Order and order-item state machines.

Order:
    PENDING → CONFIRMED → PROCESSING → SHIPPED → DELIVERED → REFUNDED
    PENDING → FAILED → PENDING (manual retry)
    PENDING/CONFIRMED/PROCESSING → CANCELLED

Item:
    PENDING → CONFIRMED → PROCESSING → READY_TO_SHIP → SHIPPED → DELIVERED → RETURNED
    PENDING/CONFIRMED/PROCESSING → CANCELLED
"""

from collections.abc import Iterable
from enum import Enum

from shared.errors import ConflictError


class OrderStatus(Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    FAILED = "failed"


class OrderPaymentStatus(Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially_refunded"


class OrderItemStatus(Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    READY_TO_SHIP = "ready_to_ship"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    RETURNED = "returned"


_VALID_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED, OrderStatus.FAILED},
    OrderStatus.CONFIRMED: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: {OrderStatus.REFUNDED},
    OrderStatus.CANCELLED: set(),  # Terminal
    OrderStatus.REFUNDED: set(),  # Terminal
    OrderStatus.FAILED: {OrderStatus.PENDING},  # retry
}

_VALID_ITEM_TRANSITIONS = {
    OrderItemStatus.PENDING: {OrderItemStatus.CONFIRMED, OrderItemStatus.CANCELLED},
    OrderItemStatus.CONFIRMED: {OrderItemStatus.PROCESSING, OrderItemStatus.CANCELLED},
    OrderItemStatus.PROCESSING: {OrderItemStatus.READY_TO_SHIP, OrderItemStatus.CANCELLED},
    OrderItemStatus.READY_TO_SHIP: {OrderItemStatus.SHIPPED},
    OrderItemStatus.SHIPPED: {OrderItemStatus.DELIVERED},
    OrderItemStatus.DELIVERED: {OrderItemStatus.RETURNED},
    OrderItemStatus.CANCELLED: set(),  # Terminal
    OrderItemStatus.RETURNED: set(),  # Terminal
}

CANCELLABLE_STATUSES = {OrderStatus.PENDING, OrderStatus.CONFIRMED}


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in _VALID_TRANSITIONS.get(current, set())


def can_transition_item(current: OrderItemStatus, target: OrderItemStatus) -> bool:
    return target in _VALID_ITEM_TRANSITIONS.get(current, set())


def assert_can_transition(current: OrderStatus, target: OrderStatus) -> None:
    if not can_transition(current, target):
        raise ConflictError(
            f"Cannot transition from {current.value} to {target.value}",
            code="INVALID_STATUS_TRANSITION",
            details={"from": current.value, "to": target.value},
        )


def assert_can_transition_item(current: OrderItemStatus, target: OrderItemStatus) -> None:
    if not can_transition_item(current, target):
        raise ConflictError(
            f"Cannot transition item from {current.value} to {target.value}",
            code="INVALID_STATUS_TRANSITION",
            details={"from": current.value, "to": target.value},
        )


def derive_order_status(item_statuses: Iterable[OrderItemStatus]) -> OrderStatus | None:
    """The order status implied by its items, or None when they don't agree.

    All delivered wins over all shipped-or-delivered, which wins over all
    cancelled.
    """
    statuses = list(item_statuses)
    if not statuses:
        return None
    if all(s == OrderItemStatus.DELIVERED for s in statuses):
        return OrderStatus.DELIVERED
    if all(s in (OrderItemStatus.SHIPPED, OrderItemStatus.DELIVERED) for s in statuses):
        return OrderStatus.SHIPPED
    if all(s == OrderItemStatus.CANCELLED for s in statuses):
        return OrderStatus.CANCELLED
    return None
