"""Tests for the order and order-item state machines."""

import pytest

from ordering.order.states import (
    OrderItemStatus,
    OrderStatus,
    assert_can_transition,
    assert_can_transition_item,
    can_transition,
    can_transition_item,
    derive_order_status,
)
from shared.errors import ConflictError


class TestOrderTransitions:
    @pytest.mark.parametrize(
        "current,target",
        [
            (OrderStatus.PENDING, OrderStatus.CONFIRMED),
            (OrderStatus.PENDING, OrderStatus.CANCELLED),
            (OrderStatus.PENDING, OrderStatus.FAILED),
            (OrderStatus.CONFIRMED, OrderStatus.PROCESSING),
            (OrderStatus.CONFIRMED, OrderStatus.CANCELLED),
            (OrderStatus.PROCESSING, OrderStatus.SHIPPED),
            (OrderStatus.PROCESSING, OrderStatus.CANCELLED),
            (OrderStatus.SHIPPED, OrderStatus.DELIVERED),
            (OrderStatus.DELIVERED, OrderStatus.REFUNDED),
            (OrderStatus.FAILED, OrderStatus.PENDING),
        ],
    )
    def test_legal_transitions(self, current, target):
        assert can_transition(current, target)

    @pytest.mark.parametrize(
        "current,target",
        [
            (OrderStatus.PENDING, OrderStatus.SHIPPED),
            (OrderStatus.CONFIRMED, OrderStatus.DELIVERED),
            (OrderStatus.SHIPPED, OrderStatus.CANCELLED),
            (OrderStatus.DELIVERED, OrderStatus.PENDING),
            (OrderStatus.FAILED, OrderStatus.CONFIRMED),
        ],
    )
    def test_illegal_transitions(self, current, target):
        assert not can_transition(current, target)

    @pytest.mark.parametrize("terminal", [OrderStatus.CANCELLED, OrderStatus.REFUNDED])
    def test_terminal_states_go_nowhere(self, terminal):
        assert not any(can_transition(terminal, target) for target in OrderStatus)

    def test_assert_raises_conflict_with_code(self):
        with pytest.raises(ConflictError) as exc_info:
            assert_can_transition(OrderStatus.CANCELLED, OrderStatus.CONFIRMED)
        assert exc_info.value.code == "INVALID_STATUS_TRANSITION"
        assert exc_info.value.details == {"from": "cancelled", "to": "confirmed"}


class TestItemTransitions:
    def test_item_happy_path(self):
        path = [
            OrderItemStatus.PENDING,
            OrderItemStatus.CONFIRMED,
            OrderItemStatus.PROCESSING,
            OrderItemStatus.READY_TO_SHIP,
            OrderItemStatus.SHIPPED,
            OrderItemStatus.DELIVERED,
            OrderItemStatus.RETURNED,
        ]
        for current, target in zip(path, path[1:]):
            assert can_transition_item(current, target)

    def test_shipped_item_cannot_be_cancelled(self):
        assert not can_transition_item(OrderItemStatus.SHIPPED, OrderItemStatus.CANCELLED)

    def test_item_cannot_skip_ready_to_ship(self):
        with pytest.raises(ConflictError):
            assert_can_transition_item(OrderItemStatus.PROCESSING, OrderItemStatus.SHIPPED)


class TestDeriveOrderStatus:
    def test_all_delivered(self):
        assert derive_order_status([OrderItemStatus.DELIVERED, OrderItemStatus.DELIVERED]) == OrderStatus.DELIVERED

    def test_shipped_or_delivered_is_shipped(self):
        statuses = [OrderItemStatus.SHIPPED, OrderItemStatus.DELIVERED]
        assert derive_order_status(statuses) == OrderStatus.SHIPPED

    def test_all_cancelled(self):
        assert derive_order_status([OrderItemStatus.CANCELLED]) == OrderStatus.CANCELLED

    def test_mixed_statuses_imply_nothing(self):
        assert derive_order_status([OrderItemStatus.SHIPPED, OrderItemStatus.PROCESSING]) is None
        assert derive_order_status([OrderItemStatus.CANCELLED, OrderItemStatus.DELIVERED]) is None

    def test_no_items(self):
        assert derive_order_status([]) is None
