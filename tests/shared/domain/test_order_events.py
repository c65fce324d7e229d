"""Tests for order event records and the in-process publishers."""

from types import SimpleNamespace

import pytest

from shared.events.ordering import item_status_events, order_cancelled_events, order_created_events
from shared.events.publisher import InMemoryPublisher, LoggingPublisher, build_publisher


def _item(item_id, vendor_id, total_price, quantity=1, status="pending"):
    return SimpleNamespace(
        id=item_id,
        vendor_id=vendor_id,
        product_id=f"prod-{item_id}",
        product_name=f"Product {item_id}",
        product_slug=f"product-{item_id}",
        variant_id=None,
        variant_name=None,
        quantity=quantity,
        unit_price=round(total_price / quantity, 2),
        total_price=total_price,
        status=status,
        tracking_number=None,
        tracking_url=None,
    )


@pytest.fixture
def order():
    return SimpleNamespace(
        id="ord-001",
        order_number="ORD-260101-0001",
        customer_id="cust-001",
        currency="USD",
        total_amount=71.5,
        shipping_address={
            "full_name": "Jane Doe",
            "address_line1": "123 Elm Street",
            "city": "Springfield",
            "state": "IL",
            "country": "US",
        },
        items=[
            _item("i1", "vendor-001", 20.0),
            _item("i2", "vendor-002", 30.0, quantity=2),
            _item("i3", "vendor-001", 15.0),
        ],
    )


class TestOrderCreated:
    def test_one_event_per_vendor_with_only_its_lines(self, order):
        events = order_created_events(order)

        assert [(e.vendor_id, [line["id"] for line in e.items], e.subtotal) for e in events] == [
            ("vendor-001", ["i1", "i3"], 35.0),
            ("vendor-002", ["i2"], 30.0),
        ]

    def test_vendors_never_see_the_street(self, order):
        [first, _] = order_created_events(order)

        assert first.ship_to == {"city": "Springfield", "state": "IL", "country": "US"}
        assert "123 Elm Street" not in str(first.to_message())


class TestOrderCancelled:
    def test_vendor_copies_then_the_customer_copy(self, order):
        events = order_cancelled_events(order, "Changed my mind", None)

        assert [e.routing_key for e in events] == [
            "vendor.order.cancelled",
            "vendor.order.cancelled",
            "customer.order.cancelled",
        ]
        assert events[-1].total_amount == 71.5


class TestItemStatus:
    def test_customer_hears_about_shipping(self, order):
        shipped = _item("i1", "vendor-001", 20.0, status="shipped")

        events = item_status_events(order, shipped, "ready_to_ship")

        assert [e.__type__ for e in events] == ["ORDER_ITEM_STATUS_UPDATED", "ORDER_STATUS_UPDATED"]
        assert events[1].routing_key == "customer.order.shipped"

    def test_vendor_only_for_other_steps(self, order):
        processing = _item("i1", "vendor-001", 20.0, status="processing")

        [event] = item_status_events(order, processing, "confirmed")

        assert event.vendor_id == "vendor-001"


class TestMessageEnvelope:
    def test_envelope_fields(self, order):
        [event] = order_created_events(order)[1:]

        message = event.to_message()

        assert message["id"] == event.event_id
        assert message["type"] == "ORDER_CREATED"
        assert message["metadata"] == {"source": "order-service", "version": "v1", "correlation_id": "ord-001"}
        assert message["payload"]["order_number"] == "ORD-260101-0001"
        assert "event_id" not in message["payload"]

    def test_events_get_distinct_ids(self, order):
        first, second = order_created_events(order)

        assert first.event_id != second.event_id


class TestPublishers:
    async def test_in_memory_keeps_order(self, order):
        publisher = InMemoryPublisher()

        await publisher.publish_all(order_cancelled_events(order, None, None))

        assert [e.__type__ for e in publisher.published] == ["ORDER_CANCELLED"] * 3

    async def test_one_failure_does_not_stop_the_rest(self, order):
        publisher = InMemoryPublisher()
        original = publisher.publish
        attempts = []

        async def flaky(event):
            attempts.append(event.routing_key)
            if len(attempts) == 1:
                raise ConnectionError("broker unreachable")
            await original(event)

        publisher.publish = flaky

        await publisher.publish_all(order_cancelled_events(order, None, None))

        assert len(attempts) == 3
        assert len(publisher.published) == 2

    def test_build_publisher(self):
        assert isinstance(build_publisher("log"), LoggingPublisher)
        assert isinstance(build_publisher("memory"), InMemoryPublisher)
        with pytest.raises(ValueError):
            build_publisher("kafka")
