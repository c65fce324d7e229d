"""Cross-context event contracts for order lifecycle events.

These records define what other contexts (vendor dashboards, customer
notifications) hear about an order. They are plain frozen dataclasses;
``to_message`` renders the envelope a broker adapter would put on the wire.

Vendor-facing events are emitted once per vendor with only that vendor's
lines; customer-facing events are emitted once per order.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, ClassVar
from uuid import uuid4

from shared.clock import utcnow

SOURCE = "order-service"

VENDOR_ORDER_CREATED = "vendor.order.created"
VENDOR_ORDER_CANCELLED = "vendor.order.cancelled"
VENDOR_ORDER_ITEM_STATUS = "vendor.order.item.status"
CUSTOMER_ORDER_CANCELLED = "customer.order.cancelled"


@dataclass(frozen=True, kw_only=True)
class OrderEvent:
    """Fields shared by every order event."""

    __type__: ClassVar[str]
    __version__: ClassVar[str] = "v1"

    order_id: str
    order_number: str
    customer_id: str
    event_id: str = field(default_factory=lambda: str(uuid4()))
    occurred_at: datetime = field(default_factory=utcnow)

    @property
    def routing_key(self) -> str:
        raise NotImplementedError

    def payload(self) -> dict[str, Any]:
        data = asdict(self)
        data.pop("event_id")
        data.pop("occurred_at")
        return data

    def to_message(self) -> dict[str, Any]:
        return {
            "id": self.event_id,
            "type": self.__type__,
            "timestamp": self.occurred_at.isoformat(),
            "payload": self.payload(),
            "metadata": {"source": SOURCE, "version": self.__version__, "correlation_id": self.order_id},
        }


@dataclass(frozen=True, kw_only=True)
class VendorOrderCreated(OrderEvent):
    """A confirmed order contains lines sold by this vendor."""

    __type__ = "ORDER_CREATED"

    vendor_id: str
    items: tuple[dict[str, Any], ...]
    subtotal: float
    currency: str
    # City, state and country only; vendors never see the street address.
    ship_to: dict[str, Any]

    @property
    def routing_key(self) -> str:
        return VENDOR_ORDER_CREATED


@dataclass(frozen=True, kw_only=True)
class VendorOrderCancelled(OrderEvent):
    __type__ = "ORDER_CANCELLED"

    vendor_id: str
    reason: str | None
    refund_status: str | None
    items: tuple[dict[str, Any], ...]

    @property
    def routing_key(self) -> str:
        return VENDOR_ORDER_CANCELLED


@dataclass(frozen=True, kw_only=True)
class OrderCancelled(OrderEvent):
    """The customer's copy of a cancellation."""

    __type__ = "ORDER_CANCELLED"

    reason: str | None
    refund_status: str | None
    total_amount: float
    currency: str

    @property
    def routing_key(self) -> str:
        return CUSTOMER_ORDER_CANCELLED


@dataclass(frozen=True, kw_only=True)
class OrderStatusUpdated(OrderEvent):
    __type__ = "ORDER_STATUS_UPDATED"

    previous_status: str
    new_status: str

    @property
    def routing_key(self) -> str:
        return f"customer.order.{self.new_status}"


@dataclass(frozen=True, kw_only=True)
class OrderItemStatusUpdated(OrderEvent):
    """One line moved through fulfilment. Goes to the vendor that sells it."""

    __type__ = "ORDER_ITEM_STATUS_UPDATED"

    order_item_id: str
    vendor_id: str
    product_name: str
    variant_name: str | None
    previous_status: str
    new_status: str
    tracking_number: str | None = None
    tracking_url: str | None = None

    @property
    def routing_key(self) -> str:
        return VENDOR_ORDER_ITEM_STATUS


@dataclass(frozen=True, kw_only=True)
class OrderItemShipmentUpdated(OrderEvent):
    """Tells the customer that one of their lines shipped or arrived."""

    __type__ = "ORDER_STATUS_UPDATED"

    order_item_id: str
    product_name: str
    new_status: str
    tracking_number: str | None = None
    tracking_url: str | None = None

    @property
    def routing_key(self) -> str:
        return f"customer.order.{self.new_status}"


def _line(item, *fields: str) -> dict[str, Any]:
    return {name: getattr(item, name) for name in ("id", *fields)}


def _by_vendor(items) -> dict[str, list]:
    grouped: dict[str, list] = {}
    for item in items:
        grouped.setdefault(item.vendor_id, []).append(item)
    return grouped


def order_created_events(order) -> list[VendorOrderCreated]:
    shipping = order.shipping_address or {}
    return [
        VendorOrderCreated(
            order_id=order.id,
            order_number=order.order_number,
            customer_id=order.customer_id,
            vendor_id=vendor_id,
            items=tuple(
                _line(
                    item,
                    "product_id",
                    "product_name",
                    "product_slug",
                    "variant_id",
                    "variant_name",
                    "quantity",
                    "unit_price",
                    "total_price",
                )
                for item in items
            ),
            subtotal=round(sum(item.total_price for item in items), 2),
            currency=order.currency,
            ship_to={key: shipping.get(key) for key in ("city", "state", "country")},
        )
        for vendor_id, items in _by_vendor(order.items).items()
    ]


def order_cancelled_events(order, reason: str | None, refund_status: str | None) -> list[OrderEvent]:
    events: list[OrderEvent] = [
        VendorOrderCancelled(
            order_id=order.id,
            order_number=order.order_number,
            customer_id=order.customer_id,
            vendor_id=vendor_id,
            reason=reason,
            refund_status=refund_status,
            items=tuple(_line(item, "product_name", "quantity") for item in items),
        )
        for vendor_id, items in _by_vendor(order.items).items()
    ]
    events.append(
        OrderCancelled(
            order_id=order.id,
            order_number=order.order_number,
            customer_id=order.customer_id,
            reason=reason,
            refund_status=refund_status,
            total_amount=order.total_amount,
            currency=order.currency,
        )
    )
    return events


def item_status_events(order, item, previous_status: str) -> list[OrderEvent]:
    events: list[OrderEvent] = [
        OrderItemStatusUpdated(
            order_id=order.id,
            order_number=order.order_number,
            customer_id=order.customer_id,
            order_item_id=item.id,
            vendor_id=item.vendor_id,
            product_name=item.product_name,
            variant_name=item.variant_name,
            previous_status=previous_status,
            new_status=item.status,
            tracking_number=item.tracking_number,
            tracking_url=item.tracking_url,
        )
    ]
    if item.status in ("shipped", "delivered"):
        events.append(
            OrderItemShipmentUpdated(
                order_id=order.id,
                order_number=order.order_number,
                customer_id=order.customer_id,
                order_item_id=item.id,
                product_name=item.product_name,
                new_status=item.status,
                tracking_number=item.tracking_number,
                tracking_url=item.tracking_url,
            )
        )
    return events
