"""Pydantic request/response schemas for the Ordering API.

These are external contracts, separate from the ORM rows; responses are built
with ``model_validate`` straight from the rows (``from_attributes``).
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from ordering.cart.service import MAX_ITEM_QUANTITY
from ordering.order.states import OrderItemStatus, OrderStatus


class _FromRow(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# ---------------------------------------------------------------------------
# Cart
# ---------------------------------------------------------------------------
class AddToCartRequest(BaseModel):
    product_slug: str
    vendor_product_id: str
    quantity: int = Field(ge=1, le=MAX_ITEM_QUANTITY, default=1)
    variant_id: str | None = None
    vendor_variant_id: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "product_slug": "linen-shirt",
                    "vendor_product_id": "vp-001",
                    "quantity": 2,
                }
            ]
        }
    }


class UpdateCartItemRequest(BaseModel):
    quantity: int = Field(ge=0, le=MAX_ITEM_QUANTITY)


class CartItemResponse(_FromRow):
    id: str
    product_id: str
    product_slug: str
    product_name: str
    variant_id: str | None = None
    variant_name: str | None = None
    vendor_id: str
    vendor_name: str | None = None
    vendor_product_id: str
    vendor_variant_id: str | None = None
    quantity: int
    unit_price: float
    original_price: float | None = None
    total_price: float
    image_url: str | None = None


class CartResponse(_FromRow):
    id: str
    customer_id: str
    status: str
    currency: str
    items: list[CartItemResponse] = []
    subtotal: float
    item_count: int


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------
class CreateOrderRequest(BaseModel):
    shipping_address_id: str
    payment_card_id: str
    billing_address_id: str | None = None
    notes: str | None = Field(default=None, max_length=1000)


class CancelOrderRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=500)


class UpdateOrderStatusRequest(BaseModel):
    status: OrderStatus
    reason: str | None = Field(default=None, max_length=500)


class UpdateOrderItemStatusRequest(BaseModel):
    status: OrderItemStatus
    tracking_number: str | None = None
    tracking_url: str | None = None


class OrderItemResponse(_FromRow):
    id: str
    vendor_id: str
    product_id: str
    product_name: str
    product_slug: str
    variant_id: str | None = None
    variant_name: str | None = None
    vendor_product_id: str
    vendor_variant_id: str | None = None
    quantity: int
    unit_price: float
    total_price: float
    status: str
    tracking_number: str | None = None
    tracking_url: str | None = None
    shipped_at: datetime | None = None
    delivered_at: datetime | None = None


class OrderResponse(_FromRow):
    id: str
    order_number: str
    customer_id: str
    status: str
    payment_status: str
    payment_id: str | None = None
    subtotal: float
    tax_amount: float
    shipping_amount: float
    discount_amount: float
    total_amount: float
    currency: str
    shipping_address: dict
    billing_address_id: str | None = None
    notes: str | None = None
    items: list[OrderItemResponse] = []
    confirmed_at: datetime | None = None
    shipped_at: datetime | None = None
    delivered_at: datetime | None = None
    cancelled_at: datetime | None = None
    cancellation_reason: str | None = None
    created_at: datetime
    updated_at: datetime


class PageMetaResponse(_FromRow):
    total_items: int
    item_count: int
    items_per_page: int
    total_pages: int
    current_page: int
    has_next_page: bool
    has_previous_page: bool


class OrderListResponse(_FromRow):
    items: list[OrderResponse]
    meta: PageMetaResponse


class StatusHistoryResponse(_FromRow):
    from_status: str | None = None
    to_status: str
    reason: str | None = None
    changed_by: str | None = None
    details: dict | None = None
    created_at: datetime


class OrderStatsResponse(_FromRow):
    total_orders: int
    pending_orders: int
    completed_orders: int
    cancelled_orders: int
    total_revenue: float


class ReconcileResponse(BaseModel):
    cancelled: int
