"""FastAPI routes for the Ordering domain — carts and orders."""

from datetime import datetime

from fastapi import APIRouter, Depends, Query

from ordering.api.schemas import (
    AddToCartRequest,
    CancelOrderRequest,
    CartResponse,
    CreateOrderRequest,
    OrderItemResponse,
    OrderListResponse,
    OrderResponse,
    OrderStatsResponse,
    ReconcileResponse,
    StatusHistoryResponse,
    UpdateCartItemRequest,
    UpdateOrderItemStatusRequest,
    UpdateOrderStatusRequest,
)
from ordering.order.ledger import OrderFilter
from ordering.order.states import OrderPaymentStatus, OrderStatus
from shared.access import Action, Actor, ensure_can
from shared.http import current_actor, get_services, page_request
from shared.pagination import PageRequest


def order_filter(
    status: OrderStatus | None = Query(default=None),
    payment_status: OrderPaymentStatus | None = Query(default=None),
    start_date: datetime | None = Query(default=None),
    end_date: datetime | None = Query(default=None),
) -> OrderFilter:
    return OrderFilter(status=status, payment_status=payment_status, start_date=start_date, end_date=end_date)


# ---------------------------------------------------------------------------
# Cart Router
# ---------------------------------------------------------------------------
cart_router = APIRouter(prefix="/carts", tags=["carts"])


@cart_router.get("/me", response_model=CartResponse)
async def get_my_cart(actor: Actor = Depends(current_actor), services=Depends(get_services)) -> CartResponse:
    cart = await services.carts.get_or_create_cart(actor.id)
    return CartResponse.model_validate(cart)


@cart_router.post("/me/items", status_code=201, response_model=CartResponse)
async def add_cart_item(
    body: AddToCartRequest, actor: Actor = Depends(current_actor), services=Depends(get_services)
) -> CartResponse:
    cart = await services.carts.add_to_cart(
        actor,
        product_slug=body.product_slug,
        vendor_product_id=body.vendor_product_id,
        quantity=body.quantity,
        variant_id=body.variant_id,
        vendor_variant_id=body.vendor_variant_id,
    )
    return CartResponse.model_validate(cart)


@cart_router.put("/me/items/{item_id}", response_model=CartResponse)
async def update_cart_item(
    item_id: str, body: UpdateCartItemRequest, actor: Actor = Depends(current_actor), services=Depends(get_services)
) -> CartResponse:
    cart = await services.carts.update_cart_item(actor, item_id, body.quantity)
    return CartResponse.model_validate(cart)


@cart_router.delete("/me/items/{item_id}", response_model=CartResponse)
async def remove_cart_item(
    item_id: str, actor: Actor = Depends(current_actor), services=Depends(get_services)
) -> CartResponse:
    cart = await services.carts.remove_from_cart(actor, item_id)
    return CartResponse.model_validate(cart)


@cart_router.delete("/me", status_code=204)
async def clear_cart(actor: Actor = Depends(current_actor), services=Depends(get_services)) -> None:
    await services.carts.clear_cart(actor)


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.post("", status_code=201, response_model=OrderResponse)
async def create_order(
    body: CreateOrderRequest, actor: Actor = Depends(current_actor), services=Depends(get_services)
) -> OrderResponse:
    order = await services.checkout.create_order(
        actor,
        shipping_address_id=body.shipping_address_id,
        payment_card_id=body.payment_card_id,
        notes=body.notes,
        billing_address_id=body.billing_address_id,
    )
    return OrderResponse.model_validate(order)


@order_router.get("", response_model=OrderListResponse)
async def list_my_orders(
    filters: OrderFilter = Depends(order_filter),
    page: PageRequest = Depends(page_request),
    actor: Actor = Depends(current_actor),
    services=Depends(get_services),
) -> OrderListResponse:
    result = await services.orders.list_my_orders(actor, filters, page)
    return OrderListResponse.model_validate(result)


@order_router.get("/vendor", response_model=OrderListResponse)
async def list_vendor_orders(
    vendor_id: str | None = Query(default=None),
    filters: OrderFilter = Depends(order_filter),
    page: PageRequest = Depends(page_request),
    actor: Actor = Depends(current_actor),
    services=Depends(get_services),
) -> OrderListResponse:
    result = await services.orders.list_vendor_orders(actor, filters, page, vendor_id=vendor_id)
    return OrderListResponse.model_validate(result)


@order_router.get("/vendor/stats", response_model=OrderStatsResponse)
async def vendor_order_stats(
    start_date: datetime | None = Query(default=None),
    end_date: datetime | None = Query(default=None),
    actor: Actor = Depends(current_actor),
    services=Depends(get_services),
) -> OrderStatsResponse:
    stats = await services.orders.order_stats(actor, start_date, end_date)
    return OrderStatsResponse.model_validate(stats)


@order_router.get("/admin", response_model=OrderListResponse)
async def list_all_orders(
    filters: OrderFilter = Depends(order_filter),
    page: PageRequest = Depends(page_request),
    actor: Actor = Depends(current_actor),
    services=Depends(get_services),
) -> OrderListResponse:
    result = await services.orders.list_all_orders(actor, filters, page)
    return OrderListResponse.model_validate(result)


@order_router.post("/maintenance/reconcile", response_model=ReconcileResponse)
async def reconcile_orders(actor: Actor = Depends(current_actor), services=Depends(get_services)) -> ReconcileResponse:
    """Cancel checkouts abandoned between order creation and payment."""
    ensure_can(actor, Action.RUN_MAINTENANCE)
    return ReconcileResponse(cancelled=await services.reconciler.run())


@order_router.get("/number/{order_number}", response_model=OrderResponse)
async def get_order_by_number(
    order_number: str, actor: Actor = Depends(current_actor), services=Depends(get_services)
) -> OrderResponse:
    order = await services.orders.get_order_by_number(order_number, actor)
    return OrderResponse.model_validate(order)


@order_router.put("/items/{item_id}/status", response_model=OrderItemResponse)
async def update_order_item_status(
    item_id: str,
    body: UpdateOrderItemStatusRequest,
    actor: Actor = Depends(current_actor),
    services=Depends(get_services),
) -> OrderItemResponse:
    item = await services.orders.update_order_item_status(
        item_id, body.status, actor, tracking_number=body.tracking_number, tracking_url=body.tracking_url
    )
    return OrderItemResponse.model_validate(item)


@order_router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: str, actor: Actor = Depends(current_actor), services=Depends(get_services)) -> OrderResponse:
    order = await services.orders.get_order(order_id, actor)
    return OrderResponse.model_validate(order)


@order_router.get("/{order_id}/history", response_model=list[StatusHistoryResponse])
async def get_order_history(
    order_id: str, actor: Actor = Depends(current_actor), services=Depends(get_services)
) -> list[StatusHistoryResponse]:
    history = await services.orders.get_history(order_id, actor)
    return [StatusHistoryResponse.model_validate(entry) for entry in history]


@order_router.post("/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(
    order_id: str, body: CancelOrderRequest, actor: Actor = Depends(current_actor), services=Depends(get_services)
) -> OrderResponse:
    order = await services.orders.cancel_order(order_id, actor, reason=body.reason)
    return OrderResponse.model_validate(order)


@order_router.put("/{order_id}/status", response_model=OrderResponse)
async def update_order_status(
    order_id: str, body: UpdateOrderStatusRequest, actor: Actor = Depends(current_actor), services=Depends(get_services)
) -> OrderResponse:
    order = await services.orders.update_order_status(order_id, body.status, actor, reason=body.reason)
    return OrderResponse.model_validate(order)
