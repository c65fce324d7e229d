"""Order queries and post-checkout status management.

Every status change goes through the ledger's conditional ``transition`` so
that a legal change writes exactly one history row and an illegal or stale
one changes nothing.
"""

from datetime import datetime

import structlog

from ordering.order.ledger import OrderFilter, OrderLedger, OrderStats
from ordering.order.models import Order, OrderItem, OrderStatusHistory
from ordering.order.states import (
    CANCELLABLE_STATUSES,
    OrderItemStatus,
    OrderPaymentStatus,
    OrderStatus,
    assert_can_transition,
    assert_can_transition_item,
    derive_order_status,
)
from ordering.ports import PaymentClient, StockClient
from payments.models import PaymentStatus
from shared.access import Action, Actor, ensure_can
from shared.clock import utcnow
from shared.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from shared.events.ordering import OrderStatusUpdated, item_status_events, order_cancelled_events
from shared.events.publisher import EventPublisher
from shared.pagination import Page, PageRequest

logger = structlog.get_logger(__name__)

AUTO_UPDATE_REASON = "Auto-updated based on item statuses"

# Orders in these states no longer follow their items.
_FROZEN_STATUSES = {OrderStatus.CANCELLED, OrderStatus.REFUNDED, OrderStatus.FAILED}

# A pending order with one of these payments is being charged right now.
_IN_FLIGHT_PAYMENTS = {PaymentStatus.PROCESSING.value, PaymentStatus.COMPLETED.value}


def status_timestamps(target: OrderStatus, reason: str | None = None) -> dict:
    now = utcnow()
    if target == OrderStatus.CONFIRMED:
        return {"confirmed_at": now}
    if target == OrderStatus.SHIPPED:
        return {"shipped_at": now}
    if target == OrderStatus.DELIVERED:
        return {"delivered_at": now}
    if target == OrderStatus.CANCELLED:
        return {"cancelled_at": now, "cancellation_reason": reason}
    return {}


class OrderService:
    def __init__(
        self, ledger: OrderLedger, stock: StockClient, payments: PaymentClient, publisher: EventPublisher
    ) -> None:
        self._ledger = ledger
        self._stock = stock
        self._payments = payments
        self._publisher = publisher

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    async def get_order(self, order_id: str, actor: Actor) -> Order:
        order = await self._ledger.get_or_raise(order_id)
        ensure_can(actor, Action.VIEW_ORDER, order)
        return order

    async def get_order_by_number(self, order_number: str, actor: Actor) -> Order:
        order = await self._ledger.get_by_number(order_number)
        if order is None:
            raise NotFoundError("Order not found", details={"order_number": order_number})
        ensure_can(actor, Action.VIEW_ORDER, order)
        return order

    async def get_history(self, order_id: str, actor: Actor) -> list[OrderStatusHistory]:
        await self.get_order(order_id, actor)
        return await self._ledger.history_for(order_id)

    async def list_my_orders(
        self, actor: Actor, filters: OrderFilter | None = None, page: PageRequest | None = None
    ) -> Page[Order]:
        return await self._ledger.find_by_customer(actor.id, filters, page)

    async def list_vendor_orders(
        self,
        actor: Actor,
        filters: OrderFilter | None = None,
        page: PageRequest | None = None,
        vendor_id: str | None = None,
    ) -> Page[Order]:
        vendor_id = vendor_id or actor.vendor_id
        if vendor_id is None:
            if actor.is_admin:
                raise ValidationError("vendor_id is required", code="VENDOR_REQUIRED")
            raise ForbiddenError("Access denied")
        if not actor.is_admin and vendor_id != actor.vendor_id:
            raise ForbiddenError("Access denied", details={"vendor_id": vendor_id})
        ensure_can(actor, Action.VIEW_VENDOR_ORDERS)
        return await self._ledger.find_by_vendor(vendor_id, filters, page)

    async def list_all_orders(
        self, actor: Actor, filters: OrderFilter | None = None, page: PageRequest | None = None
    ) -> Page[Order]:
        ensure_can(actor, Action.VIEW_ALL_ORDERS)
        return await self._ledger.find_all(filters, page)

    async def order_stats(
        self, actor: Actor, start_date: datetime | None = None, end_date: datetime | None = None
    ) -> OrderStats:
        if actor.vendor_id is None and not actor.is_admin:
            raise ForbiddenError("Access denied")
        return await self._ledger.stats(actor.vendor_id, start_date, end_date)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------
    async def cancel_order(self, order_id: str, actor: Actor, reason: str | None = None) -> Order:
        """Cancel a pending or confirmed order.

        A paid order is refunded in full before it is marked cancelled; when
        the refund fails the order stays as it was. A pending order whose card
        is being charged cannot be cancelled until checkout settles.
        """
        order = await self._ledger.get_or_raise(order_id)
        ensure_can(actor, Action.CANCEL_ORDER, order)

        current = order.current_status
        if current not in CANCELLABLE_STATUSES:
            raise ConflictError(
                f"Order cannot be cancelled in status {current.value}",
                code="ORDER_NOT_CANCELLABLE",
                details={"order_id": order_id, "status": current.value},
            )

        if current == OrderStatus.PENDING:
            payment = await self._payments.get_payment_by_order(order_id)
            if payment is not None and payment.status in _IN_FLIGHT_PAYMENTS:
                raise ConflictError(
                    "Order payment is in progress",
                    code="PAYMENT_IN_PROGRESS",
                    details={"order_id": order_id, "payment_id": payment.id},
                )

        changes = status_timestamps(OrderStatus.CANCELLED, reason)
        refund_status = None
        if order.is_paid and order.payment_id:
            await self._payments.process_refund(
                order.payment_id, order.total_amount, reason=f"Order cancelled: {reason or 'no reason given'}"
            )
            changes["payment_status"] = refund_status = OrderPaymentStatus.REFUNDED.value
            logger.info("Order refunded on cancellation", order_id=order_id, amount=order.total_amount)

        order = await self._ledger.transition(
            order_id, current, OrderStatus.CANCELLED, reason=reason, changed_by=actor.id, **changes
        )
        await self._ledger.update_items_of(order_id, status=OrderItemStatus.CANCELLED.value)

        if order.stock_reservation_id:
            await self._stock.release_stock(order.stock_reservation_id)

        logger.info("Order cancelled", order_id=order_id, cancelled_by=actor.id)
        order = await self._ledger.get_or_raise(order_id)
        await self._publisher.publish_all(order_cancelled_events(order, reason, refund_status))
        return order

    async def update_order_status(
        self, order_id: str, status: OrderStatus, actor: Actor, reason: str | None = None
    ) -> Order:
        ensure_can(actor, Action.UPDATE_ORDER_STATUS)
        order = await self._ledger.get_or_raise(order_id)

        current = order.current_status
        assert_can_transition(current, status)
        order = await self._ledger.transition(
            order_id, current, status, reason=reason, changed_by=actor.id, **status_timestamps(status, reason)
        )
        await self._publish_status_change(order, current)
        return order

    async def update_order_item_status(
        self,
        item_id: str,
        status: OrderItemStatus,
        actor: Actor,
        tracking_number: str | None = None,
        tracking_url: str | None = None,
    ) -> OrderItem:
        item = await self._ledger.get_item(item_id)
        if item is None:
            raise NotFoundError("Order item not found", details={"item_id": item_id})
        ensure_can(actor, Action.UPDATE_ORDER_ITEM, item)

        order = await self._ledger.get_or_raise(item.order_id)
        if order.current_status in _FROZEN_STATUSES:
            raise ConflictError(
                f"Items of a {order.status} order cannot change",
                code="ORDER_NOT_ACTIVE",
                details={"order_id": order.id, "status": order.status},
            )

        current = item.current_status
        assert_can_transition_item(current, status)

        changes = {}
        if tracking_number is not None:
            changes["tracking_number"] = tracking_number
        if tracking_url is not None:
            changes["tracking_url"] = tracking_url
        if status == OrderItemStatus.SHIPPED:
            changes["shipped_at"] = utcnow()
        elif status == OrderItemStatus.DELIVERED:
            changes["delivered_at"] = utcnow()

        item = await self._ledger.transition_item(item_id, current, status, **changes)
        logger.info(
            "Order item status updated",
            item_id=item_id,
            order_id=item.order_id,
            from_status=current.value,
            to_status=status.value,
            vendor_id=actor.vendor_id,
        )

        await self._publisher.publish_all(item_status_events(order, item, current.value))
        await self._sync_order_status(item.order_id)
        return item

    async def record_refund(self, payment) -> Order | None:
        """Mirror a refund made directly on a payment onto the order it paid for."""
        order = await self._ledger.get(payment.order_id)
        if order is None or order.payment_id != payment.id:
            return None
        if payment.status == PaymentStatus.REFUNDED.value:
            payment_status = OrderPaymentStatus.REFUNDED
        else:
            payment_status = OrderPaymentStatus.PARTIALLY_REFUNDED
        logger.info("Order payment refunded", order_id=order.id, payment_status=payment_status.value)
        return await self._ledger.update(order.id, payment_status=payment_status.value)

    async def _sync_order_status(self, order_id: str) -> None:
        """Promote the order when all of its items agree on a status."""
        order = await self._ledger.get_or_raise(order_id)
        current = order.current_status
        derived = derive_order_status(item.current_status for item in order.items)
        if derived is None or derived == current or current in _FROZEN_STATUSES:
            return

        try:
            order = await self._ledger.transition(
                order_id,
                current,
                derived,
                reason=AUTO_UPDATE_REASON,
                changed_by="system",
                details={"reason": AUTO_UPDATE_REASON},
                **status_timestamps(derived, AUTO_UPDATE_REASON),
            )
        except ConflictError:
            logger.info("Order changed while syncing item statuses", order_id=order_id)
            return
        await self._publish_status_change(order, current)

    async def _publish_status_change(self, order: Order, previous: OrderStatus) -> None:
        await self._publisher.publish_all(
            [
                OrderStatusUpdated(
                    order_id=order.id,
                    order_number=order.order_number,
                    customer_id=order.customer_id,
                    previous_status=previous.value,
                    new_status=order.status,
                )
            ]
        )
