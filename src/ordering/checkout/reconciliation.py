"""Sweep for checkouts that never finished.

A checkout that dies between writing the order and charging the card leaves a
``pending`` order without a payment and a reservation that only the TTL would
give back. ``StaleOrderReconciler`` cancels such orders once they are older
than the pending-order timeout and releases their reservations.

Orders that have a payment record (even one stuck in ``processing``) are left
alone: the charge may have reached the gateway and needs a human.
"""

from datetime import datetime, timedelta

import structlog

from ordering.order.ledger import OrderLedger
from ordering.order.management import status_timestamps
from ordering.order.states import OrderItemStatus, OrderStatus
from ordering.ports import PaymentClient, StockClient
from shared.clock import utcnow
from shared.errors import ConflictError, DependencyError

logger = structlog.get_logger(__name__)

ABANDONED_REASON = "Checkout abandoned"


class StaleOrderReconciler:
    def __init__(
        self, ledger: OrderLedger, stock: StockClient, payments: PaymentClient, timeout_minutes: int = 30
    ) -> None:
        self._ledger = ledger
        self._stock = stock
        self._payments = payments
        self.timeout = timedelta(minutes=timeout_minutes)

    async def run(self, as_of: datetime | None = None) -> int:
        """Cancel stale pending orders. Returns how many were cancelled."""
        cutoff = (as_of or utcnow()) - self.timeout
        cancelled = 0

        for order in await self._ledger.find_stale_pending(cutoff):
            if await self._payments.get_payment_by_order(order.id) is not None:
                logger.warning("Stale pending order has a payment record", order_id=order.id)
                continue

            try:
                await self._ledger.transition(
                    order.id,
                    OrderStatus.PENDING,
                    OrderStatus.CANCELLED,
                    reason=ABANDONED_REASON,
                    changed_by="system",
                    **status_timestamps(OrderStatus.CANCELLED, ABANDONED_REASON),
                )
            except ConflictError:
                # The checkout finished while we were looking.
                continue
            await self._ledger.update_items_of(order.id, status=OrderItemStatus.CANCELLED.value)

            if order.stock_reservation_id:
                try:
                    await self._stock.release_stock(order.stock_reservation_id)
                except DependencyError:
                    logger.exception(
                        "Failed to release reservation of abandoned order",
                        order_id=order.id,
                        reservation_id=order.stock_reservation_id,
                    )

            cancelled += 1
            logger.info("Abandoned order cancelled", order_id=order.id, order_number=order.order_number)

        if cancelled:
            logger.info("Stale order reconciliation finished", cancelled=cancelled)
        return cancelled
