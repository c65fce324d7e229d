"""Order checkout — coordinates the Cart → Inventory → Payment flow.

The coordinator drives one checkout as a sequence of awaited calls and is the
only place that knows the order of steps:

    1. Validate the cart (stock, offers, prices)
    2. Resolve the shipping address and the payment card
    3. Reserve stock under a fresh reservation id
    4. Price the lines and write the order as ``pending``
    5. Charge the card
    6a. Payment completed → order ``confirmed``/``paid``, reservation discarded,
        cart converted
    6b. Payment failed → order ``failed``, reservation released

Once stock is reserved, every exit other than a confirmed order releases the
reservation. An exception after the order row exists marks that order
``failed`` before it propagates. A charge for an order that stopped being
``pending`` in the meantime (cancelled by its customer) is refunded.
"""

import structlog

from inventory.stock.reservation import new_reservation_id
from ordering.cart.service import CartService
from ordering.cart.validation import CartValidator
from ordering.order.ledger import OrderLedger
from ordering.order.models import Order, OrderItem
from ordering.order.pricing import calculate_totals
from ordering.order.states import OrderPaymentStatus, OrderStatus
from ordering.ports import AddressDirectory, PaymentClient, StockClient
from payments.models import FailureCode, PaymentStatus
from shared.access import Actor
from shared.clock import utcnow
from shared.config import Settings
from shared.errors import ConflictError, DependencyError, NotFoundError, PaymentDeclinedError, ValidationError
from shared.events.ordering import order_created_events
from shared.events.publisher import EventPublisher

logger = structlog.get_logger(__name__)

SYSTEM = "system"


class OrderCoordinator:
    """Runs CreateOrder end to end."""

    def __init__(
        self,
        settings: Settings,
        carts: CartService,
        validator: CartValidator,
        addresses: AddressDirectory,
        stock: StockClient,
        payments: PaymentClient,
        ledger: OrderLedger,
        publisher: EventPublisher,
    ) -> None:
        self.settings = settings
        self._carts = carts
        self._validator = validator
        self._addresses = addresses
        self._stock = stock
        self._payments = payments
        self._ledger = ledger
        self._publisher = publisher

    async def create_order(
        self,
        actor: Actor,
        shipping_address_id: str,
        payment_card_id: str,
        notes: str | None = None,
        billing_address_id: str | None = None,
    ) -> Order:
        customer_id = actor.id

        with structlog.contextvars.bound_contextvars(customer_id=customer_id):
            validation = await self._validator.validate_for_checkout(customer_id)
            if not validation.valid:
                raise ValidationError(
                    "Cart validation failed",
                    code="CART_INVALID",
                    details={"issues": [issue.as_dict() for issue in validation.issues]},
                )
            cart = validation.cart

            address = await self._addresses.get_user_address(customer_id, shipping_address_id)
            if address is None:
                raise NotFoundError(
                    "Shipping address not found",
                    code="ADDRESS_NOT_FOUND",
                    details={"address_id": shipping_address_id},
                )

            await self._payments.get_usable_card(payment_card_id, customer_id)

            reservation_id = new_reservation_id()
            reservation = await self._stock.reserve_stock(
                reservation_id, cart.stock_lines(), self.settings.stock_reservation_ttl
            )
            if not reservation.success:
                raise ValidationError(
                    reservation.error or "Failed to reserve stock",
                    code="INSUFFICIENT_STOCK",
                    details={"cart_id": cart.id},
                )

            with structlog.contextvars.bound_contextvars(reservation_id=reservation_id):
                order = await self._place(
                    cart, address.snapshot(), payment_card_id, reservation_id, notes, billing_address_id
                )

        await self._finish(order, cart.id, reservation_id)
        await self._publisher.publish_all(order_created_events(order))
        return order

    async def _place(self, cart, shipping_address, payment_card_id, reservation_id, notes, billing_address_id):
        order: Order | None = None
        confirmed = False
        try:
            totals = calculate_totals(((item.unit_price, item.quantity) for item in cart.items), self.settings)
            order_number = await self._ledger.next_order_number(self.settings.order_number_prefix)

            order = await self._ledger.create(
                Order(
                    order_number=order_number,
                    customer_id=cart.customer_id,
                    status=OrderStatus.PENDING.value,
                    payment_status=OrderPaymentStatus.PENDING.value,
                    subtotal=totals.subtotal,
                    tax_amount=totals.tax_amount,
                    shipping_amount=totals.shipping_amount,
                    discount_amount=totals.discount_amount,
                    total_amount=totals.total_amount,
                    currency=cart.currency,
                    shipping_address=shipping_address,
                    billing_address_id=billing_address_id,
                    notes=notes,
                    cart_id=cart.id,
                    stock_reservation_id=reservation_id,
                    items=[
                        OrderItem(
                            position=position,
                            vendor_id=item.vendor_id,
                            product_id=item.product_id,
                            product_name=item.product_name,
                            product_slug=item.product_slug,
                            variant_id=item.variant_id,
                            variant_name=item.variant_name,
                            vendor_product_id=item.vendor_product_id,
                            vendor_variant_id=item.vendor_variant_id,
                            quantity=item.quantity,
                            unit_price=item.unit_price,
                            total_price=item.total_price,
                            image_url=item.image_url,
                        )
                        for position, item in enumerate(cart.items)
                    ],
                )
            )
            structlog.contextvars.bind_contextvars(order_id=order.id)

            payment = await self._payments.process_payment(
                order_id=order.id,
                customer_id=cart.customer_id,
                card_id=payment_card_id,
                amount=order.total_amount,
                currency=order.currency,
            )

            if payment.status != PaymentStatus.COMPLETED.value:
                order = await self._ledger.transition(
                    order.id,
                    OrderStatus.PENDING,
                    OrderStatus.FAILED,
                    reason=f"Payment failed: {payment.failure_reason}",
                    changed_by=SYSTEM,
                    details={"paymentId": payment.id},
                    payment_status=OrderPaymentStatus.FAILED.value,
                    payment_id=payment.id,
                )
                if payment.failure_code == FailureCode.GATEWAY_ERROR.value:
                    raise DependencyError(
                        "Payment gateway unavailable",
                        details={"order_id": order.id, "payment_id": payment.id},
                    )
                raise PaymentDeclinedError(
                    f"Payment failed: {payment.failure_reason}",
                    details={"order_id": order.id, "payment_id": payment.id},
                )

            try:
                order = await self._ledger.transition(
                    order.id,
                    OrderStatus.PENDING,
                    OrderStatus.CONFIRMED,
                    reason="Payment successful",
                    changed_by=SYSTEM,
                    details={"paymentId": payment.id},
                    payment_status=OrderPaymentStatus.PAID.value,
                    payment_id=payment.id,
                    confirmed_at=utcnow(),
                )
            except ConflictError:
                order = await self._refund_unconfirmed(order.id, payment)
                raise
            confirmed = True
            logger.info("Order confirmed", order_number=order.order_number, total=order.total_amount)
            return order
        except Exception as exc:
            if order is not None and order.status == OrderStatus.PENDING.value:
                await self._mark_failed(order.id, exc)
            raise
        finally:
            if not confirmed:
                await self._release(reservation_id)
            structlog.contextvars.unbind_contextvars("order_id")

    async def _refund_unconfirmed(self, order_id: str, payment) -> Order:
        """The order left ``pending`` while its card was being charged. Give the money back."""
        logger.warning("Order changed during payment, refunding", order_id=order_id, payment_id=payment.id)
        try:
            await self._payments.process_refund(payment.id, payment.amount, reason="Order changed during checkout")
        except Exception:
            logger.exception("Refund of unconfirmed order failed", order_id=order_id, payment_id=payment.id)
            return await self._ledger.update(
                order_id, payment_id=payment.id, payment_status=OrderPaymentStatus.PAID.value
            )
        return await self._ledger.update(
            order_id, payment_id=payment.id, payment_status=OrderPaymentStatus.REFUNDED.value
        )

    async def _mark_failed(self, order_id: str, exc: Exception) -> None:
        try:
            await self._ledger.transition(
                order_id,
                OrderStatus.PENDING,
                OrderStatus.FAILED,
                reason=f"Checkout error: {exc.__class__.__name__}",
                changed_by=SYSTEM,
                payment_status=OrderPaymentStatus.FAILED.value,
            )
        except Exception:
            logger.exception("Could not mark order failed", order_id=order_id)

    async def _release(self, reservation_id: str) -> None:
        try:
            await self._stock.release_stock(reservation_id)
            logger.info("Stock reservation released", reservation_id=reservation_id)
        except Exception:
            # The expiry sweep restores it once the TTL passes.
            logger.exception("Failed to release stock reservation", reservation_id=reservation_id)

    async def _finish(self, order: Order, cart_id: str, reservation_id: str) -> None:
        """Post-confirmation bookkeeping. The order stays confirmed whatever happens here."""
        try:
            await self._stock.discard_reservation(reservation_id)
        except Exception:
            logger.exception("Failed to confirm stock deduction", order_id=order.id, reservation_id=reservation_id)
        try:
            await self._carts.mark_converted(cart_id)
        except Exception:
            logger.exception("Failed to mark cart converted", order_id=order.id, cart_id=cart_id)
