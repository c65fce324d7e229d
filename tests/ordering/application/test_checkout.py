"""Tests for the checkout flow: cart → reservation → order → payment."""

import re
from datetime import timedelta

import pytest

from ordering.cart.models import CartStatus
from ordering.order.states import OrderPaymentStatus, OrderStatus
from payments.models import PaymentStatus
from shared.clock import utcnow
from shared.contracts.inventory import StockCheckResponse, StockCheckResult
from shared.errors import ConflictError, DependencyError, NotFoundError, PaymentDeclinedError, ValidationError


async def _place(services, customer, address, card):
    return await services.checkout.create_order(
        customer, shipping_address_id=address.id, payment_card_id=card.id, notes="Leave at the door"
    )


async def _stock(inventory, offers):
    return [await inventory.stock_level(offer.id) for offer in offers]


async def _open_reservations(inventory):
    return await inventory.expired_reservation_ids(utcnow() + timedelta(days=365))


class TestSuccessfulCheckout:
    async def test_order_is_confirmed_and_paid(self, services, sample_cart, customer, address, card):
        cart, offers = sample_cart

        order = await _place(services, customer, address, card)

        assert order.status == OrderStatus.CONFIRMED.value
        assert order.payment_status == OrderPaymentStatus.PAID.value
        assert order.confirmed_at is not None
        assert (order.subtotal, order.shipping_amount, order.tax_amount, order.total_amount) == (
            50.0,
            0.0,
            5.0,
            55.0,
        )
        assert order.notes == "Leave at the door"
        assert order.cart_id == cart.id

    async def test_lines_are_snapshotted_in_cart_order(self, services, sample_cart, customer, address, card):
        order = await _place(services, customer, address, card)

        assert [(i.product_name, i.quantity, i.unit_price, i.total_price) for i in order.items] == [
            ("Linen Shirt", 1, 20.0, 20.0),
            ("Wool Socks", 2, 15.0, 30.0),
        ]
        assert all(item.status == "pending" for item in order.items)
        assert order.shipping_address["full_name"] == "Jane Doe"
        assert order.shipping_address["city"] == "Springfield"
        assert "user_id" not in order.shipping_address

    async def test_payment_is_completed_for_the_total(self, services, sample_cart, customer, address, card):
        order = await _place(services, customer, address, card)

        payment = await services.payments.get_payment_by_order(order.id)
        assert payment.id == order.payment_id
        assert payment.status == PaymentStatus.COMPLETED.value
        assert payment.amount == 55.0

    async def test_stock_stays_deducted_and_reservation_is_discarded(
        self, services, inventory, sample_cart, customer, address, card
    ):
        _, offers = sample_cart

        await _place(services, customer, address, card)

        assert await _stock(inventory, offers) == [9, 8]
        assert await _open_reservations(inventory) == []

    async def test_cart_is_converted(self, services, sample_cart, customer, address, card):
        cart, _ = sample_cart

        await _place(services, customer, address, card)

        assert (await services.carts.get_cart_by_id(cart.id)).status == CartStatus.CONVERTED.value
        assert await services.carts.get_cart(customer.id) is None

    async def test_only_the_confirmation_is_in_the_history(self, services, sample_cart, customer, address, card):
        order = await _place(services, customer, address, card)

        [entry] = await services.ledger.history_for(order.id)
        assert (entry.from_status, entry.to_status, entry.changed_by) == ("pending", "confirmed", "system")
        assert entry.details == {"paymentId": order.payment_id}

    async def test_order_numbers_are_sequential_per_day(
        self, services, make_offer, add_to_cart, sample_cart, customer, address, card
    ):
        first = await _place(services, customer, address, card)
        product, offer = await make_offer(price=60.0)
        await add_to_cart(customer, product, offer)
        second = await _place(services, customer, address, card)

        day = utcnow().strftime("%y%m%d")
        assert first.order_number == f"ORD-{day}-0001"
        assert second.order_number == f"ORD-{day}-0002"
        assert re.fullmatch(r"ORD-\d{6}-\d{4}", first.order_number)


class TestDeclinedPayment:
    async def test_order_fails_and_everything_is_given_back(
        self, services, gateway, inventory, sample_cart, customer, address, card
    ):
        cart, offers = sample_cart
        gateway.configure(should_succeed=False, failure_reason="Insufficient funds")

        with pytest.raises(PaymentDeclinedError) as exc_info:
            await _place(services, customer, address, card)

        order_id = exc_info.value.details["order_id"]
        order = await services.ledger.get(order_id)
        assert order.status == OrderStatus.FAILED.value
        assert order.payment_status == OrderPaymentStatus.FAILED.value

        payment = await services.payments.get_payment_by_order(order_id)
        assert payment.status == PaymentStatus.FAILED.value
        assert order.payment_id == payment.id

        assert await _stock(inventory, offers) == [10, 10]
        assert await _open_reservations(inventory) == []
        assert (await services.carts.get_cart_by_id(cart.id)).status == CartStatus.ACTIVE.value

    async def test_failure_is_recorded_in_the_history(self, services, gateway, sample_cart, customer, address, card):
        gateway.configure(should_succeed=False, failure_reason="Insufficient funds")

        with pytest.raises(PaymentDeclinedError) as exc_info:
            await _place(services, customer, address, card)

        [entry] = await services.ledger.history_for(exc_info.value.details["order_id"])
        assert (entry.from_status, entry.to_status) == ("pending", "failed")
        assert entry.reason == "Payment failed: Insufficient funds"

    async def test_gateway_outage_is_a_dependency_error(
        self, services, gateway, inventory, sample_cart, customer, address, card
    ):
        _, offers = sample_cart
        gateway.configure(unavailable=True)

        with pytest.raises(DependencyError):
            await _place(services, customer, address, card)

        assert await _stock(inventory, offers) == [10, 10]
        page = await services.ledger.find_by_customer(customer.id)
        assert [order.status for order in page.items] == [OrderStatus.FAILED.value]


class TestCompensation:
    async def test_unexpected_error_after_order_creation(
        self, services, inventory, sample_cart, customer, address, card, monkeypatch
    ):
        _, offers = sample_cart

        async def store_down(**kwargs):
            raise DependencyError("Payment store unavailable")

        monkeypatch.setattr(services.payments, "process_payment", store_down)

        with pytest.raises(DependencyError):
            await _place(services, customer, address, card)

        assert await _stock(inventory, offers) == [10, 10]
        [order] = (await services.ledger.find_by_customer(customer.id)).items
        assert order.status == OrderStatus.FAILED.value
        assert [(e.from_status, e.to_status) for e in await services.ledger.history_for(order.id)] == [
            ("pending", "failed")
        ]

    async def test_stock_gone_between_validation_and_reservation(
        self, services, inventory, sample_cart, customer, address, card, monkeypatch
    ):
        _, offers = sample_cart
        await inventory.update_offer(offers[1].id, stock_quantity=1)

        async def stale_check(lines):
            return StockCheckResponse(
                success=True,
                all_available=True,
                results=[
                    StockCheckResult(line.vendor_product_id, line.vendor_variant_id, line.quantity, 99, True)
                    for line in lines
                ],
            )

        monkeypatch.setattr(services.inventory, "check_stock", stale_check)

        with pytest.raises(ValidationError) as exc_info:
            await _place(services, customer, address, card)

        assert exc_info.value.code == "INSUFFICIENT_STOCK"
        assert await _stock(inventory, offers) == [10, 1]
        assert (await services.ledger.find_by_customer(customer.id)).items == []


class TestCancelDuringCheckout:
    async def test_cancel_while_the_card_is_charged_is_refused(
        self, services, gateway, sample_cart, customer, address, card, monkeypatch
    ):
        refused = []
        charge = gateway.create_charge

        async def charge_after_cancel_attempt(**kwargs):
            [pending] = (await services.ledger.find_by_customer(customer.id)).items
            with pytest.raises(ConflictError) as exc_info:
                await services.orders.cancel_order(pending.id, customer)
            refused.append(exc_info.value.code)
            return await charge(**kwargs)

        monkeypatch.setattr(gateway, "create_charge", charge_after_cancel_attempt)

        order = await _place(services, customer, address, card)

        assert refused == ["PAYMENT_IN_PROGRESS"]
        assert (order.status, order.payment_status) == ("confirmed", "paid")

    async def test_order_cancelled_before_the_charge_is_refunded(
        self, services, gateway, inventory, sample_cart, customer, address, card, monkeypatch
    ):
        _, offers = sample_cart
        process_payment = services.payments.process_payment

        async def cancel_then_charge(**kwargs):
            await services.orders.cancel_order(kwargs["order_id"], customer, reason="Changed my mind")
            return await process_payment(**kwargs)

        monkeypatch.setattr(services.payments, "process_payment", cancel_then_charge)

        with pytest.raises(ConflictError) as exc_info:
            await _place(services, customer, address, card)

        assert exc_info.value.code == "ORDER_STATUS_CHANGED"
        [order] = (await services.ledger.find_by_customer(customer.id)).items
        assert (order.status, order.payment_status) == ("cancelled", "refunded")
        payment = await services.payments.get_payment_by_order(order.id)
        assert order.payment_id == payment.id
        assert (payment.status, payment.refunded_amount) == (PaymentStatus.REFUNDED.value, 55.0)
        assert [call["amount"] for call in gateway.calls_to("create_refund")] == [55.0]
        assert await _stock(inventory, offers) == [10, 10]


class TestCheckoutEvents:
    async def test_one_order_created_event_per_vendor(
        self, services, publisher, make_offer, add_to_cart, customer, address, card
    ):
        shirt, shirt_offer = await make_offer(price=30.0, vendor_id="vendor-001")
        mug, mug_offer = await make_offer(price=12.5, vendor_id="vendor-002")
        await add_to_cart(customer, shirt, shirt_offer, quantity=1)
        await add_to_cart(customer, mug, mug_offer, quantity=2)

        order = await _place(services, customer, address, card)

        events = publisher.of_type("ORDER_CREATED")
        assert [(e.vendor_id, e.subtotal, len(e.items)) for e in events] == [
            ("vendor-001", 30.0, 1),
            ("vendor-002", 25.0, 1),
        ]
        assert {e.order_number for e in events} == {order.order_number}
        assert events[0].routing_key == "vendor.order.created"
        assert events[0].ship_to == {"city": "Springfield", "state": "IL", "country": "US"}

    async def test_nothing_is_published_for_a_declined_order(
        self, services, gateway, publisher, sample_cart, customer, address, card
    ):
        gateway.configure(should_succeed=False)

        with pytest.raises(PaymentDeclinedError):
            await _place(services, customer, address, card)

        assert publisher.published == []


class TestRejectedBeforeReservation:
    async def test_invalid_cart(self, services, inventory, sample_cart, customer, address, card):
        _, offers = sample_cart
        await inventory.update_offer(offers[0].id, price=25.0)

        with pytest.raises(ValidationError) as exc_info:
            await _place(services, customer, address, card)

        assert exc_info.value.code == "CART_INVALID"
        assert exc_info.value.details["issues"][0]["type"] == "price_changed"
        assert await _stock(inventory, offers) == [10, 10]

    async def test_unknown_address(self, services, inventory, sample_cart, customer, card):
        _, offers = sample_cart

        with pytest.raises(NotFoundError) as exc_info:
            await services.checkout.create_order(customer, shipping_address_id="missing", payment_card_id=card.id)

        assert exc_info.value.code == "ADDRESS_NOT_FOUND"
        assert await _open_reservations(inventory) == []

    async def test_someone_elses_address(self, services, sample_cart, customer, other_customer, card):
        theirs = await services.addresses.add_address(
            other_customer.id, full_name="Bob", address_line1="1 Main St", city="X", postal_code="1", country="US"
        )

        with pytest.raises(NotFoundError):
            await services.checkout.create_order(customer, shipping_address_id=theirs.id, payment_card_id=card.id)

    async def test_empty_cart(self, services, customer, address, card):
        with pytest.raises(ValidationError) as exc_info:
            await _place(services, customer, address, card)
        assert exc_info.value.code == "CART_EMPTY"
