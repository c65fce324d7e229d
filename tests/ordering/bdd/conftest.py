"""Shared BDD fixtures and step definitions for the Ordering context.

Step functions are synchronous, so each scenario owns an event loop and
drives the async services to completion on it.
"""

import asyncio
from datetime import datetime

import pytest
from pytest_bdd import given, parsers, then

from container import build_services


# ---------------------------------------------------------------------------
# Infrastructure
# ---------------------------------------------------------------------------
@pytest.fixture()
def run():
    loop = asyncio.new_event_loop()
    yield loop.run_until_complete
    loop.close()


@pytest.fixture()
def shop(run, settings, gateway, publisher):
    services = build_services(settings, gateway=gateway, publisher=publisher)
    run(services.setup_db())
    yield services
    run(services.close())


@pytest.fixture()
def offers():
    """Vendor offers seeded by the scenario, keyed by product name."""
    return {}


@pytest.fixture()
def outcome():
    """Container for the error a checkout was refused with."""
    return {"error": None}


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given("a customer with a saved address and card", target_fixture="wallet")
def _(run, shop, customer):
    address = run(
        shop.addresses.add_address(
            customer.id,
            full_name="Jane Doe",
            address_line1="123 Elm Street",
            city="Springfield",
            state="IL",
            postal_code="62701",
            country="US",
        )
    )
    card = run(
        shop.cards.add_card(
            customer,
            card_holder_name="Jane Doe",
            card_number="4242 4242 4242 4242",
            expiry_month=12,
            expiry_year=datetime.now().year + 3,
            cvv="123",
        )
    )
    return {"address": address, "card": card}


@given(parsers.cfparse('the cart holds {quantity:d} "{name}" at {price:f}'))
def _(run, shop, customer, offers, quantity, name, price):
    slug = name.lower().replace(" ", "-")
    product = run(shop.inventory.add_product(name=name, slug=slug))
    offer = run(
        shop.inventory.add_vendor_product(
            product_id=product.id,
            vendor_id="vendor-001",
            vendor_name="Vendor vendor-001",
            price=price,
            stock_quantity=10,
        )
    )
    offers[name] = offer
    run(shop.carts.add_to_cart(customer, product_slug=slug, vendor_product_id=offer.id, quantity=quantity))


@given(parsers.cfparse('the payment gateway declines with "{reason}"'))
def _(gateway, reason):
    gateway.configure(should_succeed=False, failure_reason=reason)


# ---------------------------------------------------------------------------
# Then steps — Order
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the order status is "{status}"'))
def _(order, status):
    assert order.status == status


@then(parsers.cfparse('the order payment status is "{status}"'))
def _(order, status):
    assert order.payment_status == status


@then(parsers.cfparse("the order subtotal is {amount:f}"))
def _(order, amount):
    assert order.subtotal == amount


@then(parsers.cfparse("the order shipping is {amount:f}"))
def _(order, amount):
    assert order.shipping_amount == amount


@then(parsers.cfparse("the order tax is {amount:f}"))
def _(order, amount):
    assert order.tax_amount == amount


@then(parsers.cfparse("the order total is {amount:f}"))
def _(order, amount):
    assert order.total_amount == amount


@then(parsers.cfparse('checkout is refused with "{message}"'))
def _(outcome, message):
    assert outcome["error"] is not None, "Expected checkout to be refused"
    assert outcome["error"].message == message


# ---------------------------------------------------------------------------
# Then steps — Payment, stock and cart
# ---------------------------------------------------------------------------
@then(parsers.cfparse("the card was charged {amount:f}"))
def _(run, shop, order, amount):
    payment = run(shop.payments.get_payment_by_order(order.id))
    assert payment.status == "completed"
    assert payment.amount == amount


@then(parsers.cfparse('{count:d} "{name}" are left in stock'))
def _(run, shop, offers, count, name):
    assert run(shop.inventory.stock_level(offers[name].id)) == count


@then(parsers.cfparse('the cart is "{status}"'))
def _(run, shop, order, status):
    assert run(shop.carts.get_cart_by_id(order.cart_id)).status == status


# ---------------------------------------------------------------------------
# Then steps — Events
# ---------------------------------------------------------------------------
@then(parsers.cfparse("an {event_type} event is published"))
def _(publisher, event_type):
    assert publisher.of_type(event_type), f"No {event_type} event. Published: {publisher.published}"


@then("no event is published")
def _(publisher):
    assert publisher.published == []
