from datetime import datetime
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient

from app import create_app
from container import build_services
from payments.gateway import FakeGateway
from shared.events.publisher import InMemoryPublisher
from shared.access import Actor, Role
from shared.config import Settings

VISA = "4242 4242 4242 4242"


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their directory location."""
    for item in items:
        # Get the test file path relative to the tests directory
        test_path = Path(item.fspath)

        # Mark tests based on their directory
        if "/domain/" in str(test_path):
            item.add_marker(pytest.mark.domain)
        elif "/application/" in str(test_path):
            item.add_marker(pytest.mark.application)
        elif "/integration/" in str(test_path):
            item.add_marker(pytest.mark.integration)
            # Integration tests are often slower
            if not any(m.name == "fast" for m in item.iter_markers()):
                item.add_marker(pytest.mark.slow)
        elif "/bdd/" in str(test_path):
            item.add_marker(pytest.mark.bdd)


# ---------------------------------------------------------------------------
# Infrastructure
# ---------------------------------------------------------------------------
@pytest.fixture
def settings(tmp_path):
    """A file-backed SQLite database per test; concurrent tests need real connections."""
    return Settings(database_url=f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}", env="test")


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def publisher():
    return InMemoryPublisher()


@pytest.fixture
async def services(settings, gateway, publisher):
    services = build_services(settings, gateway=gateway, publisher=publisher)
    await services.setup_db()
    yield services
    await services.close()


@pytest.fixture
def inventory(services):
    return services.inventory


@pytest.fixture
def ledger(services):
    return services.ledger


# ---------------------------------------------------------------------------
# Actors
# ---------------------------------------------------------------------------
@pytest.fixture
def customer():
    return Actor(id="cust-001")


@pytest.fixture
def other_customer():
    return Actor(id="cust-002")


@pytest.fixture
def admin():
    return Actor(id="admin-001", role=Role.ADMIN)


@pytest.fixture
def vendor():
    return Actor(id="vendor-user-001", role=Role.VENDOR, vendor_id="vendor-001")


# ---------------------------------------------------------------------------
# Seed data
# ---------------------------------------------------------------------------
@pytest.fixture
def make_offer(inventory):
    """Create a published product with one vendor offer. Returns ``(product, vendor_product)``."""
    counter = {"n": 0}

    async def _make(price=20.0, stock=10, vendor_id="vendor-001", slug=None, name=None):
        counter["n"] += 1
        n = counter["n"]
        product = await inventory.add_product(name=name or f"Product {n}", slug=slug or f"product-{n}")
        vendor_product = await inventory.add_vendor_product(
            product_id=product.id,
            vendor_id=vendor_id,
            vendor_name=f"Vendor {vendor_id}",
            price=price,
            stock_quantity=stock,
        )
        return await inventory.get_product(product.id), vendor_product

    return _make


@pytest.fixture
def add_to_cart(services):
    async def _add(actor, product, vendor_product, quantity=1):
        return await services.carts.add_to_cart(
            actor, product_slug=product.slug, vendor_product_id=vendor_product.id, quantity=quantity
        )

    return _add


@pytest.fixture
async def address(services, customer):
    return await services.addresses.add_address(
        customer.id,
        full_name="Jane Doe",
        address_line1="123 Elm Street",
        city="Springfield",
        postal_code="62701",
        country="US",
        state="IL",
    )


@pytest.fixture
async def card(services, customer):
    return await services.cards.add_card(
        customer,
        card_holder_name="Jane Doe",
        card_number=VISA,
        expiry_month=12,
        expiry_year=datetime.now().year + 3,
        cvv="123",
    )


@pytest.fixture
async def sample_cart(make_offer, add_to_cart, customer):
    """Two lines: 1 x $20.00 and 2 x $15.00 (subtotal $50.00)."""
    shirt, shirt_offer = await make_offer(price=20.0, stock=10, name="Linen Shirt", slug="linen-shirt")
    socks, socks_offer = await make_offer(price=15.0, stock=10, name="Wool Socks", slug="wool-socks")
    await add_to_cart(customer, shirt, shirt_offer, quantity=1)
    cart = await add_to_cart(customer, socks, socks_offer, quantity=2)
    return cart, [shirt_offer, socks_offer]


@pytest.fixture
def place_order(services, customer, address, card):
    """Check out the customer's current cart with the default address and card."""

    async def _place(notes=None):
        return await services.checkout.create_order(
            customer, shipping_address_id=address.id, payment_card_id=card.id, notes=notes
        )

    return _place


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------
@pytest.fixture
def auth():
    """Headers the upstream gateway forwards for an authenticated actor."""

    def _headers(actor: Actor) -> dict[str, str]:
        headers = {"X-User-Id": actor.id, "X-User-Role": actor.role.value}
        if actor.vendor_id:
            headers["X-Vendor-Id"] = actor.vendor_id
        return headers

    return _headers


@pytest.fixture
async def client(services):
    """An HTTP client bound to an app that shares the test's services."""
    transport = ASGITransport(app=create_app(services))
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
