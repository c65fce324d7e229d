"""End-to-end checkout over HTTP: address, card, cart, order, payment, fulfilment."""

from datetime import datetime

import pytest
from sqlalchemy import text


@pytest.fixture
async def shopper(client, auth, customer, make_offer):
    """A customer with an address, a card and a two-line cart worth $50.00."""
    headers = auth(customer)
    shirt, shirt_offer = await make_offer(price=20.0, stock=10, name="Linen Shirt", slug="linen-shirt")
    socks, socks_offer = await make_offer(price=15.0, stock=10, name="Wool Socks", slug="wool-socks")

    address = await client.post(
        "/addresses",
        json={
            "full_name": "Jane Doe",
            "address_line1": "123 Elm Street",
            "city": "Springfield",
            "postal_code": "62701",
            "country": "US",
        },
        headers=headers,
    )
    card = await client.post(
        "/payments/cards",
        json={
            "card_holder_name": "Jane Doe",
            "card_number": "4242 4242 4242 4242",
            "expiry_month": 12,
            "expiry_year": datetime.now().year + 2,
            "cvv": "123",
        },
        headers=headers,
    )
    for slug, offer, quantity in (("linen-shirt", shirt_offer, 1), ("wool-socks", socks_offer, 2)):
        response = await client.post(
            "/carts/me/items",
            json={"product_slug": slug, "vendor_product_id": offer.id, "quantity": quantity},
            headers=headers,
        )
        assert response.status_code == 201

    return {
        "headers": headers,
        "order_body": {"shipping_address_id": address.json()["id"], "payment_card_id": card.json()["id"]},
        "offers": [shirt_offer, socks_offer],
    }


class TestCheckoutOverHttp:
    async def test_cart_totals(self, client, shopper):
        response = await client.get("/carts/me", headers=shopper["headers"])

        body = response.json()
        assert body["subtotal"] == 50.0
        assert body["item_count"] == 3
        assert [item["quantity"] for item in body["items"]] == [1, 2]

    async def test_successful_order(self, client, shopper, inventory):
        response = await client.post("/orders", json=shopper["order_body"], headers=shopper["headers"])

        assert response.status_code == 201
        order = response.json()
        assert order["status"] == "confirmed"
        assert order["payment_status"] == "paid"
        assert order["total_amount"] == 55.0
        assert order["order_number"].startswith("ORD-")
        assert [await inventory.stock_level(o.id) for o in shopper["offers"]] == [9, 8]

        payment = await client.get(f"/payments/orders/{order['id']}", headers=shopper["headers"])
        assert payment.json()["status"] == "completed"

        history = await client.get(f"/orders/{order['id']}/history", headers=shopper["headers"])
        assert [(h["from_status"], h["to_status"]) for h in history.json()] == [("pending", "confirmed")]

        cart = await client.get("/carts/me", headers=shopper["headers"])
        assert cart.json()["items"] == []

    async def test_declined_payment(self, client, shopper, inventory):
        configured = await client.post(
            "/payments/gateway/configure", json={"should_succeed": False, "failure_reason": "Insufficient funds"}
        )
        assert configured.json()["should_succeed"] is False

        response = await client.post("/orders", json=shopper["order_body"], headers=shopper["headers"])

        assert response.status_code == 402
        body = response.json()
        assert body["code"] == "PAYMENT_DECLINED"
        assert body["message"] == "Payment failed: Insufficient funds"

        order = await client.get(f"/orders/{body['details']['order_id']}", headers=shopper["headers"])
        assert (order.json()["status"], order.json()["payment_status"]) == ("failed", "failed")
        assert [await inventory.stock_level(o.id) for o in shopper["offers"]] == [10, 10]

        cart = await client.get("/carts/me", headers=shopper["headers"])
        assert len(cart.json()["items"]) == 2

    async def test_gateway_outage(self, client, shopper):
        await client.post("/payments/gateway/configure", json={"unavailable": True})

        response = await client.post("/orders", json=shopper["order_body"], headers=shopper["headers"])

        assert response.status_code == 503
        assert response.json()["code"] == "DEPENDENCY_UNAVAILABLE"

    async def test_stock_store_failure_is_not_leaked(self, client, shopper, services):
        async with services.engine.begin() as conn:
            await conn.execute(text("DROP TABLE vendor_products"))

        response = await client.post("/orders", json=shopper["order_body"], headers=shopper["headers"])

        assert response.status_code == 503
        assert response.json()["message"] == "Failed to validate stock"
        assert "vendor_products" not in response.text
        assert "SQL" not in response.text

    async def test_stale_price_is_rejected_then_accepted(self, client, shopper, inventory):
        await inventory.update_offer(shopper["offers"][0].id, price=22.0)

        rejected = await client.post("/orders", json=shopper["order_body"], headers=shopper["headers"])
        assert rejected.status_code == 400
        assert rejected.json()["code"] == "CART_INVALID"
        [issue] = rejected.json()["details"]["issues"]
        assert (issue["type"], issue["current_price"]) == ("price_changed", 22.0)

        retried = await client.post("/orders", json=shopper["order_body"], headers=shopper["headers"])
        assert retried.status_code == 201
        assert retried.json()["subtotal"] == 52.0

    async def test_missing_address(self, client, shopper):
        body = {**shopper["order_body"], "shipping_address_id": "missing"}

        response = await client.post("/orders", json=body, headers=shopper["headers"])

        assert response.status_code == 404
        assert response.json() == {
            "code": "ADDRESS_NOT_FOUND",
            "message": "Shipping address not found",
            "details": {"address_id": "missing"},
        }


class TestAfterCheckout:
    @pytest.fixture
    async def order(self, client, shopper):
        response = await client.post("/orders", json=shopper["order_body"], headers=shopper["headers"])
        return response.json()

    async def test_listing_my_orders(self, client, shopper, order):
        response = await client.get("/orders", params={"status": "confirmed"}, headers=shopper["headers"])

        body = response.json()
        assert [o["id"] for o in body["items"]] == [order["id"]]
        assert body["meta"]["total_items"] == 1

    async def test_lookup_by_number(self, client, shopper, order):
        response = await client.get(f"/orders/number/{order['order_number']}", headers=shopper["headers"])
        assert response.json()["id"] == order["id"]

    async def test_vendor_ships_and_the_order_follows(self, client, auth, vendor, admin, order):
        for item in order["items"]:
            for status in ("confirmed", "processing", "ready_to_ship", "shipped"):
                response = await client.put(
                    f"/orders/items/{item['id']}/status",
                    json={"status": status, "tracking_number": "1Z999"},
                    headers=auth(vendor),
                )
                assert response.status_code == 200

        shipped = await client.get(f"/orders/{order['id']}", headers=auth(admin))
        assert shipped.json()["status"] == "shipped"

        stats = await client.get("/orders/vendor/stats", headers=auth(vendor))
        assert stats.json()["total_orders"] == 1

    async def test_cancel_refunds(self, client, shopper, order):
        response = await client.post(
            f"/orders/{order['id']}/cancel", json={"reason": "Ordered twice"}, headers=shopper["headers"]
        )

        assert response.status_code == 200
        assert (response.json()["status"], response.json()["payment_status"]) == ("cancelled", "refunded")

        again = await client.post(f"/orders/{order['id']}/cancel", json={}, headers=shopper["headers"])
        assert again.status_code == 409
        assert again.json()["code"] == "ORDER_NOT_CANCELLABLE"

    async def test_other_customers_are_kept_out(self, client, auth, other_customer, order):
        response = await client.get(f"/orders/{order['id']}", headers=auth(other_customer))
        assert response.status_code == 403

    async def test_admin_status_update(self, client, auth, admin, shopper, order):
        forbidden = await client.put(
            f"/orders/{order['id']}/status", json={"status": "processing"}, headers=shopper["headers"]
        )
        assert forbidden.status_code == 403

        illegal = await client.put(f"/orders/{order['id']}/status", json={"status": "delivered"}, headers=auth(admin))
        assert illegal.status_code == 409
        assert illegal.json()["code"] == "INVALID_STATUS_TRANSITION"

        ok = await client.put(f"/orders/{order['id']}/status", json={"status": "processing"}, headers=auth(admin))
        assert ok.json()["status"] == "processing"
