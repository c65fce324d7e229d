"""Tests for checkout-time cart validation."""

import pytest

from sqlalchemy import delete

from inventory.models import VendorProduct
from ordering.cart.validation import IssueType
from shared.contracts.inventory import StockCheckResponse
from shared.errors import DependencyError, ValidationError


async def test_valid_cart(services, sample_cart, customer):
    validation = await services.validator.validate_for_checkout(customer.id)

    assert validation.valid
    assert validation.issues == []
    assert validation.cart.subtotal == 50.0


async def test_missing_or_empty_cart(services, customer):
    with pytest.raises(ValidationError) as exc_info:
        await services.validator.validate_for_checkout(customer.id)
    assert exc_info.value.code == "CART_EMPTY"

    await services.carts.get_or_create_cart(customer.id)
    with pytest.raises(ValidationError):
        await services.validator.validate_for_checkout(customer.id)


async def test_out_of_stock_line(services, inventory, sample_cart, customer):
    cart, (shirt_offer, socks_offer) = sample_cart
    await inventory.update_offer(socks_offer.id, stock_quantity=1)

    validation = await services.validator.validate_for_checkout(customer.id)

    assert not validation.valid
    [issue] = validation.issues
    assert issue.type == IssueType.OUT_OF_STOCK
    assert issue.available_quantity == 1
    assert issue.message == "Only 1 items available"


async def test_price_drift_is_reported_and_written_back(services, inventory, sample_cart, customer):
    cart, (shirt_offer, _) = sample_cart
    await inventory.update_offer(shirt_offer.id, price=22.0)

    validation = await services.validator.validate_for_checkout(customer.id)

    [issue] = validation.issues
    assert issue.type == IssueType.PRICE_CHANGED
    assert issue.current_price == 22.0
    assert issue.as_dict()["message"] == "Price changed from $20.00 to $22.00"
    assert validation.cart.subtotal == 52.0

    # The line already carries the new price, so a retry passes.
    assert (await services.validator.validate_for_checkout(customer.id)).valid


async def test_price_within_a_cent_is_tolerated(services, inventory, sample_cart, customer):
    _, (shirt_offer, _) = sample_cart
    await inventory.update_offer(shirt_offer.id, price=20.01)

    assert (await services.validator.validate_for_checkout(customer.id)).valid


async def test_deactivated_offer_is_unavailable(services, inventory, sample_cart, customer):
    _, (shirt_offer, _) = sample_cart
    await inventory.update_offer(shirt_offer.id, is_active=False)

    validation = await services.validator.validate_for_checkout(customer.id)

    assert [issue.type for issue in validation.issues] == [IssueType.UNAVAILABLE]


async def test_stock_service_failure(services, sample_cart, customer, monkeypatch):
    async def broken_check(lines):
        return StockCheckResponse(success=False, error="database is locked")

    monkeypatch.setattr(services.inventory, "check_stock", broken_check)

    with pytest.raises(DependencyError) as exc_info:
        await services.validator.validate_for_checkout(customer.id)
    assert "database is locked" not in str(exc_info.value.to_dict())


async def test_removed_offer_is_reported_once(services, sample_cart, customer):
    _, (shirt_offer, _) = sample_cart
    async with services.session_factory() as session:
        async with session.begin():
            await session.execute(delete(VendorProduct).where(VendorProduct.id == shirt_offer.id))

    validation = await services.validator.validate_for_checkout(customer.id)

    [issue] = validation.issues
    assert issue.type == IssueType.UNAVAILABLE
    assert issue.message == "Product is no longer available"
