"""Checkout-time cart validation.

Re-checks every line against live stock and live offer prices. A price that
moved by more than a cent is reported *and* written back to the line, so a
retried checkout sees the new price; that update is kept even when checkout
goes no further.
"""

from dataclasses import dataclass, field
from enum import Enum

import structlog

from ordering.cart.models import Cart
from ordering.cart.service import CartService
from ordering.ports import StockClient
from shared.errors import DependencyError, ValidationError

logger = structlog.get_logger(__name__)

PRICE_TOLERANCE = 0.01


class IssueType(Enum):
    OUT_OF_STOCK = "out_of_stock"
    PRICE_CHANGED = "price_changed"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class CartIssue:
    item_id: str
    type: IssueType
    message: str
    current_price: float | None = None
    available_quantity: int | None = None

    def as_dict(self) -> dict:
        data = {"item_id": self.item_id, "type": self.type.value, "message": self.message}
        if self.current_price is not None:
            data["current_price"] = self.current_price
        if self.available_quantity is not None:
            data["available_quantity"] = self.available_quantity
        return data


@dataclass
class CartValidation:
    cart: Cart
    issues: list[CartIssue] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.issues


class CartValidator:
    def __init__(self, carts: CartService, stock: StockClient) -> None:
        self._carts = carts
        self._stock = stock

    async def validate_for_checkout(self, customer_id: str) -> CartValidation:
        cart = await self._carts.get_cart(customer_id)
        if cart is None or not cart.items:
            raise ValidationError("Cart is empty", code="CART_EMPTY")

        issues: list[CartIssue] = []

        stock_check = await self._stock.check_stock(cart.stock_lines())
        if not stock_check.success:
            raise DependencyError("Failed to validate stock", details={"cart_id": cart.id})

        for result in stock_check.unavailable:
            item = next(
                (
                    i
                    for i in cart.items
                    if i.vendor_product_id == result.vendor_product_id
                    and i.vendor_variant_id == result.vendor_variant_id
                ),
                None,
            )
            if item is None:
                continue
            message = (
                "Item is out of stock"
                if result.available_quantity == 0
                else f"Only {result.available_quantity} items available"
            )
            issues.append(
                CartIssue(
                    item_id=item.id,
                    type=IssueType.OUT_OF_STOCK,
                    message=message,
                    available_quantity=result.available_quantity,
                )
            )

        for item in cart.items:
            vendor_product = await self._stock.get_vendor_product(item.vendor_product_id)
            if vendor_product is None:
                issues.append(CartIssue(item.id, IssueType.UNAVAILABLE, "Product is no longer available"))
                continue
            if not vendor_product.is_sellable:
                issues.append(CartIssue(item.id, IssueType.UNAVAILABLE, "Product offer is no longer available"))
                continue

            current_price = vendor_product.price
            if item.vendor_variant_id:
                vendor_variant = vendor_product.variant(item.vendor_variant_id)
                if vendor_variant is None or not vendor_variant.is_active:
                    issues.append(CartIssue(item.id, IssueType.UNAVAILABLE, "Variant is no longer available"))
                    continue
                current_price = vendor_variant.price

            if round(abs(current_price - item.unit_price), 2) > PRICE_TOLERANCE:
                issues.append(
                    CartIssue(
                        item_id=item.id,
                        type=IssueType.PRICE_CHANGED,
                        message=f"Price changed from ${item.unit_price:.2f} to ${current_price:.2f}",
                        current_price=current_price,
                    )
                )
                await self._carts.reprice_item(item.id, current_price)

        # A line whose offer is gone is reported once, as unavailable.
        unavailable = {issue.item_id for issue in issues if issue.type == IssueType.UNAVAILABLE}
        issues = [i for i in issues if not (i.type == IssueType.OUT_OF_STOCK and i.item_id in unavailable)]

        if issues:
            logger.info("Cart failed checkout validation", cart_id=cart.id, issues=[i.type.value for i in issues])

        return CartValidation(cart=await self._carts.get_cart_by_id(cart.id), issues=issues)
