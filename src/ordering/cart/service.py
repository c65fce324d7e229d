"""Cart management: adding, changing and removing lines.

Products and offers are looked up in inventory on every add so that a line
always starts from the vendor's current price; stock is checked but not held.
Only ``active`` carts can change.
"""

import structlog
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ordering.cart.models import Cart, CartItem, CartStatus
from ordering.ports import StockClient
from shared.access import Action, Actor, ensure_can
from shared.contracts.inventory import StockLine
from shared.errors import ConflictError, DependencyError, NotFoundError, ValidationError

logger = structlog.get_logger(__name__)

MAX_ITEM_QUANTITY = 999


def _check_quantity(quantity: int) -> None:
    if not 1 <= quantity <= MAX_ITEM_QUANTITY:
        raise ValidationError(
            f"Quantity must be between 1 and {MAX_ITEM_QUANTITY}",
            code="INVALID_QUANTITY",
            details={"quantity": quantity},
        )


class CartService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        stock: StockClient,
        default_currency: str = "USD",
    ) -> None:
        self._session_factory = session_factory
        self._stock = stock
        self.default_currency = default_currency

    async def get_cart(self, customer_id: str) -> Cart | None:
        async with self._session_factory() as session:
            stmt = select(Cart).where(Cart.customer_id == customer_id, Cart.status == CartStatus.ACTIVE.value)
            return await session.scalar(stmt)

    async def get_cart_by_id(self, cart_id: str) -> Cart:
        async with self._session_factory() as session:
            cart = await session.get(Cart, cart_id)
        if cart is None:
            raise NotFoundError("Cart not found", details={"cart_id": cart_id})
        return cart

    async def get_or_create_cart(self, customer_id: str) -> Cart:
        cart = await self.get_cart(customer_id)
        if cart is not None:
            return cart

        try:
            async with self._session_factory() as session:
                async with session.begin():
                    cart = Cart(customer_id=customer_id, currency=self.default_currency, items=[])
                    session.add(cart)
        except IntegrityError:
            # A concurrent request created the active cart first.
            cart = await self.get_cart(customer_id)
        else:
            logger.info("Cart created", customer_id=customer_id, cart_id=cart.id)
        return cart

    async def add_to_cart(
        self,
        actor: Actor,
        product_slug: str,
        vendor_product_id: str,
        quantity: int = 1,
        variant_id: str | None = None,
        vendor_variant_id: str | None = None,
    ) -> Cart:
        _check_quantity(quantity)

        product = await self._stock.get_product_by_slug(product_slug)
        if product is None:
            raise NotFoundError(f"Product not found: {product_slug}", code="PRODUCT_NOT_FOUND")
        if not (product.is_published and product.is_active):
            raise ValidationError("Product is not available", code="PRODUCT_UNAVAILABLE")

        vendor_product = product.vendor_product(vendor_product_id)
        if vendor_product is None:
            raise NotFoundError("Vendor product not found", details={"vendor_product_id": vendor_product_id})
        if not vendor_product.is_sellable:
            raise ValidationError("This offer is not available", code="OFFER_UNAVAILABLE")

        unit_price = vendor_product.price
        variant_name = None
        if variant_id:
            variant = product.variant(variant_id)
            if variant is None:
                raise NotFoundError("Variant not found", details={"variant_id": variant_id})
            variant_name = variant.name
            if vendor_variant_id:
                vendor_variant = vendor_product.variant(vendor_variant_id)
                if vendor_variant is None:
                    raise NotFoundError("Vendor variant not found", details={"vendor_variant_id": vendor_variant_id})
                unit_price = vendor_variant.price
        elif vendor_variant_id:
            raise ValidationError("A vendor variant needs its variant", code="VARIANT_REQUIRED")

        await self._ensure_in_stock(StockLine(vendor_product_id, quantity, vendor_variant_id))

        cart = await self.get_or_create_cart(actor.id)
        existing = next(
            (
                item
                for item in cart.items
                if item.vendor_product_id == vendor_product_id and item.vendor_variant_id == vendor_variant_id
            ),
            None,
        )

        if existing is not None:
            new_quantity = existing.quantity + quantity
            _check_quantity(new_quantity)
            await self._ensure_in_stock(
                StockLine(vendor_product_id, new_quantity, vendor_variant_id),
                message="Cannot add more items. Maximum available: {available}",
            )
            async with self._session_factory() as session:
                async with session.begin():
                    await session.execute(
                        update(CartItem)
                        .where(CartItem.id == existing.id)
                        .values(quantity=new_quantity, unit_price=unit_price)
                        .execution_options(synchronize_session=False)
                    )
            logger.info(
                "Cart item quantity increased",
                cart_id=cart.id,
                item_id=existing.id,
                old_quantity=existing.quantity,
                new_quantity=new_quantity,
            )
        else:
            try:
                async with self._session_factory() as session:
                    async with session.begin():
                        session.add(
                            CartItem(
                                cart_id=cart.id,
                                product_id=product.id,
                                product_slug=product.slug,
                                product_name=product.name,
                                variant_id=variant_id,
                                variant_name=variant_name,
                                vendor_id=vendor_product.vendor_id,
                                vendor_name=vendor_product.vendor_name,
                                vendor_product_id=vendor_product_id,
                                vendor_variant_id=vendor_variant_id,
                                quantity=quantity,
                                unit_price=unit_price,
                                original_price=vendor_product.compare_at_price,
                                image_url=product.image_url,
                            )
                        )
            except IntegrityError as exc:
                raise ConflictError("Item was added to the cart concurrently, retry") from exc
            logger.info("Item added to cart", cart_id=cart.id, product=product.name, quantity=quantity)

        return await self.get_cart_by_id(cart.id)

    async def update_cart_item(self, actor: Actor, item_id: str, quantity: int) -> Cart:
        """Set a line's quantity. Zero removes the line."""
        item, cart = await self._owned_item(actor, item_id)

        if quantity == 0:
            return await self.remove_from_cart(actor, item_id)

        _check_quantity(quantity)
        await self._ensure_in_stock(StockLine(item.vendor_product_id, quantity, item.vendor_variant_id))

        async with self._session_factory() as session:
            async with session.begin():
                await session.execute(
                    update(CartItem)
                    .where(CartItem.id == item_id)
                    .values(quantity=quantity)
                    .execution_options(synchronize_session=False)
                )
        logger.info("Cart item updated", item_id=item_id, old_quantity=item.quantity, new_quantity=quantity)
        return await self.get_cart_by_id(cart.id)

    async def remove_from_cart(self, actor: Actor, item_id: str) -> Cart:
        _, cart = await self._owned_item(actor, item_id)
        async with self._session_factory() as session:
            async with session.begin():
                await session.execute(
                    delete(CartItem).where(CartItem.id == item_id).execution_options(synchronize_session=False)
                )
        logger.info("Item removed from cart", item_id=item_id, cart_id=cart.id)
        return await self.get_cart_by_id(cart.id)

    async def clear_cart(self, actor: Actor) -> bool:
        cart = await self.get_cart(actor.id)
        if cart is None:
            return True
        async with self._session_factory() as session:
            async with session.begin():
                await session.execute(
                    delete(CartItem).where(CartItem.cart_id == cart.id).execution_options(synchronize_session=False)
                )
        logger.info("Cart cleared", cart_id=cart.id)
        return True

    async def reprice_item(self, item_id: str, unit_price: float) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                await session.execute(
                    update(CartItem)
                    .where(CartItem.id == item_id)
                    .values(unit_price=unit_price)
                    .execution_options(synchronize_session=False)
                )

    async def mark_converted(self, cart_id: str) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                await session.execute(
                    update(Cart)
                    .where(Cart.id == cart_id)
                    .values(status=CartStatus.CONVERTED.value)
                    .execution_options(synchronize_session=False)
                )
        logger.info("Cart marked as converted", cart_id=cart_id)

    async def _ensure_in_stock(self, line: StockLine, message: str = "Insufficient stock. Available: {available}") -> None:
        response = await self._stock.check_stock([line])
        if not response.success:
            raise DependencyError("Failed to check stock", details={"error": response.error})
        if not response.all_available:
            available = response.results[0].available_quantity if response.results else 0
            raise ValidationError(
                message.format(available=available),
                code="INSUFFICIENT_STOCK",
                details={"available_quantity": available},
            )

    async def _owned_item(self, actor: Actor, item_id: str) -> tuple[CartItem, Cart]:
        async with self._session_factory() as session:
            row = (await session.execute(select(CartItem, Cart).join(Cart).where(CartItem.id == item_id))).first()
        if row is None:
            raise NotFoundError("Cart item not found", details={"item_id": item_id})
        item, cart = row
        ensure_can(actor, Action.MANAGE_CART, cart)
        if not cart.is_active:
            raise ConflictError("Cart is no longer active", code="CART_NOT_ACTIVE")
        return item, cart
