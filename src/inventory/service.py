"""Inventory operations consumed by ordering.

Stock is deducted when it is reserved, not when the order is confirmed.
Each line is one conditional ``UPDATE ... WHERE stock_quantity >= q``, so two
checkouts racing for the last unit cannot both succeed. A reservation's lines
either all apply or none do.
"""

from datetime import timedelta

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from inventory.models import Product, ProductStatus, ProductVariant, VendorProduct, VendorVariant
from inventory.stock.reservation import ReservationStore
from shared.clock import utcnow
from shared.contracts.inventory import ReservationResult, StockCheckResponse, StockCheckResult, StockLine
from shared.errors import DependencyError, NotFoundError, ValidationError

logger = structlog.get_logger(__name__)

STOCK_UNAVAILABLE = "Stock service unavailable"


class InsufficientStockError(Exception):
    def __init__(self, line: StockLine) -> None:
        super().__init__(f"Insufficient stock for {line.vendor_variant_id or line.vendor_product_id}")
        self.line = line


def _stock_target(line: StockLine):
    if line.vendor_variant_id:
        return VendorVariant, line.vendor_variant_id
    return VendorProduct, line.vendor_product_id


class InventoryService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        reservations: ReservationStore,
        default_ttl: int = 900,
    ) -> None:
        self._session_factory = session_factory
        self._reservations = reservations
        self.default_ttl = default_ttl

    # ------------------------------------------------------------------
    # Catalogue lookups
    # ------------------------------------------------------------------
    async def get_product_by_slug(self, slug: str) -> Product | None:
        async with self._session_factory() as session:
            return (await session.scalars(select(Product).where(Product.slug == slug))).one_or_none()

    async def get_product(self, product_id: str) -> Product | None:
        async with self._session_factory() as session:
            return await session.get(Product, product_id)

    async def get_vendor_product(self, vendor_product_id: str) -> VendorProduct | None:
        async with self._session_factory() as session:
            return await session.get(VendorProduct, vendor_product_id)

    async def stock_level(self, vendor_product_id: str, vendor_variant_id: str | None = None) -> int:
        model, key = _stock_target(StockLine(vendor_product_id, 0, vendor_variant_id))
        async with self._session_factory() as session:
            quantity = await session.scalar(select(model.stock_quantity).where(model.id == key))
        if quantity is None:
            raise NotFoundError(f"No stock record for {key}")
        return quantity

    # ------------------------------------------------------------------
    # Stock
    # ------------------------------------------------------------------
    async def check_stock(self, lines: list[StockLine]) -> StockCheckResponse:
        """Report availability per line. Never raises for missing offers."""
        try:
            results = []
            async with self._session_factory() as session:
                for line in lines:
                    model, key = _stock_target(line)
                    available = await session.scalar(select(model.stock_quantity).where(model.id == key)) or 0
                    results.append(
                        StockCheckResult(
                            vendor_product_id=line.vendor_product_id,
                            vendor_variant_id=line.vendor_variant_id,
                            requested_quantity=line.quantity,
                            available_quantity=available,
                            is_available=available >= line.quantity,
                        )
                    )
        except SQLAlchemyError as exc:
            logger.error("Stock check failed", error=str(exc))
            return StockCheckResponse(success=False, error=STOCK_UNAVAILABLE)

        return StockCheckResponse(
            success=True,
            all_available=all(result.is_available for result in results),
            results=results,
        )

    async def reserve_stock(
        self, reservation_id: str, lines: list[StockLine], ttl_seconds: int | None = None
    ) -> ReservationResult:
        """Deduct every line and record the reservation, or change nothing."""
        if not lines:
            raise ValidationError("Nothing to reserve", code="EMPTY_RESERVATION")
        if any(line.quantity < 1 for line in lines):
            raise ValidationError("Reserved quantities must be positive", code="INVALID_QUANTITY")

        ttl = ttl_seconds if ttl_seconds is not None else self.default_ttl
        expires_at = utcnow() + timedelta(seconds=ttl)

        try:
            async with self._session_factory() as session:
                async with session.begin():
                    for line in lines:
                        await self._decrement(session, line)
                    await self._reservations.add(session, reservation_id, lines, expires_at)
        except InsufficientStockError as exc:
            logger.info(
                "Stock reservation refused",
                reservation_id=reservation_id,
                vendor_product_id=exc.line.vendor_product_id,
                vendor_variant_id=exc.line.vendor_variant_id,
                quantity=exc.line.quantity,
            )
            return ReservationResult(success=False, reservation_id=reservation_id, error=str(exc))
        except SQLAlchemyError as exc:
            logger.error("Stock reservation failed", reservation_id=reservation_id, error=str(exc))
            raise DependencyError(STOCK_UNAVAILABLE, details={"reservation_id": reservation_id}) from exc

        logger.info("Stock reserved", reservation_id=reservation_id, lines=len(lines), expires_at=expires_at.isoformat())
        return ReservationResult(success=True, reservation_id=reservation_id, expires_at=expires_at)

    async def release_stock(self, reservation_id: str) -> bool:
        """Put a reservation's quantities back. Safe to call any number of times."""
        await self.restore_reservation(reservation_id)
        return True

    async def restore_reservation(self, reservation_id: str) -> bool:
        """Release and report whether this call was the one that restored stock."""
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    lines = await self._reservations.pop(session, reservation_id)
                    if lines is None:
                        logger.debug("Reservation already released", reservation_id=reservation_id)
                        return False
                    for line in lines:
                        await self._increment(session, line)
        except SQLAlchemyError as exc:
            logger.error("Stock release failed", reservation_id=reservation_id, error=str(exc))
            raise DependencyError(STOCK_UNAVAILABLE, details={"reservation_id": reservation_id}) from exc

        logger.info("Stock released", reservation_id=reservation_id, lines=len(lines))
        return True

    async def discard_reservation(self, reservation_id: str) -> bool:
        """Forget a reservation after a successful order.

        Stock was already deducted at reserve time, so only the record goes.
        """
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    existed = await self._reservations.discard(session, reservation_id)
        except SQLAlchemyError as exc:
            logger.error("Reservation discard failed", reservation_id=reservation_id, error=str(exc))
            raise DependencyError(STOCK_UNAVAILABLE, details={"reservation_id": reservation_id}) from exc

        logger.info("Reservation discarded", reservation_id=reservation_id, existed=existed)
        return True

    async def expired_reservation_ids(self, as_of) -> list[str]:
        async with self._session_factory() as session:
            return await self._reservations.expired_ids(session, as_of)

    async def _decrement(self, session: AsyncSession, line: StockLine) -> None:
        model, key = _stock_target(line)
        stmt = (
            update(model)
            .where(model.id == key, model.stock_quantity >= line.quantity)
            .values(stock_quantity=model.stock_quantity - line.quantity)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        if result.rowcount != 1:
            raise InsufficientStockError(line)

    async def _increment(self, session: AsyncSession, line: StockLine) -> None:
        model, key = _stock_target(line)
        stmt = (
            update(model)
            .where(model.id == key)
            .values(stock_quantity=model.stock_quantity + line.quantity)
            .execution_options(synchronize_session=False)
        )
        await session.execute(stmt)

    # ------------------------------------------------------------------
    # Catalogue maintenance
    # ------------------------------------------------------------------
    async def add_product(
        self,
        name: str,
        slug: str,
        status: ProductStatus = ProductStatus.PUBLISHED,
        description: str | None = None,
        variants: list[str] | None = None,
        is_active: bool = True,
    ) -> Product:
        async with self._session_factory() as session:
            async with session.begin():
                product = Product(
                    name=name, slug=slug, status=status.value, description=description, is_active=is_active
                )
                session.add(product)
                await session.flush()
                for variant_name in variants or []:
                    session.add(ProductVariant(product_id=product.id, name=variant_name))
            product_id = product.id
        return await self.get_product(product_id)

    async def add_vendor_product(
        self,
        product_id: str,
        vendor_id: str,
        vendor_name: str,
        price: float,
        stock_quantity: int,
        compare_at_price: float | None = None,
        sku: str | None = None,
        is_published: bool = True,
    ) -> VendorProduct:
        async with self._session_factory() as session:
            async with session.begin():
                vendor_product = VendorProduct(
                    product_id=product_id,
                    vendor_id=vendor_id,
                    vendor_name=vendor_name,
                    price=price,
                    compare_at_price=compare_at_price,
                    stock_quantity=stock_quantity,
                    sku=sku,
                    is_published=is_published,
                )
                session.add(vendor_product)
            vendor_product_id = vendor_product.id
        return await self.get_vendor_product(vendor_product_id)

    async def add_vendor_variant(
        self,
        vendor_product_id: str,
        product_variant_id: str,
        price: float,
        stock_quantity: int,
        compare_at_price: float | None = None,
    ) -> VendorVariant:
        async with self._session_factory() as session:
            async with session.begin():
                vendor_variant = VendorVariant(
                    vendor_product_id=vendor_product_id,
                    product_variant_id=product_variant_id,
                    price=price,
                    compare_at_price=compare_at_price,
                    stock_quantity=stock_quantity,
                )
                session.add(vendor_variant)
        return vendor_variant

    async def update_offer(
        self,
        vendor_product_id: str,
        vendor_variant_id: str | None = None,
        **changes,
    ) -> None:
        """Change price, stock or visibility flags of an offer."""
        allowed = {"price", "compare_at_price", "stock_quantity", "is_published", "is_active"}
        unknown = set(changes) - allowed
        if unknown:
            raise ValidationError(f"Unknown offer fields: {', '.join(sorted(unknown))}")

        model, key = _stock_target(StockLine(vendor_product_id, 0, vendor_variant_id))
        unsupported = [field for field in changes if not hasattr(model, field)]
        if unsupported:
            raise ValidationError(f"{model.__name__} has no field {unsupported[0]}")

        async with self._session_factory() as session:
            async with session.begin():
                offer = await session.get(model, key)
                if offer is None:
                    raise NotFoundError(f"Offer {key} not found")
                for field, value in changes.items():
                    setattr(offer, field, value)
