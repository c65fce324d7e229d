"""Catalogue and stock tables owned by the inventory context.

A ``Product`` is the shared catalogue entry; each vendor sells it through a
``VendorProduct`` offer with its own price and stock. Variant-level offers
(size, colour...) carry their own price and stock in ``VendorVariant``.
Stock is only ever changed through ``InventoryService``.
"""

from datetime import datetime
from enum import Enum
from uuid import uuid4

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shared.clock import utcnow
from shared.database import Base


def _uuid() -> str:
    return str(uuid4())


class ProductStatus(Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class Product(Base):
    __tablename__ = "products"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=ProductStatus.DRAFT.value)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    image_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    variants: Mapped[list["ProductVariant"]] = relationship(back_populates="product", lazy="selectin")
    vendor_products: Mapped[list["VendorProduct"]] = relationship(back_populates="product", lazy="selectin")

    @property
    def is_published(self) -> bool:
        return self.status == ProductStatus.PUBLISHED.value

    def variant(self, variant_id: str) -> "ProductVariant | None":
        return next((v for v in self.variants if v.id == variant_id), None)

    def vendor_product(self, vendor_product_id: str) -> "VendorProduct | None":
        return next((vp for vp in self.vendor_products if vp.id == vendor_product_id), None)


class ProductVariant(Base):
    __tablename__ = "product_variants"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    product_id: Mapped[str] = mapped_column(ForeignKey("products.id", ondelete="CASCADE"), index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    sku: Mapped[str | None] = mapped_column(String(100), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    product: Mapped[Product] = relationship(back_populates="variants")


class VendorProduct(Base):
    __tablename__ = "vendor_products"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    product_id: Mapped[str] = mapped_column(ForeignKey("products.id", ondelete="CASCADE"), index=True)
    vendor_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    vendor_name: Mapped[str] = mapped_column(String(255), nullable=False)
    sku: Mapped[str | None] = mapped_column(String(100), nullable=True)
    price: Mapped[float] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=False)
    compare_at_price: Mapped[float | None] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=True)
    stock_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    product: Mapped[Product] = relationship(back_populates="vendor_products", lazy="selectin")
    variants: Mapped[list["VendorVariant"]] = relationship(back_populates="vendor_product", lazy="selectin")

    @property
    def is_sellable(self) -> bool:
        return self.is_published and self.is_active

    def variant(self, vendor_variant_id: str) -> "VendorVariant | None":
        return next((v for v in self.variants if v.id == vendor_variant_id), None)

    def variant_for(self, product_variant_id: str) -> "VendorVariant | None":
        return next((v for v in self.variants if v.product_variant_id == product_variant_id), None)


class VendorVariant(Base):
    __tablename__ = "vendor_variants"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    vendor_product_id: Mapped[str] = mapped_column(ForeignKey("vendor_products.id", ondelete="CASCADE"), index=True)
    product_variant_id: Mapped[str] = mapped_column(ForeignKey("product_variants.id", ondelete="CASCADE"))
    price: Mapped[float] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=False)
    compare_at_price: Mapped[float | None] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=True)
    stock_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    vendor_product: Mapped[VendorProduct] = relationship(back_populates="variants")
    product_variant: Mapped[ProductVariant] = relationship(lazy="selectin")


class StockReservationRecord(Base):
    """Quantities held for one checkout until released, discarded or expired."""

    __tablename__ = "stock_reservations"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    items: Mapped[str] = mapped_column(Text, nullable=False)  # JSON list of StockLine dicts
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
