"""Cart tables.

A customer has at most one ``active`` cart. Lines snapshot the product,
variant and vendor names at the time they were added; the unit price is
refreshed by checkout validation when the vendor changes it.
"""

from datetime import datetime
from enum import Enum
from uuid import uuid4

from sqlalchemy import DateTime, ForeignKey, Index, Integer, Numeric, String, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shared.clock import utcnow
from shared.contracts.inventory import StockLine
from shared.database import Base


class CartStatus(Enum):
    ACTIVE = "active"
    CONVERTED = "converted"
    ABANDONED = "abandoned"
    EXPIRED = "expired"


class Cart(Base):
    __tablename__ = "carts"
    __table_args__ = (
        Index(
            "uq_carts_active_customer",
            "customer_id",
            unique=True,
            sqlite_where=text("status = 'active'"),
            postgresql_where=text("status = 'active'"),
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    customer_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=CartStatus.ACTIVE.value)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    expires_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    items: Mapped[list["CartItem"]] = relationship(
        back_populates="cart",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="CartItem.created_at",
    )

    @property
    def is_active(self) -> bool:
        return self.status == CartStatus.ACTIVE.value

    @property
    def subtotal(self) -> float:
        return round(sum(item.total_price for item in self.items), 2)

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)

    def stock_lines(self) -> list[StockLine]:
        return [item.stock_line() for item in self.items]


class CartItem(Base):
    __tablename__ = "cart_items"
    __table_args__ = (UniqueConstraint("cart_id", "vendor_product_id", "vendor_variant_id", name="uq_cart_item_offer"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    cart_id: Mapped[str] = mapped_column(ForeignKey("carts.id", ondelete="CASCADE"), index=True)
    product_id: Mapped[str] = mapped_column(String(36), nullable=False)
    product_slug: Mapped[str] = mapped_column(String(255), nullable=False)
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    variant_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    variant_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    vendor_id: Mapped[str] = mapped_column(String(36), nullable=False)
    vendor_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    vendor_product_id: Mapped[str] = mapped_column(String(36), nullable=False)
    vendor_variant_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[float] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=False)
    original_price: Mapped[float | None] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=True)
    image_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    cart: Mapped[Cart] = relationship(back_populates="items")

    @property
    def total_price(self) -> float:
        return round(self.unit_price * self.quantity, 2)

    def stock_line(self) -> StockLine:
        return StockLine(
            vendor_product_id=self.vendor_product_id,
            vendor_variant_id=self.vendor_variant_id,
            quantity=self.quantity,
        )
