"""Records exchanged between ordering and the inventory context.

Inventory may sit behind a network hop, so these are plain frozen values
rather than ORM rows.
"""

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class StockLine:
    """A quantity of one vendor offer (and optionally one of its variants)."""

    vendor_product_id: str
    quantity: int
    vendor_variant_id: str | None = None

    def as_dict(self) -> dict:
        return {
            "vendor_product_id": self.vendor_product_id,
            "vendor_variant_id": self.vendor_variant_id,
            "quantity": self.quantity,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "StockLine":
        return cls(
            vendor_product_id=data["vendor_product_id"],
            vendor_variant_id=data.get("vendor_variant_id"),
            quantity=int(data["quantity"]),
        )


@dataclass(frozen=True)
class StockCheckResult:
    vendor_product_id: str
    vendor_variant_id: str | None
    requested_quantity: int
    available_quantity: int
    is_available: bool


@dataclass(frozen=True)
class StockCheckResponse:
    success: bool
    all_available: bool = False
    results: list[StockCheckResult] = field(default_factory=list)
    error: str | None = None

    @property
    def unavailable(self) -> list[StockCheckResult]:
        return [result for result in self.results if not result.is_available]


@dataclass(frozen=True)
class ReservationResult:
    success: bool
    reservation_id: str
    expires_at: datetime | None = None
    error: str | None = None
