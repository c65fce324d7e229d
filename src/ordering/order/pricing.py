"""Order totals.

Tax is a flat rate on the subtotal. Shipping is free at or above the
threshold, otherwise a base rate plus a per-line rate (per distinct line, not
per unit). Every amount is rounded to cents.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from shared.config import Settings

_CENTS = Decimal("0.01")


def to_cents(amount: float | Decimal) -> float:
    return float(Decimal(str(amount)).quantize(_CENTS, rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class Totals:
    subtotal: float
    tax_amount: float
    shipping_amount: float
    discount_amount: float
    total_amount: float


def calculate_totals(lines: Iterable[tuple[float, int]], settings: Settings) -> Totals:
    """Totals for ``(unit_price, quantity)`` lines."""
    lines = list(lines)
    subtotal = sum((Decimal(str(price)) * quantity for price, quantity in lines), Decimal("0"))
    tax = subtotal * Decimal(str(settings.tax_rate))

    if subtotal >= Decimal(str(settings.free_shipping_threshold)):
        shipping = Decimal("0")
    else:
        shipping = Decimal(str(settings.shipping_base_rate)) + Decimal(str(settings.shipping_per_item_rate)) * len(
            lines
        )

    discount = Decimal("0")
    subtotal, tax, shipping = (Decimal(str(to_cents(v))) for v in (subtotal, tax, shipping))
    total = subtotal + tax + shipping - discount

    return Totals(
        subtotal=float(subtotal),
        tax_amount=float(tax),
        shipping_amount=float(shipping),
        discount_amount=float(discount),
        total_amount=to_cents(total),
    )
