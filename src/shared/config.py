"""Application settings, read once from the environment.

Services receive a ``Settings`` instance explicitly; nothing reads
``os.environ`` at call time.
"""

import os
from dataclasses import dataclass

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./orders.db"


def current_env() -> str:
    return (os.getenv("APP_ENV") or os.getenv("ENV") or os.getenv("ENVIRONMENT") or "development").lower()


@dataclass(frozen=True)
class Settings:
    database_url: str = DEFAULT_DATABASE_URL
    env: str = "development"

    # Stock reservations live this long before the expiry sweep releases them.
    stock_reservation_ttl: int = 900
    order_number_prefix: str = "ORD"
    default_currency: str = "USD"

    tax_rate: float = 0.10
    shipping_base_rate: float = 5.99
    shipping_per_item_rate: float = 1.00
    free_shipping_threshold: float = 50.00

    pending_order_timeout_minutes: int = 30
    payment_gateway: str = "fake"
    event_publisher: str = "log"

    @property
    def is_production(self) -> bool:
        return self.env in ("production", "staging")

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL),
            env=current_env(),
            stock_reservation_ttl=int(os.getenv("STOCK_RESERVATION_TTL", "900")),
            order_number_prefix=os.getenv("ORDER_NUMBER_PREFIX", "ORD"),
            default_currency=os.getenv("DEFAULT_CURRENCY", "USD"),
            tax_rate=float(os.getenv("TAX_RATE", "0.10")),
            shipping_base_rate=float(os.getenv("SHIPPING_BASE_RATE", "5.99")),
            shipping_per_item_rate=float(os.getenv("SHIPPING_PER_ITEM_RATE", "1.00")),
            free_shipping_threshold=float(os.getenv("FREE_SHIPPING_THRESHOLD", "50.00")),
            pending_order_timeout_minutes=int(os.getenv("PENDING_ORDER_TIMEOUT_MINUTES", "30")),
            payment_gateway=os.getenv("PAYMENT_GATEWAY", "fake").lower(),
            event_publisher=os.getenv("EVENT_PUBLISHER", "log").lower(),
        )
