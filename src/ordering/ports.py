"""What ordering needs from the other contexts.

Ordering talks to inventory, identity and payments only through these
protocols. The in-process services satisfy them structurally; a remote
client would only have to provide the same coroutines.
"""

from typing import Any, Protocol

from shared.contracts.identity import Address
from shared.contracts.inventory import ReservationResult, StockCheckResponse, StockLine


class StockClient(Protocol):
    async def get_product_by_slug(self, slug: str) -> Any | None: ...

    async def get_vendor_product(self, vendor_product_id: str) -> Any | None: ...

    async def check_stock(self, lines: list[StockLine]) -> StockCheckResponse: ...

    async def reserve_stock(
        self, reservation_id: str, lines: list[StockLine], ttl_seconds: int | None = None
    ) -> ReservationResult: ...

    async def release_stock(self, reservation_id: str) -> bool: ...

    async def discard_reservation(self, reservation_id: str) -> bool: ...


class AddressDirectory(Protocol):
    async def get_user_address(self, user_id: str, address_id: str) -> Address | None: ...


class PaymentClient(Protocol):
    async def get_usable_card(self, card_id: str, customer_id: str) -> Any: ...

    async def process_payment(
        self, order_id: str, customer_id: str, card_id: str, amount: float, currency: str | None = None
    ) -> Any: ...

    async def process_refund(self, payment_id: str, amount: float, reason: str | None = None, actor: Any = None) -> Any: ...

    async def get_payment_by_order(self, order_id: str) -> Any | None: ...
