"""Address record handed from identity to ordering.

Ordering snapshots the address into the order; later edits to the address
book never reach an existing order.
"""

from dataclasses import asdict, dataclass


@dataclass(frozen=True)
class Address:
    id: str
    user_id: str
    full_name: str
    address_line1: str
    city: str
    postal_code: str
    country: str
    phone: str | None = None
    address_line2: str | None = None
    state: str | None = None

    def snapshot(self) -> dict:
        data = asdict(self)
        data.pop("user_id")
        return data
