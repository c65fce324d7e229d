"""Payment gateway factory.

``build_gateway(name)`` returns the adapter selected by the
``PAYMENT_GATEWAY`` setting. Only the fake adapter ships with the platform.
"""

from payments.gateway.fake_adapter import FakeGateway
from payments.gateway.port import ChargeResult, GatewayUnavailableError, PaymentGateway, RefundResult


def build_gateway(name: str = "fake") -> PaymentGateway:
    """Return a new gateway adapter for the given name."""
    if name == "fake":
        return FakeGateway()
    raise ValueError(f"Unknown payment gateway adapter: {name}")


__all__ = [
    "ChargeResult",
    "FakeGateway",
    "GatewayUnavailableError",
    "PaymentGateway",
    "RefundResult",
    "build_gateway",
]
