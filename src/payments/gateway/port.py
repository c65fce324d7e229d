"""Payment gateway port (abstract interface).

Defines the contract that all payment gateway adapters must implement.
A declined charge is a normal ``ChargeResult(success=False)``; an adapter
raises only when the gateway itself could not be reached or answered
nonsense. The processor records the two outcomes differently.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class ChargeResult:
    """Result of a payment charge attempt."""

    success: bool
    transaction_id: str | None = None
    gateway_status: str | None = None
    gateway_response: str | None = None
    failure_reason: str | None = None


@dataclass(frozen=True)
class RefundResult:
    """Result of a refund attempt."""

    success: bool
    refund_id: str | None = None
    gateway_status: str | None = None
    failure_reason: str | None = None


class GatewayUnavailableError(Exception):
    """The gateway could not be reached or returned an unusable answer."""


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    @abstractmethod
    async def tokenize_card(self, card_number: str, expiry_month: int, expiry_year: int, cvv: str) -> str:
        """Exchange raw card data for an opaque reusable token."""
        ...

    @abstractmethod
    async def create_charge(
        self,
        amount: float,
        currency: str,
        card_token: str,
        idempotency_key: str,
        description: str | None = None,
    ) -> ChargeResult:
        """Create a charge via the payment gateway."""
        ...

    @abstractmethod
    async def create_refund(
        self,
        transaction_id: str,
        amount: float,
        reason: str | None = None,
    ) -> RefundResult:
        """Refund (part of) a previous charge."""
        ...
