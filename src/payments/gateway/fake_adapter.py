"""Configurable fake payment gateway for development and testing.

This adapter simulates a real payment gateway without any external calls.
It can be configured at runtime to succeed, decline or blow up, making it
useful for:
- Manual API testing via /payments/gateway/configure
- Automated tests with predictable outcomes
- Development without real gateway credentials
"""

from uuid import uuid4

from payments.gateway.port import ChargeResult, GatewayUnavailableError, PaymentGateway, RefundResult


class FakeGateway(PaymentGateway):
    """Configurable fake payment gateway."""

    def __init__(self) -> None:
        self.should_succeed: bool = True
        self.failure_reason: str = "Card declined"
        self.unavailable: bool = False
        self.calls: list[dict] = []

    def configure(
        self,
        should_succeed: bool = True,
        failure_reason: str = "Card declined",
        unavailable: bool = False,
    ) -> None:
        """Configure gateway behavior at runtime."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.unavailable = unavailable

    def calls_to(self, method: str) -> list[dict]:
        return [call for call in self.calls if call["method"] == method]

    async def tokenize_card(self, card_number: str, expiry_month: int, expiry_year: int, cvv: str) -> str:  # noqa: ARG002
        self.calls.append({"method": "tokenize_card", "last_four": card_number[-4:]})
        if self.unavailable:
            raise GatewayUnavailableError("Fake gateway is configured as unavailable")
        return f"fake_tok_{uuid4().hex[:16]}"

    async def create_charge(
        self,
        amount: float,
        currency: str,
        card_token: str,
        idempotency_key: str,
        description: str | None = None,
    ) -> ChargeResult:
        call = {
            "method": "create_charge",
            "amount": amount,
            "currency": currency,
            "card_token": card_token,
            "idempotency_key": idempotency_key,
            "description": description,
        }
        self.calls.append(call)

        if self.unavailable:
            raise GatewayUnavailableError("Fake gateway is configured as unavailable")
        if self.should_succeed:
            return ChargeResult(
                success=True,
                transaction_id=f"fake_txn_{uuid4().hex[:12]}",
                gateway_status="succeeded",
                gateway_response="Charge successful",
            )
        return ChargeResult(
            success=False,
            gateway_status="failed",
            gateway_response="Charge declined",
            failure_reason=self.failure_reason,
        )

    async def create_refund(
        self,
        transaction_id: str,
        amount: float,
        reason: str | None = None,
    ) -> RefundResult:
        call = {
            "method": "create_refund",
            "transaction_id": transaction_id,
            "amount": amount,
            "reason": reason,
        }
        self.calls.append(call)

        if self.unavailable:
            raise GatewayUnavailableError("Fake gateway is configured as unavailable")
        if self.should_succeed:
            return RefundResult(
                success=True,
                refund_id=f"fake_ref_{uuid4().hex[:12]}",
                gateway_status="succeeded",
            )
        return RefundResult(
            success=False,
            failure_reason=self.failure_reason,
        )
