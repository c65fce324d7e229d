"""Charging and refunding orders.

``process_payment`` commits a PROCESSING row before it calls the gateway, so
there is never a charge without a local record. The row is then moved to
COMPLETED or FAILED in a second transaction. A process that dies between the
two leaves the row in PROCESSING for reconciliation.
"""

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from payments.gateway import GatewayUnavailableError, PaymentGateway
from payments.models import FailureCode, Payment, PaymentCard, PaymentMethod, PaymentStatus
from shared.access import Action, Actor, ensure_can
from shared.clock import utcnow
from shared.errors import ConflictError, DependencyError, ForbiddenError, NotFoundError, ValidationError

logger = structlog.get_logger(__name__)


class PaymentProcessor:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        gateway: PaymentGateway,
        default_currency: str = "USD",
    ) -> None:
        self._session_factory = session_factory
        self.gateway = gateway
        self.default_currency = default_currency

    async def get_usable_card(self, card_id: str, customer_id: str) -> PaymentCard:
        """Return the customer's card, refusing missing, foreign or expired ones."""
        async with self._session_factory() as session:
            card = await session.get(PaymentCard, card_id)
        if card is None or card.deleted_at is not None:
            raise NotFoundError("Payment card not found", details={"card_id": card_id})
        if card.customer_id != customer_id:
            raise ForbiddenError("Access denied", details={"card_id": card_id})
        if card.is_expired():
            raise ValidationError("Card has expired", code="CARD_EXPIRED", details={"card_id": card_id})
        return card

    async def process_payment(
        self,
        order_id: str,
        customer_id: str,
        card_id: str,
        amount: float,
        currency: str | None = None,
    ) -> Payment:
        """Charge ``amount`` to a stored card.

        Returns the payment in COMPLETED or FAILED. Declines and gateway
        errors are recorded on the row, not raised.
        """
        card = await self.get_usable_card(card_id, customer_id)
        currency = currency or self.default_currency

        try:
            async with self._session_factory() as session:
                async with session.begin():
                    payment = Payment(
                        order_id=order_id,
                        customer_id=customer_id,
                        payment_card_id=card_id,
                        amount=amount,
                        currency=currency,
                        method=PaymentMethod.CARD.value,
                        status=PaymentStatus.PROCESSING.value,
                    )
                    session.add(payment)
        except SQLAlchemyError as exc:
            # Nothing was charged: no record, no gateway call.
            raise DependencyError("Payment store unavailable", details={"order_id": order_id}) from exc

        logger.info("Payment processing", payment_id=payment.id, order_id=order_id, amount=amount)

        changes: dict = {}
        try:
            result = await self.gateway.create_charge(
                amount=amount,
                currency=currency,
                card_token=card.token,
                idempotency_key=payment.id,
                description=f"Order {order_id}",
            )
        except Exception:
            logger.exception("Payment gateway error", payment_id=payment.id, order_id=order_id)
            changes.update(
                status=PaymentStatus.FAILED.value,
                failure_reason="Payment gateway unavailable",
                failure_code=FailureCode.GATEWAY_ERROR.value,
            )
        else:
            if result.success:
                changes.update(
                    status=PaymentStatus.COMPLETED.value,
                    transaction_id=result.transaction_id,
                    gateway_response=result.gateway_response,
                    processed_at=utcnow(),
                )
                logger.info("Payment completed", payment_id=payment.id, order_id=order_id)
            else:
                changes.update(
                    status=PaymentStatus.FAILED.value,
                    failure_reason=result.failure_reason,
                    failure_code=FailureCode.CARD_DECLINED.value,
                    gateway_response=result.gateway_response,
                )
                logger.warning(
                    "Payment declined", payment_id=payment.id, order_id=order_id, reason=result.failure_reason
                )

        return await self._save(payment, **changes)

    async def process_refund(
        self,
        payment_id: str,
        amount: float,
        reason: str | None = None,
        actor: Actor | None = None,
    ) -> Payment:
        """Refund part or all of a completed payment.

        Rejected refunds leave the payment untouched.
        """
        if amount <= 0:
            raise ValidationError("Refund amount must be positive", code="INVALID_REFUND_AMOUNT")

        payment = await self.get_payment(payment_id)
        if actor is not None:
            ensure_can(actor, Action.REFUND_PAYMENT, payment)

        if payment.status != PaymentStatus.COMPLETED.value:
            raise ConflictError(
                "Can only refund completed payments",
                code="PAYMENT_NOT_REFUNDABLE",
                details={"payment_id": payment_id, "status": payment.status},
            )

        total_refunded = round((payment.refunded_amount or 0.0) + amount, 2)
        if total_refunded > payment.amount:
            raise ValidationError(
                f"Refund total ({total_refunded}) would exceed payment amount ({payment.amount})",
                code="REFUND_EXCEEDS_PAYMENT",
                details={"payment_id": payment_id},
            )

        try:
            result = await self.gateway.create_refund(
                transaction_id=payment.transaction_id,
                amount=amount,
                reason=reason,
            )
        except GatewayUnavailableError as exc:
            raise DependencyError("Payment gateway unavailable", details={"payment_id": payment_id}) from exc

        if not result.success:
            raise DependencyError(
                f"Refund failed: {result.failure_reason}", code="REFUND_FAILED", details={"payment_id": payment_id}
            )

        status = PaymentStatus.REFUNDED if total_refunded >= payment.amount else PaymentStatus.PARTIALLY_REFUNDED
        payment = await self._save(
            payment, refunded_amount=total_refunded, refund_reason=reason, status=status.value
        )
        logger.info("Refund processed", payment_id=payment_id, amount=amount, status=status.value)
        return payment

    async def get_payment(self, payment_id: str) -> Payment:
        async with self._session_factory() as session:
            payment = await session.get(Payment, payment_id)
        if payment is None:
            raise NotFoundError("Payment not found", details={"payment_id": payment_id})
        return payment

    async def get_payment_by_order(self, order_id: str) -> Payment | None:
        async with self._session_factory() as session:
            stmt = (
                select(Payment)
                .where(Payment.order_id == order_id)
                .order_by(Payment.created_at.desc())
                .limit(1)
            )
            return await session.scalar(stmt)

    async def list_customer_payments(self, customer_id: str) -> list[Payment]:
        async with self._session_factory() as session:
            stmt = select(Payment).where(Payment.customer_id == customer_id).order_by(Payment.created_at.desc())
            return list((await session.scalars(stmt)).all())

    async def _save(self, payment: Payment, **changes) -> Payment:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    session.add(payment)
                    for field, value in changes.items():
                        setattr(payment, field, value)
        except SQLAlchemyError as exc:
            logger.error("Failed to record payment outcome", payment_id=payment.id, changes=changes)
            raise DependencyError("Payment store unavailable", details={"payment_id": payment.id}) from exc
        return payment
