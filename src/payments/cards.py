"""Stored payment cards.

Raw card numbers never reach the database: the gateway turns them into a
token and only the token, brand, last four digits and expiry are kept.
"""

import re

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from payments.gateway import GatewayUnavailableError, PaymentGateway
from payments.models import OPEN_PAYMENT_STATUSES, CardBrand, Payment, PaymentCard
from shared.access import Action, Actor, ensure_can
from shared.clock import utcnow
from shared.errors import ConflictError, DependencyError, NotFoundError, ValidationError

logger = structlog.get_logger(__name__)

_BRAND_PATTERNS = [
    (CardBrand.VISA, re.compile(r"^4")),
    (CardBrand.MASTERCARD, re.compile(r"^5[1-5]")),
    (CardBrand.AMEX, re.compile(r"^3[47]")),
    (CardBrand.DISCOVER, re.compile(r"^6(?:011|5)")),
]


def normalize_card_number(card_number: str) -> str:
    return re.sub(r"\D", "", card_number)


def is_valid_card_number(card_number: str) -> bool:
    """Luhn checksum over the digits of ``card_number``."""
    digits = normalize_card_number(card_number)
    if not 13 <= len(digits) <= 19:
        return False

    total = 0
    for index, char in enumerate(reversed(digits)):
        digit = int(char)
        if index % 2 == 1:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit
    return total % 10 == 0


def detect_brand(card_number: str) -> CardBrand:
    digits = normalize_card_number(card_number)
    for brand, pattern in _BRAND_PATTERNS:
        if pattern.match(digits):
            return brand
    return CardBrand.OTHER


def is_expiry_valid(expiry_month: int, expiry_year: int) -> bool:
    if not 1 <= expiry_month <= 12:
        return False
    now = utcnow()
    return (expiry_year, expiry_month) >= (now.year, now.month)


class CardService:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], gateway: PaymentGateway) -> None:
        self._session_factory = session_factory
        self._gateway = gateway

    async def list_cards(self, customer_id: str) -> list[PaymentCard]:
        async with self._session_factory() as session:
            stmt = (
                select(PaymentCard)
                .where(PaymentCard.customer_id == customer_id, PaymentCard.deleted_at.is_(None))
                .order_by(PaymentCard.is_default.desc(), PaymentCard.created_at.desc())
            )
            return list((await session.scalars(stmt)).all())

    async def get_card(self, card_id: str, actor: Actor) -> PaymentCard:
        async with self._session_factory() as session:
            card = await self._load(session, card_id)
        ensure_can(actor, Action.MANAGE_CARDS, card)
        return card

    async def add_card(
        self,
        actor: Actor,
        card_holder_name: str,
        card_number: str,
        expiry_month: int,
        expiry_year: int,
        cvv: str,
        is_default: bool = False,
        nickname: str | None = None,
        billing_address_line1: str | None = None,
        billing_city: str | None = None,
        billing_postal_code: str | None = None,
        billing_country: str | None = None,
    ) -> PaymentCard:
        if not is_valid_card_number(card_number):
            raise ValidationError("Invalid card number", code="INVALID_CARD_NUMBER")
        if not is_expiry_valid(expiry_month, expiry_year):
            raise ValidationError("Card has expired", code="CARD_EXPIRED")

        digits = normalize_card_number(card_number)
        try:
            token = await self._gateway.tokenize_card(digits, expiry_month, expiry_year, cvv)
        except GatewayUnavailableError as exc:
            raise DependencyError("Payment gateway unavailable") from exc

        async with self._session_factory() as session:
            async with session.begin():
                if is_default:
                    await self._clear_default(session, actor.id)
                existing = await session.scalar(
                    select(func.count())
                    .select_from(PaymentCard)
                    .where(PaymentCard.customer_id == actor.id, PaymentCard.deleted_at.is_(None))
                )
                card = PaymentCard(
                    customer_id=actor.id,
                    card_holder_name=card_holder_name,
                    last_four=digits[-4:],
                    brand=detect_brand(digits).value,
                    expiry_month=expiry_month,
                    expiry_year=expiry_year,
                    token=token,
                    is_default=is_default or existing == 0,
                    nickname=nickname,
                    billing_address_line1=billing_address_line1,
                    billing_city=billing_city,
                    billing_postal_code=billing_postal_code,
                    billing_country=billing_country,
                )
                session.add(card)

        logger.info("Payment card added", customer_id=actor.id, card_id=card.id, brand=card.brand)
        return card

    async def remove_card(self, card_id: str, actor: Actor) -> bool:
        async with self._session_factory() as session:
            async with session.begin():
                card = await self._load(session, card_id)
                ensure_can(actor, Action.MANAGE_CARDS, card)

                open_payments = await session.scalar(
                    select(func.count())
                    .select_from(Payment)
                    .where(Payment.payment_card_id == card_id, Payment.status.in_(OPEN_PAYMENT_STATUSES))
                )
                if open_payments:
                    raise ConflictError("Cannot delete card with pending payments", code="CARD_IN_USE")

                card.deleted_at = utcnow()
                was_default = card.is_default
                card.is_default = False
                await session.flush()

                if was_default:
                    replacement = await session.scalar(
                        select(PaymentCard)
                        .where(PaymentCard.customer_id == card.customer_id, PaymentCard.deleted_at.is_(None))
                        .order_by(PaymentCard.created_at.desc())
                        .limit(1)
                    )
                    if replacement is not None:
                        replacement.is_default = True

        logger.info("Payment card removed", customer_id=card.customer_id, card_id=card_id)
        return True

    async def set_default_card(self, card_id: str, actor: Actor) -> PaymentCard:
        async with self._session_factory() as session:
            async with session.begin():
                card = await self._load(session, card_id)
                ensure_can(actor, Action.MANAGE_CARDS, card)
                await self._clear_default(session, card.customer_id, keep_id=card.id)
                card.is_default = True

        logger.info("Default card set", customer_id=card.customer_id, card_id=card_id)
        return card

    async def _load(self, session: AsyncSession, card_id: str) -> PaymentCard:
        card = await session.get(PaymentCard, card_id)
        if card is None or card.deleted_at is not None:
            raise NotFoundError("Payment card not found", details={"card_id": card_id})
        return card

    async def _clear_default(self, session: AsyncSession, customer_id: str, keep_id: str | None = None) -> None:
        stmt = update(PaymentCard).where(PaymentCard.customer_id == customer_id, PaymentCard.is_default.is_(True))
        if keep_id is not None:
            stmt = stmt.where(PaymentCard.id != keep_id)
        await session.execute(stmt.values(is_default=False).execution_options(synchronize_session=False))
