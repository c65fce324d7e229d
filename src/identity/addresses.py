"""Customer address book.

A customer keeps at most ten addresses with exactly one marked as the
default. Ordering reads addresses through ``AddressBook.get_user_address``
and snapshots them into the order.
"""

from datetime import datetime
from enum import Enum
from uuid import uuid4

import structlog
from sqlalchemy import Boolean, DateTime, String, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import Mapped, mapped_column

from shared.clock import utcnow
from shared.contracts.identity import Address
from shared.database import Base
from shared.errors import NotFoundError, ValidationError

logger = structlog.get_logger(__name__)

MAX_ADDRESSES = 10


class AddressLabel(Enum):
    HOME = "home"
    WORK = "work"
    OTHER = "other"


class UserAddress(Base):
    __tablename__ = "user_addresses"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    label: Mapped[str] = mapped_column(String(20), nullable=False, default=AddressLabel.HOME.value)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(30), nullable=True)
    address_line1: Mapped[str] = mapped_column(String(255), nullable=False)
    address_line2: Mapped[str | None] = mapped_column(String(255), nullable=True)
    city: Mapped[str] = mapped_column(String(100), nullable=False)
    state: Mapped[str | None] = mapped_column(String(100), nullable=True)
    postal_code: Mapped[str] = mapped_column(String(20), nullable=False)
    country: Mapped[str] = mapped_column(String(100), nullable=False)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    def to_contract(self) -> Address:
        return Address(
            id=self.id,
            user_id=self.user_id,
            full_name=self.full_name,
            phone=self.phone,
            address_line1=self.address_line1,
            address_line2=self.address_line2,
            city=self.city,
            state=self.state,
            postal_code=self.postal_code,
            country=self.country,
        )


class AddressBook:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get_user_address(self, user_id: str, address_id: str) -> Address | None:
        async with self._session_factory() as session:
            address = await session.get(UserAddress, address_id)
        if address is None or address.user_id != user_id:
            return None
        return address.to_contract()

    async def list_addresses(self, user_id: str) -> list[UserAddress]:
        async with self._session_factory() as session:
            stmt = (
                select(UserAddress)
                .where(UserAddress.user_id == user_id)
                .order_by(UserAddress.is_default.desc(), UserAddress.created_at)
            )
            return list((await session.scalars(stmt)).all())

    async def add_address(
        self,
        user_id: str,
        full_name: str,
        address_line1: str,
        city: str,
        postal_code: str,
        country: str,
        phone: str | None = None,
        address_line2: str | None = None,
        state: str | None = None,
        label: AddressLabel = AddressLabel.HOME,
        is_default: bool = False,
    ) -> UserAddress:
        async with self._session_factory() as session:
            async with session.begin():
                count = await session.scalar(
                    select(func.count()).select_from(UserAddress).where(UserAddress.user_id == user_id)
                )
                if count >= MAX_ADDRESSES:
                    raise ValidationError(
                        f"Cannot have more than {MAX_ADDRESSES} addresses", code="ADDRESS_LIMIT_REACHED"
                    )

                # The first address is always the default.
                make_default = is_default or count == 0
                if make_default:
                    await self._clear_default(session, user_id)

                address = UserAddress(
                    user_id=user_id,
                    label=label.value,
                    full_name=full_name,
                    phone=phone,
                    address_line1=address_line1,
                    address_line2=address_line2,
                    city=city,
                    state=state,
                    postal_code=postal_code,
                    country=country,
                    is_default=make_default,
                )
                session.add(address)

        logger.info("Address added", user_id=user_id, address_id=address.id, is_default=make_default)
        return address

    async def set_default_address(self, user_id: str, address_id: str) -> UserAddress:
        async with self._session_factory() as session:
            async with session.begin():
                address = await session.get(UserAddress, address_id)
                if address is None or address.user_id != user_id:
                    raise NotFoundError("Address not found", details={"address_id": address_id})
                await self._clear_default(session, user_id, keep_id=address.id)
                address.is_default = True
        return address

    async def _clear_default(self, session: AsyncSession, user_id: str, keep_id: str | None = None) -> None:
        await session.execute(
            update(UserAddress)
            .where(
                UserAddress.user_id == user_id,
                UserAddress.is_default.is_(True),
                UserAddress.id != (keep_id or ""),
            )
            .values(is_default=False)
            .execution_options(synchronize_session=False)
        )
