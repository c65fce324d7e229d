"""Stock reservation records.

A reservation remembers which quantities were taken out of stock for one
checkout so they can be put back on release or expiry. The store is injected
into ``InventoryService``; it never lives in module state. Every method runs
inside the caller's session so the record and the stock change commit
together.
"""

import json
import time
from abc import ABC, abstractmethod
from datetime import datetime
from uuid import uuid4

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from inventory.models import StockReservationRecord
from shared.contracts.inventory import StockLine


def new_reservation_id() -> str:
    return f"res_{int(time.time() * 1000)}_{uuid4().hex[:9]}"


class ReservationStore(ABC):
    """Key/value store of reservation records with an expiry time."""

    @abstractmethod
    async def add(
        self, session: AsyncSession, reservation_id: str, lines: list[StockLine], expires_at: datetime
    ) -> None: ...

    @abstractmethod
    async def pop(self, session: AsyncSession, reservation_id: str) -> list[StockLine] | None:
        """Remove the record and return its lines, or None when there is none."""
        ...

    @abstractmethod
    async def discard(self, session: AsyncSession, reservation_id: str) -> bool:
        """Remove the record without returning anything. True when it existed."""
        ...

    @abstractmethod
    async def expired_ids(self, session: AsyncSession, as_of: datetime) -> list[str]: ...


class SqlReservationStore(ReservationStore):
    """Reservation records kept in the ``stock_reservations`` table."""

    async def add(
        self, session: AsyncSession, reservation_id: str, lines: list[StockLine], expires_at: datetime
    ) -> None:
        session.add(
            StockReservationRecord(
                id=reservation_id,
                items=json.dumps([line.as_dict() for line in lines]),
                expires_at=expires_at,
            )
        )
        await session.flush()

    async def pop(self, session: AsyncSession, reservation_id: str) -> list[StockLine] | None:
        # DELETE first: concurrent pops of the same id cannot both see the row.
        stmt = (
            delete(StockReservationRecord)
            .where(StockReservationRecord.id == reservation_id)
            .returning(StockReservationRecord.items)
            .execution_options(synchronize_session=False)
        )
        items = (await session.execute(stmt)).scalar_one_or_none()
        if items is None:
            return None
        return [StockLine.from_dict(item) for item in json.loads(items)]

    async def discard(self, session: AsyncSession, reservation_id: str) -> bool:
        stmt = (
            delete(StockReservationRecord)
            .where(StockReservationRecord.id == reservation_id)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.rowcount > 0

    async def expired_ids(self, session: AsyncSession, as_of: datetime) -> list[str]:
        stmt = select(StockReservationRecord.id).where(StockReservationRecord.expires_at <= as_of)
        return list((await session.scalars(stmt)).all())
