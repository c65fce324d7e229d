"""Persistence for orders, their lines and their status history.

Status changes go through ``transition``: a conditional update on the
expected current status plus the history row, in one transaction. A caller
that lost a race gets a ``ConflictError`` instead of silently overwriting.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ordering.order.models import Order, OrderItem, OrderSequence, OrderStatusHistory
from ordering.order.states import OrderItemStatus, OrderPaymentStatus, OrderStatus
from shared.clock import utcnow
from shared.database import insert_for
from shared.errors import ConflictError, NotFoundError
from shared.pagination import Page, PageRequest

logger = structlog.get_logger(__name__)

_REVENUE_EXCLUDED = (OrderStatus.CANCELLED.value, OrderStatus.REFUNDED.value, OrderStatus.FAILED.value)
_OPEN_STATUSES = (OrderStatus.PENDING.value, OrderStatus.CONFIRMED.value, OrderStatus.PROCESSING.value)


@dataclass(frozen=True)
class OrderFilter:
    status: OrderStatus | None = None
    payment_status: OrderPaymentStatus | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None


@dataclass(frozen=True)
class OrderStats:
    total_orders: int
    pending_orders: int
    completed_orders: int
    cancelled_orders: int
    total_revenue: float


class OrderLedger:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    # ------------------------------------------------------------------
    # Order numbers
    # ------------------------------------------------------------------
    async def next_order_number(self, prefix: str, today: datetime | None = None) -> str:
        """``{prefix}-{YYMMDD}-{seq:04d}`` from an atomically incremented per-day counter."""
        day = (today or utcnow()).strftime("%y%m%d")
        table = OrderSequence.__table__
        async with self._session_factory() as session:
            async with session.begin():
                stmt = (
                    insert_for(session, table)
                    .values(day=day, value=1)
                    .on_conflict_do_update(index_elements=[table.c.day], set_={"value": table.c.value + 1})
                    .returning(table.c.value)
                )
                value = (await session.execute(stmt)).scalar_one()
        return f"{prefix}-{day}-{value:04d}"

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    async def create(self, order: Order) -> Order:
        async with self._session_factory() as session:
            async with session.begin():
                session.add(order)
        logger.info("Order created", order_id=order.id, order_number=order.order_number)
        return await self.get_or_raise(order.id)

    async def transition(
        self,
        order_id: str,
        from_status: OrderStatus,
        to_status: OrderStatus,
        reason: str | None = None,
        changed_by: str | None = None,
        details: dict[str, Any] | None = None,
        **changes: Any,
    ) -> Order:
        """Move an order from ``from_status`` to ``to_status`` and append one history row."""
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    update(Order)
                    .where(Order.id == order_id, Order.status == from_status.value)
                    .values(status=to_status.value, updated_at=utcnow(), **changes)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    raise ConflictError(
                        f"Order is no longer {from_status.value}",
                        code="ORDER_STATUS_CHANGED",
                        details={"order_id": order_id, "expected": from_status.value},
                    )
                session.add(
                    OrderStatusHistory(
                        order_id=order_id,
                        from_status=from_status.value,
                        to_status=to_status.value,
                        reason=reason,
                        changed_by=changed_by,
                        details=details,
                    )
                )
        logger.info(
            "Order status changed",
            order_id=order_id,
            from_status=from_status.value,
            to_status=to_status.value,
            changed_by=changed_by,
        )
        return await self.get_or_raise(order_id)

    async def update(self, order_id: str, **changes: Any) -> Order:
        """Change columns other than ``status``; status changes go through ``transition``."""
        async with self._session_factory() as session:
            async with session.begin():
                await session.execute(
                    update(Order)
                    .where(Order.id == order_id)
                    .values(updated_at=utcnow(), **changes)
                    .execution_options(synchronize_session=False)
                )
        return await self.get_or_raise(order_id)

    async def transition_item(
        self, item_id: str, from_status: OrderItemStatus, to_status: OrderItemStatus, **changes: Any
    ) -> OrderItem:
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    update(OrderItem)
                    .where(OrderItem.id == item_id, OrderItem.status == from_status.value)
                    .values(status=to_status.value, updated_at=utcnow(), **changes)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    raise ConflictError(
                        f"Order item is no longer {from_status.value}",
                        code="ORDER_ITEM_STATUS_CHANGED",
                        details={"item_id": item_id, "expected": from_status.value},
                    )
        return await self.get_item(item_id)

    async def update_items_of(self, order_id: str, **changes: Any) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                await session.execute(
                    update(OrderItem)
                    .where(OrderItem.order_id == order_id)
                    .values(updated_at=utcnow(), **changes)
                    .execution_options(synchronize_session=False)
                )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    async def get(self, order_id: str) -> Order | None:
        async with self._session_factory() as session:
            return await session.get(Order, order_id)

    async def get_or_raise(self, order_id: str) -> Order:
        order = await self.get(order_id)
        if order is None:
            raise NotFoundError("Order not found", details={"order_id": order_id})
        return order

    async def get_by_number(self, order_number: str) -> Order | None:
        async with self._session_factory() as session:
            return await session.scalar(select(Order).where(Order.order_number == order_number))

    async def get_item(self, item_id: str) -> OrderItem | None:
        async with self._session_factory() as session:
            return await session.get(OrderItem, item_id)

    async def history_for(self, order_id: str) -> list[OrderStatusHistory]:
        async with self._session_factory() as session:
            stmt = (
                select(OrderStatusHistory)
                .where(OrderStatusHistory.order_id == order_id)
                .order_by(OrderStatusHistory.id)
            )
            return list((await session.scalars(stmt)).all())

    async def find_by_customer(
        self, customer_id: str, filters: OrderFilter | None = None, page: PageRequest | None = None
    ) -> Page[Order]:
        return await self._paginate(filters, page, Order.customer_id == customer_id)

    async def find_by_vendor(
        self, vendor_id: str, filters: OrderFilter | None = None, page: PageRequest | None = None
    ) -> Page[Order]:
        return await self._paginate(filters, page, Order.id.in_(self._vendor_order_ids(vendor_id)))

    async def find_all(self, filters: OrderFilter | None = None, page: PageRequest | None = None) -> Page[Order]:
        return await self._paginate(filters, page)

    async def find_stale_pending(self, cutoff: datetime) -> list[Order]:
        """Pending orders created at or before ``cutoff`` that never got a payment attached."""
        async with self._session_factory() as session:
            stmt = (
                select(Order)
                .where(
                    Order.status == OrderStatus.PENDING.value,
                    Order.payment_id.is_(None),
                    Order.created_at <= cutoff,
                )
                .order_by(Order.created_at)
            )
            return list((await session.scalars(stmt)).all())

    async def stats(
        self, vendor_id: str | None = None, start_date: datetime | None = None, end_date: datetime | None = None
    ) -> OrderStats:
        conditions = self._conditions(OrderFilter(start_date=start_date, end_date=end_date))
        if vendor_id is not None:
            conditions.append(Order.id.in_(self._vendor_order_ids(vendor_id)))

        async with self._session_factory() as session:

            async def count(*extra) -> int:
                stmt = select(func.count()).select_from(Order).where(*conditions, *extra)
                return await session.scalar(stmt) or 0

            total = await count()
            pending = await count(Order.status.in_(_OPEN_STATUSES))
            completed = await count(Order.status == OrderStatus.DELIVERED.value)
            cancelled = await count(Order.status == OrderStatus.CANCELLED.value)
            revenue = await session.scalar(
                select(func.coalesce(func.sum(Order.total_amount), 0)).where(
                    *conditions, Order.status.not_in(_REVENUE_EXCLUDED)
                )
            )

        return OrderStats(
            total_orders=total,
            pending_orders=pending,
            completed_orders=completed,
            cancelled_orders=cancelled,
            total_revenue=round(float(revenue or 0), 2),
        )

    @staticmethod
    def _vendor_order_ids(vendor_id: str):
        return select(OrderItem.order_id).where(OrderItem.vendor_id == vendor_id)

    @staticmethod
    def _conditions(filters: OrderFilter | None) -> list:
        conditions = []
        if filters is None:
            return conditions
        if filters.status is not None:
            conditions.append(Order.status == filters.status.value)
        if filters.payment_status is not None:
            conditions.append(Order.payment_status == filters.payment_status.value)
        if filters.start_date is not None:
            conditions.append(Order.created_at >= filters.start_date)
        if filters.end_date is not None:
            conditions.append(Order.created_at <= filters.end_date)
        return conditions

    async def _paginate(self, filters: OrderFilter | None, page: PageRequest | None, *extra) -> Page[Order]:
        page = page or PageRequest()
        conditions = [*self._conditions(filters), *extra]
        async with self._session_factory() as session:
            total = await session.scalar(select(func.count()).select_from(Order).where(*conditions)) or 0
            stmt = (
                select(Order)
                .where(*conditions)
                .order_by(Order.created_at.desc(), Order.order_number.desc())
                .offset(page.offset)
                .limit(page.limit)
            )
            orders = list((await session.scalars(stmt)).all())
        return Page.build(orders, total, page)
