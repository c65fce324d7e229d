"""Service wiring.

Builds every service once from ``Settings`` and hands them around as one
``Services`` object. The FastAPI app, the management CLI and the tests all
start from ``build_services``.
"""

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from identity.addresses import AddressBook
from inventory.service import InventoryService
from inventory.stock.reservation import SqlReservationStore
from ordering.cart.service import CartService
from ordering.cart.validation import CartValidator
from ordering.checkout.reconciliation import StaleOrderReconciler
from ordering.checkout.saga import OrderCoordinator
from ordering.order.ledger import OrderLedger
from ordering.order.management import OrderService
from payments.cards import CardService
from payments.gateway import PaymentGateway, build_gateway
from payments.processor import PaymentProcessor
from shared.config import Settings
from shared.database import create_engine, create_session_factory, drop_db, setup_db
from shared.events.publisher import EventPublisher, build_publisher


@dataclass
class Services:
    settings: Settings
    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    gateway: PaymentGateway
    publisher: EventPublisher
    inventory: InventoryService
    addresses: AddressBook
    cards: CardService
    payments: PaymentProcessor
    carts: CartService
    validator: CartValidator
    ledger: OrderLedger
    orders: OrderService
    checkout: OrderCoordinator
    reconciler: StaleOrderReconciler

    async def setup_db(self) -> None:
        await setup_db(self.engine)

    async def drop_db(self) -> None:
        await drop_db(self.engine)

    async def close(self) -> None:
        await self.engine.dispose()


def build_services(
    settings: Settings | None = None,
    gateway: PaymentGateway | None = None,
    publisher: EventPublisher | None = None,
) -> Services:
    settings = settings or Settings.from_env()
    engine = create_engine(settings.database_url)
    session_factory = create_session_factory(engine)
    gateway = gateway or build_gateway(settings.payment_gateway)
    publisher = publisher or build_publisher(settings.event_publisher)

    inventory = InventoryService(session_factory, SqlReservationStore(), default_ttl=settings.stock_reservation_ttl)
    addresses = AddressBook(session_factory)
    payments = PaymentProcessor(session_factory, gateway, default_currency=settings.default_currency)
    carts = CartService(session_factory, inventory, default_currency=settings.default_currency)
    validator = CartValidator(carts, inventory)
    ledger = OrderLedger(session_factory)

    return Services(
        settings=settings,
        engine=engine,
        session_factory=session_factory,
        gateway=gateway,
        publisher=publisher,
        inventory=inventory,
        addresses=addresses,
        cards=CardService(session_factory, gateway),
        payments=payments,
        carts=carts,
        validator=validator,
        ledger=ledger,
        orders=OrderService(ledger, inventory, payments, publisher),
        checkout=OrderCoordinator(settings, carts, validator, addresses, inventory, payments, ledger, publisher),
        reconciler=StaleOrderReconciler(
            ledger, inventory, payments, timeout_minutes=settings.pending_order_timeout_minutes
        ),
    )
