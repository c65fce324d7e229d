"""Event publisher port and its in-process adapters.

Publishing happens after the state change it describes has committed. A
publisher failure is logged and never undoes or fails the operation.
"""

from abc import ABC, abstractmethod

import structlog

from shared.events.ordering import OrderEvent

logger = structlog.get_logger(__name__)


class EventPublisher(ABC):
    @abstractmethod
    async def publish(self, event: OrderEvent) -> None: ...

    async def publish_all(self, events: list[OrderEvent]) -> None:
        for event in events:
            try:
                await self.publish(event)
            except Exception:
                logger.exception(
                    "Failed to publish event",
                    event_type=event.__type__,
                    routing_key=event.routing_key,
                    order_id=event.order_id,
                )


class LoggingPublisher(EventPublisher):
    """Writes each event envelope to the log. The default outside tests."""

    async def publish(self, event: OrderEvent) -> None:
        logger.info(
            "Event published",
            event_type=event.__type__,
            routing_key=event.routing_key,
            message=event.to_message(),
        )


class InMemoryPublisher(EventPublisher):
    """Keeps published events in order of publication."""

    def __init__(self) -> None:
        self.published: list[OrderEvent] = []

    async def publish(self, event: OrderEvent) -> None:
        self.published.append(event)

    def of_type(self, event_type: str) -> list[OrderEvent]:
        return [event for event in self.published if event.__type__ == event_type]

    def clear(self) -> None:
        self.published.clear()


def build_publisher(name: str) -> EventPublisher:
    if name == "log":
        return LoggingPublisher()
    if name == "memory":
        return InMemoryPublisher()
    raise ValueError(f"Unknown event publisher: {name}")
