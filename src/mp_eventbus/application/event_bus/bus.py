"""Application event bus – EventBus orchestrator and its factory."""
from __future__ import annotations

from typing import Iterable

from mp_eventbus.config import EventBusMode, EventBusSettings
from mp_eventbus.kernel.errors import ConfigError
from mp_eventbus.kernel.events import DomainEvent
from mp_eventbus.kernel.messaging import EventPublisher, EventStore
from mp_eventbus.observability.logging import get_logger

logger = get_logger(__name__)


class EventBus:
    """Public façade that application code raises domain events through.

    The mode is fixed at construction:

    * ``IN_MEMORY`` – dispatch to in-process handlers only.
    * ``PERSISTENT`` – write to the outbox only; the relay delivers later.
    * ``HYBRID`` – dispatch in-process first, then write to the outbox.
      The outbox leg is for the broker only; local handlers never run twice.

    Exceptions from either leg propagate so the caller's unit of work can
    roll back.  The bus holds no mutable state; the store is the only thing
    it shares with the outbox relay.
    """

    def __init__(
        self,
        mode: EventBusMode | str,
        *,
        event_publisher: EventPublisher | None = None,
        event_store: EventStore | None = None,
    ) -> None:
        self.mode = EventBusMode(mode)
        if self.mode.dispatches_in_process and event_publisher is None:
            raise ConfigError(f"EventBus mode {self.mode.value!r} requires an event_publisher")
        if self.mode.persists and event_store is None:
            raise ConfigError(f"EventBus mode {self.mode.value!r} requires an event_store")
        # Collaborators the mode does not use are dropped.
        self._publisher = event_publisher if self.mode.dispatches_in_process else None
        self._store = event_store if self.mode.persists else None

    async def publish(self, event: DomainEvent) -> None:
        if event is None:
            raise ValueError("event must not be None")

        if self._publisher is not None:
            await self._publisher.publish(event)
        if self._store is not None:
            await self._store.save_event(event)

        logger.debug(
            "event_bus.published",
            mode=self.mode.value,
            event_type=event.event_type,
            event_id=str(event.event_id),
        )

    async def publish_all(self, events: Iterable[DomainEvent]) -> None:
        """Publish *events* in the order supplied.

        Each event is dispatched in-process in turn; the outbox write for the
        whole list is a single ``save_events`` call.
        """
        events = list(events)
        if not events:
            return

        if self._publisher is not None:
            for event in events:
                await self._publisher.publish(event)
        if self._store is not None:
            await self._store.save_events(events)

        logger.debug("event_bus.published_batch", mode=self.mode.value, count=len(events))


def create_event_bus(
    settings: EventBusSettings | None = None,
    *,
    event_publisher: EventPublisher | None = None,
    event_store: EventStore | None = None,
) -> EventBus:
    """Build an :class:`EventBus` in the mode chosen by *settings*.

    Collaborators the mode does not use are ignored.
    """
    settings = settings or EventBusSettings()
    bus = EventBus(settings.mode, event_publisher=event_publisher, event_store=event_store)
    logger.info("event_bus.created", mode=bus.mode.value)
    return bus


__all__ = ["EventBus", "create_event_bus"]
