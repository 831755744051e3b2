"""Application dispatch – InMemoryEventPublisher."""

from __future__ import annotations

from typing import Iterable

from mp_eventbus.application.dispatch.registry import HandlerRegistry, handler_name
from mp_eventbus.kernel.events import DomainEvent
from mp_eventbus.kernel.messaging import DomainEventHandler, EventPublisher
from mp_eventbus.observability.logging import get_logger

logger = get_logger(__name__)


class InMemoryEventPublisher(EventPublisher):
    """Dispatch events to the handlers held by a :class:`HandlerRegistry`.

    Handlers for one event run sequentially in registration order.  A
    missing handler is logged and ignored; a failing handler is logged and
    re-raised (fail-fast) so the caller can roll back.
    """

    def __init__(self, registry: HandlerRegistry) -> None:
        self._registry = registry

    async def publish(self, event: DomainEvent) -> None:
        if event is None:
            raise ValueError("event must not be None")

        handlers = self._registry.handlers_for(event.event_type)
        if not handlers:
            logger.warning("dispatch.no_handlers", event_type=event.event_type, event_id=str(event.event_id))
            return

        for handler in handlers:
            name = handler_name(handler)
            try:
                if isinstance(handler, DomainEventHandler):
                    await handler.handle(event)
                else:
                    await handler(event)
            except Exception:
                logger.exception(
                    "dispatch.handler_failed",
                    handler=name,
                    event_type=event.event_type,
                    event_id=str(event.event_id),
                )
                raise
            logger.debug("dispatch.handler_completed", handler=name, event_type=event.event_type)

    async def publish_batch(self, events: Iterable[DomainEvent]) -> None:
        events = list(events)
        if not events:
            logger.debug("dispatch.empty_batch")
            return
        for event in events:
            await self.publish(event)


__all__ = ["InMemoryEventPublisher"]
