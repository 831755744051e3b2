"""Application dispatch – MediatorEventPublisher."""

from __future__ import annotations

from typing import Any, Iterable, Protocol

from mp_eventbus.kernel.events import DomainEvent
from mp_eventbus.kernel.messaging import EventPublisher


class Mediator(Protocol):
    """Any existing in-process notification dispatcher."""

    async def publish(self, notification: Any) -> None: ...


class MediatorEventPublisher(EventPublisher):
    """Delegate dispatch to an existing mediator, one event at a time, in order."""

    def __init__(self, mediator: Mediator) -> None:
        self._mediator = mediator

    async def publish(self, event: DomainEvent) -> None:
        if event is None:
            raise ValueError("event must not be None")
        await self._mediator.publish(event)

    async def publish_batch(self, events: Iterable[DomainEvent]) -> None:
        for event in events:
            await self.publish(event)


__all__ = ["Mediator", "MediatorEventPublisher"]
