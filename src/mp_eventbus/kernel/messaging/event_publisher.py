"""Kernel messaging – in-process EventPublisher port and handler contract."""
from __future__ import annotations

import abc
from typing import Any, Awaitable, Callable, Generic, Iterable, TypeVar

from mp_eventbus.kernel.events import DomainEvent

E = TypeVar("E", bound=DomainEvent)

#: Plain coroutine handler: ``async def on_order_placed(event): ...``
HandlerFunc = Callable[[Any], Awaitable[None]]


class DomainEventHandler(abc.ABC, Generic[E]):
    """Handle a single domain event type."""

    @abc.abstractmethod
    async def handle(self, event: E) -> None: ...


class EventPublisher(abc.ABC):
    """Port: dispatch domain events to in-process handlers.

    Handler exceptions propagate so the caller's transaction can roll back.
    """

    @abc.abstractmethod
    async def publish(self, event: DomainEvent) -> None: ...

    @abc.abstractmethod
    async def publish_batch(self, events: Iterable[DomainEvent]) -> None: ...


__all__ = ["DomainEventHandler", "EventPublisher", "HandlerFunc"]
