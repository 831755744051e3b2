"""Kernel messaging – IntegrationEventMapper port and a table-driven implementation."""
from __future__ import annotations

import abc
from typing import Any, Callable, TypeVar

from mp_eventbus.kernel.events import DomainEvent, IntegrationEvent

D = TypeVar("D", bound=DomainEvent)

Translator = Callable[[Any], IntegrationEvent | None]


class IntegrationEventMapper(abc.ABC):
    """Port: decide what other services are allowed to see.

    ``map`` must be pure (no I/O, no mutation).  Returning ``None`` keeps an
    internal-only event (cache invalidation, projections…) off the bus.
    """

    @abc.abstractmethod
    def map(self, domain_event: DomainEvent) -> IntegrationEvent | None: ...


class TypeMapIntegrationEventMapper(IntegrationEventMapper):
    """Mapper driven by an explicit ``domain event class -> translator`` table.

    Events whose exact class has no translator are internal-only.

    Example::

        mapper = TypeMapIntegrationEventMapper()

        @mapper.translates(OrderPlaced)
        def _(e: OrderPlaced) -> OrderPlacedV1:
            return OrderPlacedV1(event_id=e.event_id, order_id=e.order_id)
    """

    def __init__(self, translators: dict[type[DomainEvent], Translator] | None = None) -> None:
        self._translators: dict[type[DomainEvent], Translator] = dict(translators or {})

    def register(self, event_cls: type[D], translator: Callable[[D], IntegrationEvent | None]) -> None:
        self._translators[event_cls] = translator

    def translates(self, event_cls: type[D]) -> Callable[[Callable[[D], IntegrationEvent | None]], Callable[[D], IntegrationEvent | None]]:
        def decorator(func: Callable[[D], IntegrationEvent | None]) -> Callable[[D], IntegrationEvent | None]:
            self.register(event_cls, func)
            return func

        return decorator

    def map(self, domain_event: DomainEvent) -> IntegrationEvent | None:
        translator = self._translators.get(type(domain_event))
        if translator is None:
            return None
        return translator(domain_event)


__all__ = ["IntegrationEventMapper", "Translator", "TypeMapIntegrationEventMapper"]
