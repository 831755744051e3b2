"""Application dispatch – HandlerRegistry."""

from __future__ import annotations

from typing import Any, Callable, TypeVar

from mp_eventbus.kernel.errors import ConfigError
from mp_eventbus.kernel.events import DomainEvent
from mp_eventbus.kernel.messaging import DomainEventHandler, HandlerFunc

Handler = DomainEventHandler[Any] | HandlerFunc
H = TypeVar("H", bound=Handler)


class HandlerRegistry:
    """Explicit ``event_type -> [handler, ...]`` table, built once at startup.

    Handlers are either :class:`DomainEventHandler` instances or plain
    coroutine functions; they run in registration order.  Call
    :meth:`freeze` after bootstrap so late registrations fail loudly.

    Example::

        registry = HandlerRegistry()
        registry.register(OrderPlaced, SendConfirmationEmail())

        @registry.subscribe(OrderPlaced)
        async def update_stock(event: OrderPlaced) -> None: ...
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = {}
        self._frozen = False

    @staticmethod
    def _key(event: type[DomainEvent] | str) -> str:
        return event if isinstance(event, str) else event.event_type

    def register(self, event: type[DomainEvent] | str, handler: Handler) -> None:
        if self._frozen:
            raise ConfigError(
                f"Handler registry is frozen; cannot register for {self._key(event)!r}"
            )
        if not isinstance(handler, DomainEventHandler) and not callable(handler):
            raise ConfigError(f"Handler {handler!r} is neither a DomainEventHandler nor callable")
        self._handlers.setdefault(self._key(event), []).append(handler)

    def subscribe(self, event: type[DomainEvent] | str) -> Callable[[H], H]:
        def decorator(handler: H) -> H:
            self.register(event, handler)
            return handler

        return decorator

    def handlers_for(self, event_type: str) -> tuple[Handler, ...]:
        return tuple(self._handlers.get(event_type, ()))

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def event_types(self) -> list[str]:
        return sorted(self._handlers)


def handler_name(handler: Handler) -> str:
    if isinstance(handler, DomainEventHandler):
        return type(handler).__name__
    return getattr(handler, "__qualname__", repr(handler))


__all__ = ["Handler", "HandlerRegistry", "handler_name"]
