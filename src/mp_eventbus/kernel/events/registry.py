"""EventTypeRegistry – explicit ``event_type -> class`` mapping."""

from __future__ import annotations

from typing import Iterable, TypeVar

from mp_eventbus.kernel.errors import ConfigError, SerializationError
from mp_eventbus.kernel.events.event import Event

E = TypeVar("E", bound=type[Event])


class EventTypeRegistry:
    """Resolve stored ``event_type`` strings back to event classes.

    Built once at startup; the outbox relay uses it to rebuild events from
    their stored payload without importing classes by name.

    Example::

        registry = EventTypeRegistry()

        @registry.register
        @dataclasses.dataclass(frozen=True)
        class OrderPlaced(DomainEvent, event_type="order.placed"):
            order_id: str
    """

    def __init__(self, event_classes: Iterable[type[Event]] = ()) -> None:
        self._types: dict[str, type[Event]] = {}
        for cls in event_classes:
            self.register(cls)

    def register(self, event_cls: E) -> E:
        name = event_cls.event_type
        existing = self._types.get(name)
        if existing is not None and existing is not event_cls:
            raise ConfigError(
                f"Event type {name!r} already registered to {existing.__qualname__}",
                detail={"event_type": name},
            )
        self._types[name] = event_cls
        return event_cls

    def resolve(self, event_type: str) -> type[Event]:
        try:
            return self._types[event_type]
        except KeyError:
            raise SerializationError(
                f"Unknown event type {event_type!r}", payload_type=event_type
            ) from None

    def __contains__(self, event_type: object) -> bool:
        return event_type in self._types

    def __len__(self) -> int:
        return len(self._types)

    @property
    def event_types(self) -> list[str]:
        return sorted(self._types)


__all__ = ["EventTypeRegistry"]
