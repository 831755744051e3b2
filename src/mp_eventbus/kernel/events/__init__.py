"""Kernel events – event model, type registry and serializer."""
from mp_eventbus.kernel.events.event import DomainEvent, Event, IntegrationEvent
from mp_eventbus.kernel.events.registry import EventTypeRegistry
from mp_eventbus.kernel.events.serializer import EventSerializer

__all__ = [
    "DomainEvent",
    "Event",
    "EventSerializer",
    "EventTypeRegistry",
    "IntegrationEvent",
]
