"""Application dispatch – in-process EventPublisher implementations."""
from mp_eventbus.application.dispatch.in_memory import InMemoryEventPublisher
from mp_eventbus.application.dispatch.mediator import Mediator, MediatorEventPublisher
from mp_eventbus.application.dispatch.registry import Handler, HandlerRegistry

__all__ = [
    "Handler",
    "HandlerRegistry",
    "InMemoryEventPublisher",
    "Mediator",
    "MediatorEventPublisher",
]
