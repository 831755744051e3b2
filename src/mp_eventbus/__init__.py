"""
mp_eventbus – Reliable domain-event delivery (event bus + transactional outbox).

Import path convention::

    from mp_eventbus.kernel.events import DomainEvent, IntegrationEvent
    from mp_eventbus.application.event_bus import EventBus, EventBusMode
    from mp_eventbus.application.outbox import OutboxProcessor
    from mp_eventbus.adapters.sqlalchemy import SqlAlchemyEventStore
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
