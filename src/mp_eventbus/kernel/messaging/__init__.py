"""Kernel messaging – outbox record, store/publisher ports, message envelope, mapper."""
from mp_eventbus.kernel.messaging.event_publisher import (
    DomainEventHandler,
    EventPublisher,
    HandlerFunc,
)
from mp_eventbus.kernel.messaging.event_store import (
    EventStore,
    EventStoreProvider,
    shared_store,
)
from mp_eventbus.kernel.messaging.mapper import (
    IntegrationEventMapper,
    Translator,
    TypeMapIntegrationEventMapper,
)
from mp_eventbus.kernel.messaging.message import (
    Message,
    MessageHeaders,
    MessageId,
    MessagePublisher,
)
from mp_eventbus.kernel.messaging.stored_event import DeliveryState, StoredEvent

__all__ = [
    "DeliveryState",
    "DomainEventHandler",
    "EventPublisher",
    "EventStore",
    "EventStoreProvider",
    "HandlerFunc",
    "IntegrationEventMapper",
    "Message",
    "MessageHeaders",
    "MessageId",
    "MessagePublisher",
    "StoredEvent",
    "Translator",
    "TypeMapIntegrationEventMapper",
    "shared_store",
]
