"""Application event bus – mode-driven façade over the publisher and the outbox."""
from mp_eventbus.application.event_bus.bus import EventBus, create_event_bus
from mp_eventbus.config.eventbus import EventBusMode

__all__ = ["EventBus", "EventBusMode", "create_event_bus"]
