"""Application outbox – background relay from the event store to the message bus."""
from mp_eventbus.application.outbox.alerting import LoggingOutboxAlerter, OutboxAlerter
from mp_eventbus.application.outbox.options import OutboxProcessorOptions
from mp_eventbus.application.outbox.processor import OutboxProcessor

__all__ = ["LoggingOutboxAlerter", "OutboxAlerter", "OutboxProcessor", "OutboxProcessorOptions"]
