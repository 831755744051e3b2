"""Application outbox – operator alerts for terminally failed events."""
from __future__ import annotations

from typing import Protocol

from mp_eventbus.kernel.messaging import StoredEvent
from mp_eventbus.observability.logging import get_logger

logger = get_logger(__name__)


class OutboxAlerter(Protocol):
    """Notified once per event that reaches the Failed state.

    Failed events are never retried or deleted automatically; the alert is
    the operator's cue to inspect and resubmit by hand.
    """

    async def event_failed(self, event: StoredEvent) -> None: ...


class LoggingOutboxAlerter:
    """Default alerter: one ``critical`` log line per failed event."""

    async def event_failed(self, event: StoredEvent) -> None:
        logger.critical(
            "outbox.event_failed",
            event_id=str(event.id),
            event_type=event.event_type,
            aggregate_id=str(event.aggregate_id) if event.aggregate_id else None,
            retry_count=event.retry_count,
            error=event.error_message,
        )


__all__ = ["LoggingOutboxAlerter", "OutboxAlerter"]
