"""Kernel messaging – StoredEvent, the outbox record."""
from __future__ import annotations

import dataclasses
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

if TYPE_CHECKING:
    from mp_eventbus.kernel.events import Event, EventSerializer
    from mp_eventbus.kernel.time import Clock


class DeliveryState(str, Enum):
    PENDING = "PENDING"
    PUBLISHED = "PUBLISHED"
    FAILED = "FAILED"


@dataclasses.dataclass
class StoredEvent:
    """Transactional outbox record stored alongside business data.

    Pending while neither ``is_published`` nor ``is_failed`` is set; both
    flags are terminal and never set together.  ``occurred_at`` comes from
    the event, ``created_at`` is the write time.
    """

    id: UUID
    event_type: str
    event_data: str
    occurred_at: datetime
    created_at: datetime
    aggregate_id: UUID | None = None
    aggregate_type: str | None = None
    is_published: bool = False
    published_at: datetime | None = None
    retry_count: int = 0
    error_message: str | None = None
    is_failed: bool = False
    next_attempt_at: datetime | None = None

    @property
    def state(self) -> DeliveryState:
        if self.is_published:
            return DeliveryState.PUBLISHED
        if self.is_failed:
            return DeliveryState.FAILED
        return DeliveryState.PENDING

    @property
    def is_pending(self) -> bool:
        return self.state is DeliveryState.PENDING

    def is_due(self, now: datetime) -> bool:
        """Pending and past its backoff window."""
        return self.is_pending and (self.next_attempt_at is None or self.next_attempt_at <= now)

    @classmethod
    def from_event(cls, event: Event, serializer: EventSerializer, clock: Clock) -> StoredEvent:
        return cls(
            id=event.event_id,
            event_type=event.event_type,
            event_data=serializer.serialize(event),
            aggregate_id=getattr(event, "aggregate_id", None),
            aggregate_type=getattr(event, "aggregate_type", None),
            occurred_at=event.occurred_at,
            created_at=clock.now(),
        )


__all__ = ["DeliveryState", "StoredEvent"]
