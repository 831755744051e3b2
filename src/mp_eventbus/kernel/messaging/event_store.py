"""Kernel messaging – EventStore port (transactional outbox persistence)."""
from __future__ import annotations

import abc
import contextlib
from datetime import datetime, timedelta
from typing import AsyncIterator, Callable, Iterable
from uuid import UUID

from mp_eventbus.kernel.events import Event, EventSerializer
from mp_eventbus.kernel.messaging.stored_event import StoredEvent
from mp_eventbus.kernel.time import Clock, SystemClock

_TICK = timedelta(microseconds=1)


class EventStore(abc.ABC):
    """Port: durable outbox shared by every storage backend.

    ``save_event`` / ``save_events`` run inside the caller's unit of work when
    the backend has one, so the business write and the event write commit or
    roll back together.  The remaining methods serve the outbox relay and
    read-only audit queries.

    ``mark_as_failed`` only records an attempt; the relay decides when the
    event becomes terminally failed by passing ``terminal=True``.
    """

    def __init__(self, serializer: EventSerializer, clock: Clock | None = None) -> None:
        self.serializer = serializer
        self.clock: Clock = clock or SystemClock()

    # ------------------------------------------------------------------
    # Write side
    # ------------------------------------------------------------------

    @abc.abstractmethod
    async def save_event(self, event: Event) -> None: ...

    @abc.abstractmethod
    async def save_events(self, events: Iterable[Event]) -> None: ...

    # ------------------------------------------------------------------
    # Relay side
    # ------------------------------------------------------------------

    @abc.abstractmethod
    async def get_unpublished_events(self, batch_size: int = 100) -> list[StoredEvent]: ...

    @abc.abstractmethod
    async def mark_as_published(self, event_id: UUID) -> None: ...

    @abc.abstractmethod
    async def mark_as_failed(
        self,
        event_id: UUID,
        error_message: str,
        *,
        terminal: bool = False,
        next_attempt_at: datetime | None = None,
    ) -> None: ...

    # ------------------------------------------------------------------
    # Audit queries (never change delivery state)
    # ------------------------------------------------------------------

    @abc.abstractmethod
    async def get_event(self, event_id: UUID) -> StoredEvent | None: ...

    @abc.abstractmethod
    async def get_events_by_aggregate_id(self, aggregate_id: UUID) -> list[StoredEvent]: ...

    @abc.abstractmethod
    async def get_events_by_time_range(self, start: datetime, end: datetime) -> list[StoredEvent]: ...

    @abc.abstractmethod
    async def get_events_by_type(self, event_type: str) -> list[StoredEvent]: ...

    # ------------------------------------------------------------------
    # Helpers for adapters
    # ------------------------------------------------------------------

    def _to_stored(self, event: Event) -> StoredEvent:
        return StoredEvent.from_event(event, self.serializer, self.clock)

    def _to_stored_batch(self, events: Iterable[Event]) -> list[StoredEvent]:
        """Build records whose ``created_at`` strictly increases in list order."""
        records: list[StoredEvent] = []
        for event in events:
            record = self._to_stored(event)
            if records and record.created_at <= records[-1].created_at:
                record.created_at = records[-1].created_at + _TICK
            records.append(record)
        return records


#: Yields a session-scoped store; commits on clean exit.
EventStoreProvider = Callable[[], contextlib.AbstractAsyncContextManager[EventStore]]


def shared_store(store: EventStore) -> EventStoreProvider:
    """Provider for stores that commit every call on their own (Mongo, Redis, Cassandra, in-memory)."""

    @contextlib.asynccontextmanager
    async def _provide() -> AsyncIterator[EventStore]:
        yield store

    return _provide


__all__ = ["EventStore", "EventStoreProvider", "shared_store"]
