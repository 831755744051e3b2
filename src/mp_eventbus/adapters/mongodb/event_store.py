"""MongoDB adapter – MongoEventStore."""

from __future__ import annotations

import contextlib
from datetime import UTC, datetime
from typing import Any, Iterable, Iterator
from uuid import UUID

from mp_eventbus.kernel.errors import EventStoreError
from mp_eventbus.kernel.events import Event, EventSerializer
from mp_eventbus.kernel.messaging import EventStore, StoredEvent
from mp_eventbus.kernel.time import Clock

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def _require_pymongo_errors() -> Any:
    try:
        from pymongo import errors  # type: ignore[import-untyped]
        return errors
    except ImportError as exc:
        raise ImportError("Install 'mp-eventbus[mongodb]' (motor) to use the MongoDB adapter") from exc


def _ticks(value: datetime) -> int:
    """Microseconds since the epoch; BSON dates only keep milliseconds."""
    delta = value - _EPOCH
    return (delta.days * 86_400 + delta.seconds) * 1_000_000 + delta.microseconds


def _aware(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class MongoEventStore(EventStore):
    """Outbox store backed by a **motor** collection (``outbox_events``).

    Ids are stored as strings so the store works regardless of the client's
    ``uuidRepresentation``.  ``created_ticks`` keeps microsecond write order,
    which BSON dates would truncate.

    Pass the ``session`` of a :class:`MongoUnitOfWork` to make the outbox
    write part of a multi-document transaction (replica set required).
    Without one, every call commits on its own; wrap the store with
    :func:`~mp_eventbus.kernel.messaging.shared_store` for the relay.

    Call :meth:`create_indexes` once on startup.
    """

    COLLECTION_NAME = "outbox_events"

    def __init__(
        self,
        collection: Any,
        serializer: EventSerializer,
        clock: Clock | None = None,
        *,
        session: Any = None,
    ) -> None:
        super().__init__(serializer, clock)
        self._col = collection
        self._session = session

    # ------------------------------------------------------------------
    # Index management
    # ------------------------------------------------------------------

    @classmethod
    async def create_indexes(cls, collection: Any) -> None:
        """Create the relay and audit indexes.  Idempotent."""
        await collection.create_index(
            [("is_published", 1), ("is_failed", 1), ("created_ticks", 1)],
            name="idx_outbox_pending",
        )
        await collection.create_index("aggregate_id", name="idx_outbox_aggregate", sparse=True)
        await collection.create_index("event_type", name="idx_outbox_event_type")
        await collection.create_index("occurred_at", name="idx_outbox_occurred_at")

    @contextlib.contextmanager
    def _errors(self, operation: str) -> Iterator[None]:
        errors = _require_pymongo_errors()
        try:
            yield
        except errors.PyMongoError as exc:
            transient = isinstance(exc, (errors.ConnectionFailure, errors.ExecutionTimeout)) or exc.has_error_label(
                "TransientTransactionError"
            )
            raise EventStoreError(operation, transient=transient, cause=exc) from exc

    # ------------------------------------------------------------------
    # Write side
    # ------------------------------------------------------------------

    async def save_event(self, event: Event) -> None:
        doc = self._to_doc(self._to_stored(event))
        with self._errors("save_event"):
            await self._col.insert_one(doc, session=self._session)

    async def save_events(self, events: Iterable[Event]) -> None:
        docs = [self._to_doc(record) for record in self._to_stored_batch(events)]
        if not docs:
            return
        with self._errors("save_events"):
            await self._col.insert_many(docs, ordered=True, session=self._session)

    # ------------------------------------------------------------------
    # Relay side
    # ------------------------------------------------------------------

    @staticmethod
    def _pending(event_id: UUID) -> dict[str, Any]:
        return {"_id": str(event_id), "is_published": False, "is_failed": False}

    async def get_unpublished_events(self, batch_size: int = 100) -> list[StoredEvent]:
        query = {
            "is_published": False,
            "is_failed": False,
            "$or": [{"next_attempt_at": None}, {"next_attempt_at": {"$lte": self.clock.now()}}],
        }
        return await self._find("get_unpublished_events", query, [("created_ticks", 1)], limit=batch_size)

    async def mark_as_published(self, event_id: UUID) -> None:
        with self._errors("mark_as_published"):
            await self._col.update_one(
                self._pending(event_id),
                {"$set": {"is_published": True, "published_at": self.clock.now(), "next_attempt_at": None}},
                session=self._session,
            )

    async def mark_as_failed(
        self,
        event_id: UUID,
        error_message: str,
        *,
        terminal: bool = False,
        next_attempt_at: datetime | None = None,
    ) -> None:
        with self._errors("mark_as_failed"):
            await self._col.update_one(
                self._pending(event_id),
                {
                    "$inc": {"retry_count": 1},
                    "$set": {
                        "error_message": error_message,
                        "is_failed": terminal,
                        "next_attempt_at": None if terminal else next_attempt_at,
                    },
                },
                session=self._session,
            )

    # ------------------------------------------------------------------
    # Audit queries
    # ------------------------------------------------------------------

    async def get_event(self, event_id: UUID) -> StoredEvent | None:
        with self._errors("get_event"):
            doc = await self._col.find_one({"_id": str(event_id)}, session=self._session)
        return self._from_doc(doc) if doc else None

    async def get_events_by_aggregate_id(self, aggregate_id: UUID) -> list[StoredEvent]:
        return await self._find("get_events_by_aggregate_id", {"aggregate_id": str(aggregate_id)})

    async def get_events_by_time_range(self, start: datetime, end: datetime) -> list[StoredEvent]:
        return await self._find("get_events_by_time_range", {"occurred_at": {"$gte": start, "$lte": end}})

    async def get_events_by_type(self, event_type: str) -> list[StoredEvent]:
        return await self._find("get_events_by_type", {"event_type": event_type})

    async def _find(
        self,
        operation: str,
        query: dict[str, Any],
        sort: list[tuple[str, int]] | None = None,
        *,
        limit: int | None = None,
    ) -> list[StoredEvent]:
        cursor = self._col.find(query, session=self._session)
        cursor = cursor.sort(sort or [("occurred_at", 1), ("created_ticks", 1)])
        if limit is not None:
            cursor = cursor.limit(limit)
        with self._errors(operation):
            docs = await cursor.to_list(length=limit)
        return [self._from_doc(doc) for doc in docs]

    # ------------------------------------------------------------------
    # (De)serialisation helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _to_doc(record: StoredEvent) -> dict[str, Any]:
        return {
            "_id": str(record.id),
            "event_type": record.event_type,
            "event_data": record.event_data,
            "aggregate_id": str(record.aggregate_id) if record.aggregate_id else None,
            "aggregate_type": record.aggregate_type,
            "occurred_at": record.occurred_at,
            "created_at": record.created_at,
            "created_ticks": _ticks(record.created_at),
            "is_published": record.is_published,
            "published_at": record.published_at,
            "retry_count": record.retry_count,
            "error_message": record.error_message,
            "is_failed": record.is_failed,
            "next_attempt_at": record.next_attempt_at,
        }

    @staticmethod
    def _from_doc(doc: dict[str, Any]) -> StoredEvent:
        aggregate_id = doc.get("aggregate_id")
        return StoredEvent(
            id=UUID(doc["_id"]),
            event_type=doc["event_type"],
            event_data=doc["event_data"],
            aggregate_id=UUID(aggregate_id) if aggregate_id else None,
            aggregate_type=doc.get("aggregate_type"),
            occurred_at=_aware(doc["occurred_at"]),
            created_at=_aware(doc["created_at"]),
            is_published=doc.get("is_published", False),
            published_at=_aware(doc.get("published_at")),
            retry_count=doc.get("retry_count", 0),
            error_message=doc.get("error_message"),
            is_failed=doc.get("is_failed", False),
            next_attempt_at=_aware(doc.get("next_attempt_at")),
        )


__all__ = ["MongoEventStore"]
