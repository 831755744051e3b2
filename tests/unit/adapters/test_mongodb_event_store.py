"""Unit tests for the MongoDB outbox adapter (mocked motor collection)."""
from __future__ import annotations

import asyncio
import dataclasses
import uuid
from datetime import UTC, datetime, timedelta
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from pymongo import errors as mongo_errors

from mp_eventbus.adapters.mongodb import MongoEventStore, MongoUnitOfWork
from mp_eventbus.kernel.errors import EventStoreError
from mp_eventbus.kernel.events import DomainEvent, EventSerializer, EventTypeRegistry
from mp_eventbus.testing.fakes import FakeClock

NOW = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)


@dataclasses.dataclass(frozen=True)
class ShipmentDispatched(DomainEvent, event_type="shipment.dispatched"):
    carrier: str


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _collection(docs: list[dict[str, Any]] | None = None) -> tuple[MagicMock, MagicMock]:
    """Return (collection, cursor) mocks; find() chains back to the cursor."""
    cursor = MagicMock()
    cursor.sort.return_value = cursor
    cursor.limit.return_value = cursor
    cursor.to_list = AsyncMock(return_value=docs or [])
    col = MagicMock()
    col.find.return_value = cursor
    col.insert_one = AsyncMock()
    col.insert_many = AsyncMock()
    col.update_one = AsyncMock()
    col.find_one = AsyncMock(return_value=None)
    col.create_index = AsyncMock()
    return col, cursor


def _store(col: MagicMock, session: Any = None) -> MongoEventStore:
    serializer = EventSerializer(EventTypeRegistry([ShipmentDispatched]))
    return MongoEventStore(col, serializer, FakeClock(), session=session)


def _doc(**overrides: Any) -> dict[str, Any]:
    doc: dict[str, Any] = {
        "_id": str(uuid.uuid4()),
        "event_type": "shipment.dispatched",
        "event_data": "{}",
        "aggregate_id": None,
        "aggregate_type": None,
        # Naive, as motor returns them without tz_aware=True.
        "occurred_at": datetime(2026, 1, 1, 11, 0),
        "created_at": datetime(2026, 1, 1, 12, 0),
        "created_ticks": 0,
        "is_published": False,
        "published_at": None,
        "retry_count": 0,
        "error_message": None,
        "is_failed": False,
        "next_attempt_at": None,
    }
    doc.update(overrides)
    return doc


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


class TestMongoWrites:
    def test_save_event_document_shape(self) -> None:
        async def run() -> None:
            col, _ = _collection()
            event = ShipmentDispatched(carrier="dhl", aggregate_id=uuid.uuid4(), aggregate_type="Shipment")
            await _store(col).save_event(event)

            doc = col.insert_one.await_args.args[0]
            assert doc["_id"] == str(event.event_id)
            assert doc["aggregate_id"] == str(event.aggregate_id)
            assert doc["event_type"] == "shipment.dispatched"
            assert doc["created_at"] == NOW
            assert doc["created_ticks"] == int(NOW.timestamp() * 1_000_000)
            assert doc["is_published"] is False and doc["is_failed"] is False
            assert col.insert_one.await_args.kwargs["session"] is None
        asyncio.run(run())

    def test_save_events_ordered_with_increasing_ticks(self) -> None:
        async def run() -> None:
            col, _ = _collection()
            await _store(col).save_events([ShipmentDispatched(carrier=c) for c in ("a", "b", "c")])

            docs = col.insert_many.await_args.args[0]
            ticks = [d["created_ticks"] for d in docs]
            assert ticks == [ticks[0], ticks[0] + 1, ticks[0] + 2]
            assert col.insert_many.await_args.kwargs["ordered"] is True
        asyncio.run(run())

    def test_save_events_empty(self) -> None:
        async def run() -> None:
            col, _ = _collection()
            await _store(col).save_events([])
            col.insert_many.assert_not_awaited()
        asyncio.run(run())

    def test_session_is_forwarded(self) -> None:
        async def run() -> None:
            col, _ = _collection()
            session = object()
            await _store(col, session=session).save_event(ShipmentDispatched(carrier="ups"))
            assert col.insert_one.await_args.kwargs["session"] is session
        asyncio.run(run())


# ---------------------------------------------------------------------------
# Relay side
# ---------------------------------------------------------------------------


class TestMongoRelay:
    def test_unpublished_query(self) -> None:
        async def run() -> None:
            col, cursor = _collection([_doc()])
            [record] = await _store(col).get_unpublished_events(25)

            query = col.find.call_args.args[0]
            assert query["is_published"] is False
            assert query["is_failed"] is False
            assert {"next_attempt_at": {"$lte": NOW}} in query["$or"]
            cursor.sort.assert_called_once_with([("created_ticks", 1)])
            cursor.limit.assert_called_once_with(25)
            assert record.occurred_at.tzinfo is not None
            assert record.is_pending
        asyncio.run(run())

    def test_mark_as_published_filters_pending(self) -> None:
        async def run() -> None:
            col, _ = _collection()
            event_id = uuid.uuid4()
            await _store(col).mark_as_published(event_id)

            flt, update = col.update_one.await_args.args
            assert flt == {"_id": str(event_id), "is_published": False, "is_failed": False}
            assert update["$set"]["is_published"] is True
            assert update["$set"]["published_at"] == NOW
        asyncio.run(run())

    def test_mark_as_failed_increments_retry(self) -> None:
        async def run() -> None:
            col, _ = _collection()
            retry_at = NOW + timedelta(seconds=4)
            await _store(col).mark_as_failed(uuid.uuid4(), "PublishError: x", next_attempt_at=retry_at)

            _, update = col.update_one.await_args.args
            assert update["$inc"] == {"retry_count": 1}
            assert update["$set"] == {
                "error_message": "PublishError: x",
                "is_failed": False,
                "next_attempt_at": retry_at,
            }
        asyncio.run(run())

    def test_terminal_failure_clears_schedule(self) -> None:
        async def run() -> None:
            col, _ = _collection()
            await _store(col).mark_as_failed(uuid.uuid4(), "boom", terminal=True, next_attempt_at=NOW)
            _, update = col.update_one.await_args.args
            assert update["$set"]["is_failed"] is True
            assert update["$set"]["next_attempt_at"] is None
        asyncio.run(run())


# ---------------------------------------------------------------------------
# Audit queries
# ---------------------------------------------------------------------------


class TestMongoAudit:
    def test_get_event_missing(self) -> None:
        async def run() -> None:
            col, _ = _collection()
            assert await _store(col).get_event(uuid.uuid4()) is None
        asyncio.run(run())

    def test_get_event_parses_document(self) -> None:
        async def run() -> None:
            aggregate = uuid.uuid4()
            doc = _doc(aggregate_id=str(aggregate), aggregate_type="Shipment", retry_count=2)
            col, _ = _collection()
            col.find_one = AsyncMock(return_value=doc)
            record = await _store(col).get_event(uuid.UUID(doc["_id"]))
            assert record is not None
            assert record.aggregate_id == aggregate
            assert record.retry_count == 2
        asyncio.run(run())

    def test_by_aggregate_sorted_by_occurrence(self) -> None:
        async def run() -> None:
            col, cursor = _collection()
            aggregate = uuid.uuid4()
            await _store(col).get_events_by_aggregate_id(aggregate)
            assert col.find.call_args.args[0] == {"aggregate_id": str(aggregate)}
            cursor.sort.assert_called_once_with([("occurred_at", 1), ("created_ticks", 1)])
            cursor.limit.assert_not_called()
        asyncio.run(run())

    def test_time_range_inclusive(self) -> None:
        async def run() -> None:
            col, _ = _collection()
            end = NOW + timedelta(hours=1)
            await _store(col).get_events_by_time_range(NOW, end)
            assert col.find.call_args.args[0] == {"occurred_at": {"$gte": NOW, "$lte": end}}
        asyncio.run(run())

    def test_create_indexes(self) -> None:
        async def run() -> None:
            col, _ = _collection()
            await MongoEventStore.create_indexes(col)
            names = {c.kwargs["name"] for c in col.create_index.await_args_list}
            assert names == {
                "idx_outbox_pending",
                "idx_outbox_aggregate",
                "idx_outbox_event_type",
                "idx_outbox_occurred_at",
            }
        asyncio.run(run())


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class TestMongoErrors:
    def test_connection_failure_is_transient(self) -> None:
        async def run() -> None:
            col, _ = _collection()
            col.insert_one = AsyncMock(side_effect=mongo_errors.AutoReconnect("primary stepped down"))
            with pytest.raises(EventStoreError) as info:
                await _store(col).save_event(ShipmentDispatched(carrier="dhl"))
            assert info.value.transient
            assert info.value.operation == "save_event"
        asyncio.run(run())

    def test_duplicate_key_is_permanent(self) -> None:
        async def run() -> None:
            col, _ = _collection()
            col.insert_one = AsyncMock(side_effect=mongo_errors.DuplicateKeyError("E11000"))
            with pytest.raises(EventStoreError) as info:
                await _store(col).save_event(ShipmentDispatched(carrier="dhl"))
            assert not info.value.transient
        asyncio.run(run())

    def test_cursor_error_translated(self) -> None:
        async def run() -> None:
            col, cursor = _collection()
            cursor.to_list = AsyncMock(side_effect=mongo_errors.ExecutionTimeout("slow"))
            with pytest.raises(EventStoreError) as info:
                await _store(col).get_unpublished_events()
            assert info.value.transient
        asyncio.run(run())


# ---------------------------------------------------------------------------
# Unit of work
# ---------------------------------------------------------------------------


def _client() -> tuple[MagicMock, MagicMock]:
    session = MagicMock()
    session.start_transaction = MagicMock()
    session.commit_transaction = AsyncMock()
    session.abort_transaction = AsyncMock()
    session.end_session = AsyncMock()
    client = MagicMock()
    client.start_session = AsyncMock(return_value=session)
    return client, session


class TestMongoUnitOfWork:
    def test_commit_on_success(self) -> None:
        async def run() -> None:
            client, session = _client()
            col, _ = _collection()
            async with MongoUnitOfWork(client) as uow:
                store = uow.event_store(col, EventSerializer())
                await store.save_event(ShipmentDispatched(carrier="dhl"))
            session.start_transaction.assert_called_once()
            session.commit_transaction.assert_awaited_once()
            session.end_session.assert_awaited_once()
            assert col.insert_one.await_args.kwargs["session"] is session
        asyncio.run(run())

    def test_abort_on_error(self) -> None:
        async def run() -> None:
            client, session = _client()
            with pytest.raises(ValueError):
                async with MongoUnitOfWork(client):
                    raise ValueError("invalid shipment")
            session.abort_transaction.assert_awaited_once()
            session.commit_transaction.assert_not_awaited()
            session.end_session.assert_awaited_once()
        asyncio.run(run())

    def test_inactive_uow(self) -> None:
        with pytest.raises(RuntimeError):
            MongoUnitOfWork(MagicMock()).event_store(MagicMock(), EventSerializer())
