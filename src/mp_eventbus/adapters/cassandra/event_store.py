"""Cassandra adapter – CassandraEventStore, the wide-column outbox.

Tables (see :data:`SCHEMA`):

``outbox_events``
    one row per event, keyed by id; secondary indexes on ``aggregate_id``
    and ``event_type`` for audit lookups.
``outbox_pending``
    relay queue partitioned by UTC day (``bucket``) and clustered by write
    time in microseconds, so the hot fetch path never scans one huge
    partition.
``outbox_pending_buckets``
    the set of day buckets that may still hold pending rows.

Inserts use LOGGED batches.  Status changes are lightweight transactions
(``IF is_published = false AND is_failed = false``) that run on their own,
since Cassandra rejects conditional updates in multi-partition batches.  The
queue row is deleted only once the condition applied; a relay that dies in
between leaves a stale queue row, which the next fetch removes.

The driver is blocking, so every call runs in a worker thread.
"""
from __future__ import annotations

import asyncio
import contextlib
from datetime import UTC, datetime, timedelta
from typing import Any, Iterable, Iterator
from uuid import UUID

from mp_eventbus.kernel.errors import EventStoreError
from mp_eventbus.kernel.events import Event, EventSerializer
from mp_eventbus.kernel.messaging import EventStore, StoredEvent
from mp_eventbus.kernel.time import Clock
from mp_eventbus.observability.logging import get_logger

logger = get_logger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)
_BUCKETS_KEY = "pending"

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS outbox_events (
        id uuid PRIMARY KEY,
        event_type text,
        event_data text,
        aggregate_id uuid,
        aggregate_type text,
        occurred_at timestamp,
        created_at timestamp,
        created_ticks bigint,
        is_published boolean,
        published_at timestamp,
        retry_count int,
        error_message text,
        is_failed boolean,
        next_attempt_at timestamp
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_outbox_events_aggregate ON outbox_events (aggregate_id)",
    "CREATE INDEX IF NOT EXISTS idx_outbox_events_type ON outbox_events (event_type)",
    """
    CREATE TABLE IF NOT EXISTS outbox_pending (
        bucket text,
        created_ticks bigint,
        id uuid,
        PRIMARY KEY ((bucket), created_ticks, id)
    ) WITH CLUSTERING ORDER BY (created_ticks ASC, id ASC)
    """,
    """
    CREATE TABLE IF NOT EXISTS outbox_pending_buckets (
        kind text,
        bucket text,
        PRIMARY KEY ((kind), bucket)
    ) WITH CLUSTERING ORDER BY (bucket ASC)
    """,
)

_INSERT_EVENT = (
    "INSERT INTO outbox_events (id, event_type, event_data, aggregate_id, aggregate_type, occurred_at, "
    "created_at, created_ticks, is_published, published_at, retry_count, error_message, is_failed, "
    "next_attempt_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)"
)
_INSERT_PENDING = "INSERT INTO outbox_pending (bucket, created_ticks, id) VALUES (?, ?, ?)"
_DELETE_PENDING = "DELETE FROM outbox_pending WHERE bucket = ? AND created_ticks = ? AND id = ?"
_INSERT_BUCKET = "INSERT INTO outbox_pending_buckets (kind, bucket) VALUES (?, ?)"
_DELETE_BUCKET = "DELETE FROM outbox_pending_buckets WHERE kind = ? AND bucket = ?"
_SELECT_BUCKETS = "SELECT bucket FROM outbox_pending_buckets WHERE kind = ?"
_SELECT_PENDING = "SELECT created_ticks, id FROM outbox_pending WHERE bucket = ? LIMIT ?"
_SELECT_PENDING_AFTER = (
    "SELECT created_ticks, id FROM outbox_pending WHERE bucket = ? AND (created_ticks, id) > (?, ?) LIMIT ?"
)
_SELECT_EVENT = "SELECT * FROM outbox_events WHERE id = ?"
_MARK_PUBLISHED = (
    "UPDATE outbox_events SET is_published = true, published_at = ?, next_attempt_at = null WHERE id = ? "
    "IF is_published = false AND is_failed = false"
)
_MARK_FAILED = (
    "UPDATE outbox_events SET retry_count = ?, error_message = ?, is_failed = ?, next_attempt_at = ? WHERE id = ? "
    "IF is_published = false AND is_failed = false AND retry_count = ?"
)
_MAX_CONFLICT_ATTEMPTS = 5
_SELECT_BY_AGGREGATE = "SELECT * FROM outbox_events WHERE aggregate_id = ?"
_SELECT_BY_TYPE = "SELECT * FROM outbox_events WHERE event_type = ?"
_SELECT_BY_TIME = "SELECT * FROM outbox_events WHERE occurred_at >= ? AND occurred_at <= ? ALLOW FILTERING"


def _require_cassandra() -> Any:
    try:
        import cassandra  # type: ignore[import-untyped]
        import cassandra.cluster  # type: ignore[import-untyped]  # noqa: F401
        import cassandra.query  # type: ignore[import-untyped]  # noqa: F401
        return cassandra
    except ImportError as exc:
        raise ImportError("Install 'mp-eventbus[cassandra]' (cassandra-driver) to use the Cassandra adapter") from exc


def _ticks(value: datetime) -> int:
    delta = value - _EPOCH
    return (delta.days * 86_400 + delta.seconds) * 1_000_000 + delta.microseconds


def _from_ticks(ticks: int) -> datetime:
    # Exact write time; the timestamp column only keeps milliseconds.
    return _EPOCH + timedelta(microseconds=ticks)


def _bucket(value: datetime) -> str:
    return value.astimezone(UTC).strftime("%Y-%m-%d")


def _aware(value: datetime | None) -> datetime | None:
    # The driver returns naive UTC timestamps.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _sort_key(record: StoredEvent) -> tuple[datetime, datetime]:
    return record.occurred_at, record.created_at


def _pending_key(record: StoredEvent) -> tuple[str, int, UUID]:
    return _bucket(record.created_at), _ticks(record.created_at), record.id


class CassandraEventStore(EventStore):
    """Outbox store on a ``cassandra-driver`` :class:`~cassandra.cluster.Session`.

    Every call commits on its own; use
    :func:`~mp_eventbus.kernel.messaging.shared_store` for the relay.
    The session should already be bound to the keyspace.
    """

    def __init__(self, session: Any, serializer: EventSerializer, clock: Clock | None = None) -> None:
        self._driver = _require_cassandra()
        super().__init__(serializer, clock)
        self._session = session
        self._prepared: dict[str, Any] = {}

    @classmethod
    async def create_schema(cls, session: Any) -> None:
        """Create the tables and indexes if they do not exist."""
        for cql in SCHEMA:
            await asyncio.to_thread(session.execute, cql)

    # ------------------------------------------------------------------
    # Driver plumbing
    # ------------------------------------------------------------------

    def _statement(self, cql: str) -> Any:
        prepared = self._prepared.get(cql)
        if prepared is None:
            prepared = self._session.prepare(cql)
            self._prepared[cql] = prepared
        return prepared

    async def _execute(self, cql: str, params: tuple[Any, ...] = ()) -> list[Any]:
        statement = await asyncio.to_thread(self._statement, cql)
        result = await asyncio.to_thread(self._session.execute, statement, params)
        return list(result)

    async def _execute_batch(self, statements: list[tuple[str, tuple[Any, ...]]]) -> None:
        query = self._driver.query
        batch = query.BatchStatement(batch_type=query.BatchType.LOGGED)
        for cql, params in statements:
            batch.add(await asyncio.to_thread(self._statement, cql), params)
        await asyncio.to_thread(self._session.execute, batch)

    async def _execute_conditional(self, cql: str, params: tuple[Any, ...]) -> bool:
        """Run a lightweight transaction and report whether its ``IF`` held."""
        statement = await asyncio.to_thread(self._statement, cql)
        result = await asyncio.to_thread(self._session.execute, statement, params)
        return bool(result.was_applied)

    @contextlib.contextmanager
    def _errors(self, operation: str) -> Iterator[None]:
        driver = self._driver
        no_host = driver.cluster.NoHostAvailable
        try:
            yield
        except (driver.DriverException, driver.RequestExecutionException, no_host) as exc:
            transient = isinstance(exc, (driver.OperationTimedOut, driver.Unavailable, driver.Timeout, no_host))
            raise EventStoreError(operation, transient=transient, cause=exc) from exc

    # ------------------------------------------------------------------
    # Write side
    # ------------------------------------------------------------------

    @staticmethod
    def _insert_statements(record: StoredEvent) -> list[tuple[str, tuple[Any, ...]]]:
        ticks = _ticks(record.created_at)
        bucket = _bucket(record.created_at)
        return [
            (
                _INSERT_EVENT,
                (
                    record.id,
                    record.event_type,
                    record.event_data,
                    record.aggregate_id,
                    record.aggregate_type,
                    record.occurred_at,
                    record.created_at,
                    ticks,
                    record.is_published,
                    record.published_at,
                    record.retry_count,
                    record.error_message,
                    record.is_failed,
                    record.next_attempt_at,
                ),
            ),
            (_INSERT_PENDING, (bucket, ticks, record.id)),
            (_INSERT_BUCKET, (_BUCKETS_KEY, bucket)),
        ]

    async def save_event(self, event: Event) -> None:
        with self._errors("save_event"):
            await self._execute_batch(self._insert_statements(self._to_stored(event)))

    async def save_events(self, events: Iterable[Event]) -> None:
        statements = [stmt for record in self._to_stored_batch(events) for stmt in self._insert_statements(record)]
        if not statements:
            return
        with self._errors("save_events"):
            await self._execute_batch(statements)

    # ------------------------------------------------------------------
    # Relay side
    # ------------------------------------------------------------------

    async def get_unpublished_events(self, batch_size: int = 100) -> list[StoredEvent]:
        now = self.clock.now()
        today = _bucket(now)
        due: list[StoredEvent] = []
        with self._errors("get_unpublished_events"):
            buckets = [row.bucket for row in await self._execute(_SELECT_BUCKETS, (_BUCKETS_KEY,))]
            for bucket in sorted(buckets):
                rows = await self._execute(_SELECT_PENDING, (bucket, batch_size))
                if not rows and bucket < today:
                    await self._execute(_DELETE_BUCKET, (_BUCKETS_KEY, bucket))
                    logger.debug("cassandra.bucket_drained", bucket=bucket)
                    continue
                # Rows waiting out a backoff stay queued; page past them.
                while rows:
                    for row in rows:
                        record = await self._load(row.id)
                        if record is None:
                            continue
                        if not record.is_pending:
                            # The mark applied but its queue delete never ran.
                            await self._execute(_DELETE_PENDING, (bucket, row.created_ticks, row.id))
                        elif record.is_due(now):
                            due.append(record)
                            if len(due) == batch_size:
                                return due
                    if len(rows) < batch_size:
                        break
                    last = rows[-1]
                    rows = await self._execute(
                        _SELECT_PENDING_AFTER, (bucket, last.created_ticks, last.id, batch_size)
                    )
        return due

    async def mark_as_published(self, event_id: UUID) -> None:
        with self._errors("mark_as_published"):
            record = await self._load(event_id)
            if record is None or not record.is_pending:
                return
            if await self._execute_conditional(_MARK_PUBLISHED, (self.clock.now(), event_id)):
                await self._execute(_DELETE_PENDING, _pending_key(record))
            else:
                logger.debug("cassandra.mark_conflict", event_id=str(event_id), operation="mark_as_published")

    async def mark_as_failed(
        self,
        event_id: UUID,
        error_message: str,
        *,
        terminal: bool = False,
        next_attempt_at: datetime | None = None,
    ) -> None:
        with self._errors("mark_as_failed"):
            for _ in range(_MAX_CONFLICT_ATTEMPTS):
                record = await self._load(event_id)
                if record is None or not record.is_pending:
                    return
                params = (
                    record.retry_count + 1,
                    error_message,
                    terminal,
                    None if terminal else next_attempt_at,
                    event_id,
                    record.retry_count,
                )
                if await self._execute_conditional(_MARK_FAILED, params):
                    if terminal:
                        await self._execute(_DELETE_PENDING, _pending_key(record))
                    return
                logger.debug("cassandra.mark_conflict", event_id=str(event_id), operation="mark_as_failed")
        raise EventStoreError(
            "mark_as_failed",
            f"Event {event_id} kept changing during 'mark_as_failed'",
            transient=True,
        )

    # ------------------------------------------------------------------
    # Audit queries
    # ------------------------------------------------------------------

    async def get_event(self, event_id: UUID) -> StoredEvent | None:
        with self._errors("get_event"):
            return await self._load(event_id)

    async def get_events_by_aggregate_id(self, aggregate_id: UUID) -> list[StoredEvent]:
        return await self._query("get_events_by_aggregate_id", _SELECT_BY_AGGREGATE, (aggregate_id,))

    async def get_events_by_time_range(self, start: datetime, end: datetime) -> list[StoredEvent]:
        return await self._query("get_events_by_time_range", _SELECT_BY_TIME, (start, end))

    async def get_events_by_type(self, event_type: str) -> list[StoredEvent]:
        return await self._query("get_events_by_type", _SELECT_BY_TYPE, (event_type,))

    async def _query(self, operation: str, cql: str, params: tuple[Any, ...]) -> list[StoredEvent]:
        with self._errors(operation):
            rows = await self._execute(cql, params)
        return sorted((self._from_row(row) for row in rows), key=_sort_key)

    async def _load(self, event_id: UUID) -> StoredEvent | None:
        rows = await self._execute(_SELECT_EVENT, (event_id,))
        return self._from_row(rows[0]) if rows else None

    @staticmethod
    def _from_row(row: Any) -> StoredEvent:
        return StoredEvent(
            id=row.id,
            event_type=row.event_type,
            event_data=row.event_data,
            aggregate_id=row.aggregate_id,
            aggregate_type=row.aggregate_type,
            occurred_at=_aware(row.occurred_at),
            created_at=_from_ticks(row.created_ticks),
            is_published=bool(row.is_published),
            published_at=_aware(row.published_at),
            retry_count=row.retry_count or 0,
            error_message=row.error_message,
            is_failed=bool(row.is_failed),
            next_attempt_at=_aware(row.next_attempt_at),
        )


__all__ = ["SCHEMA", "CassandraEventStore"]
