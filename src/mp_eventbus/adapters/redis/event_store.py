"""Redis adapter – RedisEventStore.

Key layout (``outbox`` is the default prefix)::

    outbox:event:{id}            JSON-encoded StoredEvent
    outbox:unpublished           ZSET  id -> created_at (µs)   relay queue
    outbox:failed                ZSET  id -> failed_at (µs)    operator view
    outbox:timeline              ZSET  id -> occurred_at (µs)
    outbox:aggregate:{agg_id}    ZSET  id -> occurred_at (µs)
    outbox:type:{event_type}     ZSET  id -> occurred_at (µs)

Inserts go through a ``MULTI``/``EXEC`` pipeline so the record and its
indexes land together.  Status changes run as a Lua compare-and-swap: the
record is rewritten only if it still holds the bytes the relay read, so two
relays racing on one event cannot leave it both published and failed.
Only published records get the optional ``event_ttl``.

Durability: Redis only keeps the outbox guarantee with append-only-file
persistence enabled (``appendonly yes``, ideally with RDB snapshots too).
An in-memory-only Redis loses pending events on restart and is not
supported in production; :meth:`RedisEventStore.check_persistence` warns
about it, or refuses to start with ``require_persistence=True``.
"""
from __future__ import annotations

import contextlib
from datetime import UTC, datetime, timedelta
from typing import Any, Callable, Iterable, Iterator
from uuid import UUID

from pydantic import TypeAdapter

from mp_eventbus.kernel.errors import ConfigError, EventStoreError
from mp_eventbus.kernel.events import Event, EventSerializer
from mp_eventbus.kernel.messaging import EventStore, StoredEvent
from mp_eventbus.kernel.time import Clock
from mp_eventbus.observability.logging import get_logger

logger = get_logger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)
_RECORD = TypeAdapter(StoredEvent)
_MAX_SWAP_ATTEMPTS = 5

# KEYS: record, unpublished, failed
# ARGV: expected, replacement, ttl_ms, outcome, member, failed_score
_COMPARE_AND_SWAP = """
if redis.call("GET", KEYS[1]) ~= ARGV[1] then
    return 0
end
if tonumber(ARGV[3]) > 0 then
    redis.call("SET", KEYS[1], ARGV[2], "PX", ARGV[3])
else
    redis.call("SET", KEYS[1], ARGV[2])
end
if ARGV[4] ~= "retry" then
    redis.call("ZREM", KEYS[2], ARGV[5])
end
if ARGV[4] == "failed" then
    redis.call("ZADD", KEYS[3], ARGV[6], ARGV[5])
end
return 1
"""


def _require_redis() -> Any:
    try:
        import redis.asyncio as aioredis
        return aioredis
    except ImportError as exc:
        raise ImportError("Install 'mp-eventbus[redis]' to use the Redis adapter") from exc


def _ticks(value: datetime) -> int:
    delta = value - _EPOCH
    return (delta.days * 86_400 + delta.seconds) * 1_000_000 + delta.microseconds


def _text(value: bytes | str) -> str:
    return value.decode() if isinstance(value, bytes) else value


class RedisEventStore(EventStore):
    """Outbox store on ``redis.asyncio``.

    Every call commits on its own.  The business write and the outbox write
    cannot share a transaction, so save events before acknowledging the
    request and treat Redis as the system of record for them.  Use
    :func:`~mp_eventbus.kernel.messaging.shared_store` for the relay.

    *event_ttl* expires records once they are published.  Pending and
    failed records never expire.
    """

    def __init__(
        self,
        client: Any,
        serializer: EventSerializer,
        clock: Clock | None = None,
        *,
        key_prefix: str = "outbox",
        event_ttl: timedelta | None = None,
    ) -> None:
        super().__init__(serializer, clock)
        self._client = client
        self._prefix = key_prefix
        self._ttl = event_ttl

    @classmethod
    async def from_url(
        cls,
        url: str,
        serializer: EventSerializer,
        clock: Clock | None = None,
        *,
        require_persistence: bool = False,
        **kwargs: Any,
    ) -> RedisEventStore:
        """Connect, check persistence settings, and return the store."""
        aioredis = _require_redis()
        store = cls(aioredis.from_url(url), serializer, clock, **kwargs)
        await store.check_persistence(require=require_persistence)
        return store

    async def close(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------

    def _event_key(self, event_id: UUID | str) -> str:
        return f"{self._prefix}:event:{event_id}"

    @property
    def _unpublished_key(self) -> str:
        return f"{self._prefix}:unpublished"

    @property
    def _failed_key(self) -> str:
        return f"{self._prefix}:failed"

    @property
    def _timeline_key(self) -> str:
        return f"{self._prefix}:timeline"

    def _aggregate_key(self, aggregate_id: UUID) -> str:
        return f"{self._prefix}:aggregate:{aggregate_id}"

    def _type_key(self, event_type: str) -> str:
        return f"{self._prefix}:type:{event_type}"

    # ------------------------------------------------------------------
    # Persistence check
    # ------------------------------------------------------------------

    async def check_persistence(self, *, require: bool = False) -> bool:
        """Return ``True`` when AOF is enabled.

        Logs a warning otherwise, or raises :class:`ConfigError` when
        *require* is set.  Servers that disable ``CONFIG`` (managed
        offerings) are reported as unknown.
        """
        errors = self._redis_errors()
        try:
            aof = await self._client.config_get("appendonly")
            rdb = await self._client.config_get("save")
        except errors.ResponseError:
            logger.warning("redis.persistence_unknown", reason="CONFIG GET not permitted")
            return False

        aof_enabled = _text(next(iter(aof.values()), "no")) == "yes"
        rdb_enabled = bool(_text(next(iter(rdb.values()), "")).strip())
        if aof_enabled:
            if not rdb_enabled:
                logger.info("redis.rdb_disabled", hint="enable RDB snapshots alongside AOF")
            return True

        if require:
            raise ConfigError("Redis AOF persistence is disabled; the outbox would lose events on restart")
        logger.warning(
            "redis.aof_disabled",
            rdb_enabled=rdb_enabled,
            hint="set 'appendonly yes'; in-memory only Redis is unsupported for the outbox",
        )
        return False

    @staticmethod
    def _redis_errors() -> Any:
        _require_redis()
        from redis import exceptions  # type: ignore[import-untyped]
        return exceptions

    @contextlib.contextmanager
    def _errors(self, operation: str) -> Iterator[None]:
        errors = self._redis_errors()
        try:
            yield
        except errors.RedisError as exc:
            transient = isinstance(exc, (errors.ConnectionError, errors.TimeoutError, errors.BusyLoadingError))
            raise EventStoreError(operation, transient=transient, cause=exc) from exc

    # ------------------------------------------------------------------
    # Write side
    # ------------------------------------------------------------------

    def _queue_insert(self, pipe: Any, record: StoredEvent) -> None:
        member = str(record.id)
        occurred = _ticks(record.occurred_at)
        pipe.set(self._event_key(record.id), _RECORD.dump_json(record))
        pipe.zadd(self._unpublished_key, {member: _ticks(record.created_at)})
        pipe.zadd(self._timeline_key, {member: occurred})
        pipe.zadd(self._type_key(record.event_type), {member: occurred})
        if record.aggregate_id is not None:
            pipe.zadd(self._aggregate_key(record.aggregate_id), {member: occurred})

    async def save_event(self, event: Event) -> None:
        await self._insert("save_event", [self._to_stored(event)])

    async def save_events(self, events: Iterable[Event]) -> None:
        records = self._to_stored_batch(events)
        if records:
            await self._insert("save_events", records)

    async def _insert(self, operation: str, records: list[StoredEvent]) -> None:
        with self._errors(operation):
            async with self._client.pipeline(transaction=True) as pipe:
                for record in records:
                    self._queue_insert(pipe, record)
                await pipe.execute()

    # ------------------------------------------------------------------
    # Relay side
    # ------------------------------------------------------------------

    async def get_unpublished_events(self, batch_size: int = 100) -> list[StoredEvent]:
        now = self.clock.now()
        due: list[StoredEvent] = []
        offset = 0
        with self._errors("get_unpublished_events"):
            # Events waiting out a backoff stay queued; page past them.
            while len(due) < batch_size:
                ids = await self._client.zrange(self._unpublished_key, offset, offset + batch_size - 1)
                if not ids:
                    break
                offset += len(ids)
                for record in await self._load_many(ids):
                    if record.is_due(now):
                        due.append(record)
                        if len(due) == batch_size:
                            break
        return due

    async def mark_as_published(self, event_id: UUID) -> None:
        def publish(record: StoredEvent) -> str:
            record.is_published = True
            record.published_at = self.clock.now()
            record.next_attempt_at = None
            return "published"

        await self._transition("mark_as_published", event_id, publish)

    async def mark_as_failed(
        self,
        event_id: UUID,
        error_message: str,
        *,
        terminal: bool = False,
        next_attempt_at: datetime | None = None,
    ) -> None:
        def fail(record: StoredEvent) -> str:
            record.retry_count += 1
            record.error_message = error_message
            record.is_failed = terminal
            record.next_attempt_at = None if terminal else next_attempt_at
            return "failed" if terminal else "retry"

        await self._transition("mark_as_failed", event_id, fail)

    async def _transition(self, operation: str, event_id: UUID, change: Callable[[StoredEvent], str]) -> None:
        """Apply *change* to a pending record, re-reading it after every lost race."""
        key = self._event_key(event_id)
        with self._errors(operation):
            for _ in range(_MAX_SWAP_ATTEMPTS):
                raw = await self._client.get(key)
                if raw is None:
                    return
                record = _RECORD.validate_json(raw)
                if not record.is_pending:
                    return
                outcome = change(record)
                ttl_ms = self._ttl_ms if outcome == "published" else 0
                swapped = await self._client.eval(
                    _COMPARE_AND_SWAP,
                    3,
                    key,
                    self._unpublished_key,
                    self._failed_key,
                    raw,
                    _RECORD.dump_json(record),
                    ttl_ms,
                    outcome,
                    str(event_id),
                    _ticks(self.clock.now()),
                )
                if swapped:
                    return
                logger.debug("redis.mark_conflict", event_id=str(event_id), operation=operation)
        raise EventStoreError(
            operation,
            f"Event {event_id} kept changing during '{operation}'",
            transient=True,
        )

    @property
    def _ttl_ms(self) -> int:
        return int(self._ttl.total_seconds() * 1000) if self._ttl else 0

    # ------------------------------------------------------------------
    # Audit queries
    # ------------------------------------------------------------------

    async def get_event(self, event_id: UUID) -> StoredEvent | None:
        with self._errors("get_event"):
            return await self._load(event_id)

    async def get_events_by_aggregate_id(self, aggregate_id: UUID) -> list[StoredEvent]:
        return await self._by_index("get_events_by_aggregate_id", self._aggregate_key(aggregate_id))

    async def get_events_by_time_range(self, start: datetime, end: datetime) -> list[StoredEvent]:
        with self._errors("get_events_by_time_range"):
            ids = await self._client.zrangebyscore(self._timeline_key, _ticks(start), _ticks(end))
            return await self._load_many(ids)

    async def get_events_by_type(self, event_type: str) -> list[StoredEvent]:
        return await self._by_index("get_events_by_type", self._type_key(event_type))

    async def _by_index(self, operation: str, key: str) -> list[StoredEvent]:
        with self._errors(operation):
            ids = await self._client.zrange(key, 0, -1)
            return await self._load_many(ids)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def _load(self, event_id: UUID) -> StoredEvent | None:
        raw = await self._client.get(self._event_key(event_id))
        return _RECORD.validate_json(raw) if raw is not None else None

    async def _load_many(self, ids: list[bytes | str]) -> list[StoredEvent]:
        if not ids:
            return []
        raws = await self._client.mget([self._event_key(_text(i)) for i in ids])
        # Records dropped by the TTL leave dangling index entries; skip them.
        return [_RECORD.validate_json(raw) for raw in raws if raw is not None]


__all__ = ["RedisEventStore"]
