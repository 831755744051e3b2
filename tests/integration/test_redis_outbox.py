"""Integration tests for the Redis outbox.

Uses testcontainers to spawn a real Redis instance.
Run with: pytest tests/integration/test_redis_outbox.py -m integration -v
"""
from __future__ import annotations

import asyncio
import dataclasses
from datetime import timedelta

import pytest
from testcontainers.redis import RedisContainer

from mp_eventbus.adapters.redis import RedisEventStore
from mp_eventbus.application.outbox import OutboxProcessor
from mp_eventbus.kernel.events import DomainEvent, EventSerializer, EventTypeRegistry
from mp_eventbus.kernel.messaging import shared_store
from mp_eventbus.testing.fakes import FakeClock, RecordingMessagePublisher


@dataclasses.dataclass(frozen=True)
class TicketClosed(DomainEvent, event_type="ticket.closed"):
    ticket: str


SERIALIZER = EventSerializer(EventTypeRegistry([TicketClosed]))


def _run(coro):  # type: ignore[no-untyped-def]
    return asyncio.run(coro)


def _redis_url(container) -> str:  # type: ignore[no-untyped-def]
    host = container.get_container_host_ip()
    port = container.get_exposed_port(container.port)
    return f"redis://{host}:{port}/0"


@pytest.mark.integration
class TestRedisOutbox:
    def test_relay_and_mark(self) -> None:
        with RedisContainer() as container:

            async def run() -> None:
                store = await RedisEventStore.from_url(_redis_url(container), SERIALIZER, FakeClock())
                await store.save_events([TicketClosed(ticket=t) for t in ("t-1", "t-2")])

                broker = RecordingMessagePublisher()
                processor = OutboxProcessor(shared_store(store), broker, SERIALIZER)
                assert await processor.process_outbox() == 2
                assert [m.payload["ticket"] for m in broker.messages] == ["t-1", "t-2"]
                assert await store.get_unpublished_events() == []
                await store.close()

            _run(run())

    def test_backoff_hides_event_until_due(self) -> None:
        with RedisContainer() as container:

            async def run() -> None:
                clock = FakeClock()
                store = await RedisEventStore.from_url(_redis_url(container), SERIALIZER, clock)
                event = TicketClosed(ticket="t-1")
                await store.save_event(event)
                await store.mark_as_failed(event.event_id, "PublishError: down", next_attempt_at=clock.now() + timedelta(seconds=30))

                assert await store.get_unpublished_events() == []
                clock.advance(seconds=30)
                [due] = await store.get_unpublished_events()
                assert due.retry_count == 1
                await store.close()

            _run(run())

    def test_racing_marks_leave_one_terminal_state(self) -> None:
        with RedisContainer() as container:

            async def run() -> None:
                url = _redis_url(container)
                first = await RedisEventStore.from_url(url, SERIALIZER, FakeClock())
                second = await RedisEventStore.from_url(url, SERIALIZER, FakeClock())
                events = [TicketClosed(ticket=f"t-{i}") for i in range(20)]
                await first.save_events(events)

                await asyncio.gather(
                    *(first.mark_as_published(e.event_id) for e in events),
                    *(second.mark_as_failed(e.event_id, "PublishError: down", terminal=True) for e in events),
                )

                for event in events:
                    record = await first.get_event(event.event_id)
                    assert record is not None
                    assert record.is_published != record.is_failed
                assert await first.get_unpublished_events() == []
                await first.close()
                await second.close()

            _run(run())

    def test_ttl_set_only_on_publish(self) -> None:
        with RedisContainer() as container:

            async def run() -> None:
                store = await RedisEventStore.from_url(
                    _redis_url(container), SERIALIZER, FakeClock(), event_ttl=timedelta(hours=1)
                )
                event = TicketClosed(ticket="t-1")
                await store.save_event(event)
                key = f"outbox:event:{event.event_id}"
                assert await store._client.pttl(key) == -1

                await store.mark_as_published(event.event_id)
                assert 0 < await store._client.pttl(key) <= 3_600_000
                await store.close()

            _run(run())
