"""Integration tests for the SQLAlchemy outbox on PostgreSQL.

Uses testcontainers to spawn a real PostgreSQL instance.
Run with: pytest tests/integration/test_postgres_outbox.py -m integration -v
"""
from __future__ import annotations

import asyncio
import dataclasses
from typing import Any

import pytest
from testcontainers.postgres import PostgresContainer

from mp_eventbus.adapters.sqlalchemy import (
    SqlAlchemySessionFactory,
    SqlAlchemyUnitOfWork,
    sqlalchemy_store_provider,
)
from mp_eventbus.application.event_bus import EventBus, EventBusMode
from mp_eventbus.application.outbox import OutboxProcessor, OutboxProcessorOptions
from mp_eventbus.kernel.events import DomainEvent, EventSerializer, EventTypeRegistry
from mp_eventbus.testing.fakes import FailingMessagePublisher, RecordingMessagePublisher


@dataclasses.dataclass(frozen=True)
class OrderPlaced(DomainEvent, event_type="order.placed"):
    order_id: str


SERIALIZER = EventSerializer(EventTypeRegistry([OrderPlaced]))


# ---------------------------------------------------------------------------
# helpers
# ---------------------------------------------------------------------------


def _run(coro):  # type: ignore[no-untyped-def]
    return asyncio.run(coro)


def _pg_url(container: Any) -> str:
    """Return an asyncpg-compatible URL from a PostgresContainer."""
    raw = container.get_connection_url()
    # testcontainers returns psycopg2 URL; swap driver for asyncpg
    return raw.replace("psycopg2", "asyncpg", 1)


async def _factory(container: Any) -> SqlAlchemySessionFactory:
    factory = SqlAlchemySessionFactory(_pg_url(container))
    await factory.create_outbox_table()
    return factory


async def _place(factory: SqlAlchemySessionFactory, *order_ids: str) -> None:
    async with SqlAlchemyUnitOfWork(factory) as uow:
        bus = EventBus(EventBusMode.PERSISTENT, event_store=uow.event_store(SERIALIZER))
        await bus.publish_all([OrderPlaced(order_id=o) for o in order_ids])


@pytest.mark.integration
class TestPostgresOutbox:
    def test_commit_then_relay(self) -> None:
        with PostgresContainer("postgres:16-alpine") as container:

            async def run() -> None:
                factory = await _factory(container)
                await _place(factory, "o-1", "o-2", "o-3")

                broker = RecordingMessagePublisher()
                processor = OutboxProcessor(sqlalchemy_store_provider(factory, SERIALIZER), broker, SERIALIZER)
                assert await processor.process_outbox() == 3
                assert [m.payload["order_id"] for m in broker.messages] == ["o-1", "o-2", "o-3"]
                assert await processor.process_outbox() == 0

                await factory.dispose()

            _run(run())

    def test_rollback_leaves_no_outbox_row(self) -> None:
        with PostgresContainer("postgres:16-alpine") as container:

            async def run() -> None:
                factory = await _factory(container)
                with pytest.raises(RuntimeError, match="force rollback"):
                    async with SqlAlchemyUnitOfWork(factory) as uow:
                        await uow.event_store(SERIALIZER).save_event(OrderPlaced(order_id="o-9"))
                        raise RuntimeError("force rollback")

                async with SqlAlchemyUnitOfWork(factory) as uow:
                    assert await uow.event_store(SERIALIZER).get_unpublished_events() == []

                await factory.dispose()

            _run(run())

    def test_failed_delivery_is_scheduled_for_retry(self) -> None:
        with PostgresContainer("postgres:16-alpine") as container:

            async def run() -> None:
                factory = await _factory(container)
                await _place(factory, "o-1")

                processor = OutboxProcessor(
                    sqlalchemy_store_provider(factory, SERIALIZER),
                    FailingMessagePublisher(),
                    SERIALIZER,
                    options=OutboxProcessorOptions(backoff_base_seconds=60),
                )
                assert await processor.process_outbox() == 0

                async with SqlAlchemyUnitOfWork(factory) as uow:
                    store = uow.event_store(SERIALIZER)
                    assert await store.get_unpublished_events() == []
                    [record] = await store.get_events_by_type("order.placed")
                    assert record.retry_count == 1
                    assert record.next_attempt_at is not None
                    assert record.error_message.startswith("PublishError")

                await factory.dispose()

            _run(run())
