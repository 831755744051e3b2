"""Application outbox – OutboxProcessor, the background relay.

Each poll cycle:

1. opens its own store session through the :data:`EventStoreProvider`,
2. fetches due Pending events, oldest first,
3. per event: deserialize, optionally replay to local handlers, map to the
   integration event, hand the message to the broker,
4. marks the event Published, or records the failure and schedules the next
   attempt with exponential backoff (optionally jittered),
5. sleeps ``processing_interval_seconds`` and repeats.

Several processors may poll the same store.  There is no claim or lease
step, so an event can occasionally be delivered twice; the event id travels
as the message id and the ``event-id`` header so consumers can de-duplicate.
"""
from __future__ import annotations

import asyncio
import contextlib
from datetime import timedelta
from typing import Any

from mp_eventbus.application.outbox.alerting import LoggingOutboxAlerter, OutboxAlerter
from mp_eventbus.application.outbox.options import OutboxProcessorOptions
from mp_eventbus.kernel.errors import BaseError, MappingError, is_transient
from mp_eventbus.kernel.events import DomainEvent, Event, EventSerializer
from mp_eventbus.kernel.messaging import (
    EventPublisher,
    EventStore,
    EventStoreProvider,
    IntegrationEventMapper,
    Message,
    MessageHeaders,
    MessagePublisher,
    StoredEvent,
)
from mp_eventbus.kernel.time import Clock, SystemClock
from mp_eventbus.kernel.types import Err, Ok, Result
from mp_eventbus.observability.logging import get_logger
from mp_eventbus.observability.metrics import Metrics, NoopMetrics
from mp_eventbus.resilience.retry import EqualJitter, ExponentialBackoff, JitterStrategy, NoJitter

logger = get_logger(__name__)

_MAX_ERROR_LENGTH = 4000


def _describe(exc: BaseException) -> str:
    text = exc.message if isinstance(exc, BaseError) else str(exc)
    return f"{type(exc).__name__}: {text}"[:_MAX_ERROR_LENGTH]


class OutboxProcessor:
    """Relay Pending outbox events to the message bus.

    Example::

        processor = OutboxProcessor(
            sqlalchemy_store_provider(session_factory, serializer),
            KafkaMessagePublisher(bootstrap_servers="kafka:9092"),
            serializer,
            mapper=mapper,
            options=settings.to_processor_options(),
        )
        await processor.start()
        ...
        await processor.stop()
    """

    def __init__(
        self,
        store_provider: EventStoreProvider,
        message_publisher: MessagePublisher,
        serializer: EventSerializer,
        *,
        mapper: IntegrationEventMapper | None = None,
        local_publisher: EventPublisher | None = None,
        options: OutboxProcessorOptions | None = None,
        clock: Clock | None = None,
        alerter: OutboxAlerter | None = None,
        metrics: Metrics | None = None,
    ) -> None:
        self._store_provider = store_provider
        self._publisher = message_publisher
        self._serializer = serializer
        self._mapper = mapper
        self._local_publisher = local_publisher
        self.options = options or OutboxProcessorOptions()
        self._clock: Clock = clock or SystemClock()
        self._alerter: OutboxAlerter = alerter or LoggingOutboxAlerter()
        self._backoff = ExponentialBackoff(
            base_delay=self.options.backoff_base_seconds,
            max_delay=self.options.backoff_max_seconds,
        )
        self._jitter: JitterStrategy = EqualJitter() if self.options.backoff_jitter else NoJitter()

        metrics = metrics or NoopMetrics()
        self._published_total = metrics.counter(
            "outbox_events_published_total", "Outbox events marked published"
        )
        self._retried_total = metrics.counter(
            "outbox_events_retried_total", "Failed deliveries scheduled for another attempt"
        )
        self._failed_total = metrics.counter(
            "outbox_events_failed_total", "Outbox events moved to the Failed state"
        )

        self._stopping = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Spawn the polling loop as a background task."""
        if self.is_running:
            logger.warning("outbox.already_running")
            return
        self._stopping = asyncio.Event()
        self._task = asyncio.create_task(self._run_loop(), name="outbox-processor")
        logger.info(
            "outbox.started",
            batch_size=self.options.batch_size,
            interval=self.options.processing_interval_seconds,
            max_retry_attempts=self.options.max_retry_attempts,
        )

    async def stop(self) -> None:
        """Request shutdown and wait for the loop to finish.

        The event in flight completes; the rest of the batch stays Pending.
        After ``shutdown_timeout_seconds`` the task is cancelled.
        """
        self._stopping.set()
        task, self._task = self._task, None
        if task is None:
            return
        try:
            await asyncio.wait_for(task, timeout=self.options.shutdown_timeout_seconds)
        except TimeoutError:
            logger.warning("outbox.shutdown_timed_out", timeout=self.options.shutdown_timeout_seconds)
        logger.info("outbox.stopped")

    async def run_until_stopped(self) -> None:
        """Run the polling loop in the calling task until :meth:`stop` or cancellation."""
        self._stopping = asyncio.Event()
        logger.info("outbox.started", batch_size=self.options.batch_size)
        try:
            await self._run_loop()
        finally:
            logger.info("outbox.stopped")

    async def _run_loop(self) -> None:
        while not self._stopping.is_set():
            try:
                await self.process_outbox()
            except Exception:
                logger.exception("outbox.cycle_failed")
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(
                    self._stopping.wait(), timeout=self.options.processing_interval_seconds
                )

    # ------------------------------------------------------------------
    # One poll cycle
    # ------------------------------------------------------------------

    async def process_outbox(self) -> int:
        """Run a single poll cycle; return the number of events marked published."""
        published = 0
        async with self._store_provider() as store:
            batch = await store.get_unpublished_events(self.options.batch_size)
            if not batch:
                return 0
            logger.debug("outbox.batch_fetched", size=len(batch))

            for index, stored in enumerate(batch):
                if self._stopping.is_set():
                    logger.info("outbox.cycle_interrupted", remaining=len(batch) - index)
                    break
                outcome = await self._deliver(stored)
                if isinstance(outcome, Ok):
                    if await self._record_success(store, stored, sent=outcome.value):
                        published += 1
                else:
                    await self._record_failure(store, stored, outcome.error)

        if published:
            logger.info("outbox.batch_processed", published=published, total=len(batch))
        return published

    async def _deliver(self, stored: StoredEvent) -> Result[bool, Exception]:
        """Attempt delivery; ``Ok(False)`` means the event is internal-only."""
        try:
            event = self._serializer.deserialize(stored.event_type, stored.event_data)
            if self._local_publisher is not None and isinstance(event, DomainEvent):
                await self._local_publisher.publish(event)
            message = self._to_message(stored, event)
            if message is None:
                return Ok(False)
            await self._publisher.publish(message, self.options.destination)
        except Exception as exc:
            return Err(exc)
        return Ok(True)

    def _to_message(self, stored: StoredEvent, event: Event) -> Message[dict[str, Any]] | None:
        outgoing: Event | None = event
        if self._mapper is not None and isinstance(event, DomainEvent):
            try:
                outgoing = self._mapper.map(event)
            except Exception as exc:
                raise MappingError(stored.event_type, cause=exc) from exc
        if outgoing is None:
            return None

        extra = {"event-id": str(stored.id)}
        if stored.aggregate_id is not None:
            extra["aggregate-id"] = str(stored.aggregate_id)
        if stored.aggregate_type:
            extra["aggregate-type"] = stored.aggregate_type
        return Message(
            id=str(stored.id),
            topic=outgoing.event_type,
            payload=self._serializer.to_dict(outgoing),
            headers=MessageHeaders(
                event_type=outgoing.event_type,
                schema_version=outgoing.schema_version,
                extra=extra,
            ),
            occurred_at=stored.occurred_at,
        )

    async def _record_success(self, store: EventStore, stored: StoredEvent, *, sent: bool) -> bool:
        try:
            await store.mark_as_published(stored.id)
        except Exception:
            # Delivered but not marked: the next cycle redelivers it.
            logger.exception("outbox.mark_published_failed", event_id=str(stored.id))
            return False
        self._published_total.add(labels={"event_type": stored.event_type})
        logger.debug(
            "outbox.event_published" if sent else "outbox.event_skipped",
            event_id=str(stored.id),
            event_type=stored.event_type,
        )
        return True

    async def _record_failure(self, store: EventStore, stored: StoredEvent, exc: Exception) -> None:
        attempts = stored.retry_count + 1
        transient = is_transient(exc)
        terminal = not transient or attempts >= self.options.max_retry_attempts
        next_attempt_at = None
        if not terminal:
            delay = self._jitter.apply(self._backoff.compute(attempts))
            next_attempt_at = self._clock.now() + timedelta(seconds=delay)
        error_message = _describe(exc)

        try:
            await store.mark_as_failed(
                stored.id,
                error_message,
                terminal=terminal,
                next_attempt_at=next_attempt_at,
            )
        except Exception:
            logger.exception("outbox.mark_failed_failed", event_id=str(stored.id))
            return

        if not terminal:
            self._retried_total.add(labels={"event_type": stored.event_type})
            logger.warning(
                "outbox.retry_scheduled",
                event_id=str(stored.id),
                event_type=stored.event_type,
                retry_count=attempts,
                next_attempt_at=next_attempt_at.isoformat() if next_attempt_at else None,
                error=error_message,
            )
            return

        self._failed_total.add(labels={"event_type": stored.event_type})
        logger.error(
            "outbox.event_failed",
            event_id=str(stored.id),
            event_type=stored.event_type,
            retry_count=attempts,
            permanent=not transient,
            error=error_message,
        )
        stored.retry_count = attempts
        stored.error_message = error_message
        stored.is_failed = True
        stored.next_attempt_at = None
        try:
            await self._alerter.event_failed(stored)
        except Exception:
            logger.exception("outbox.alert_failed", event_id=str(stored.id))


__all__ = ["OutboxProcessor"]
