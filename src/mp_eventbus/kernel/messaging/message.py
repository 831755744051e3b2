"""Kernel messaging – message envelope and the distributed publisher port."""
from __future__ import annotations

import abc
import dataclasses
from datetime import UTC, datetime
from typing import Any, Generic, TypeAlias, TypeVar
from uuid import uuid4

T = TypeVar("T")

MessageId: TypeAlias = str


@dataclasses.dataclass(frozen=True)
class MessageHeaders:
    """Envelope metadata propagated with every message."""

    event_type: str | None = None
    correlation_id: str | None = None
    causation_id: str | None = None
    content_type: str = "application/json"
    schema_version: int = 1
    extra: dict[str, str] = dataclasses.field(default_factory=dict)

    def as_dict(self) -> dict[str, str]:
        """Flatten to string headers understood by every broker."""
        headers = dict(self.extra)
        headers["content-type"] = self.content_type
        headers["schema-version"] = str(self.schema_version)
        if self.event_type:
            headers["event-type"] = self.event_type
        if self.correlation_id:
            headers["correlation-id"] = self.correlation_id
        if self.causation_id:
            headers["causation-id"] = self.causation_id
        return headers


@dataclasses.dataclass(frozen=True)
class Message(Generic[T]):
    """Transport-agnostic message envelope.

    ``id`` carries the originating event id so consumers can de-duplicate
    redeliveries.
    """

    id: MessageId = dataclasses.field(default_factory=lambda: str(uuid4()))
    topic: str = ""
    payload: T | None = None
    headers: MessageHeaders = dataclasses.field(default_factory=MessageHeaders)
    occurred_at: datetime = dataclasses.field(default_factory=lambda: datetime.now(UTC))


class MessagePublisher(abc.ABC):
    """Port: hand messages to a broker (RabbitMQ, Kafka, SNS, Service Bus…).

    Broker specifics (partition keys, delivery receipts) stay inside the
    adapter.  Failures should surface as
    :class:`~mp_eventbus.kernel.errors.PublishError` with ``transient`` set.
    """

    @abc.abstractmethod
    async def publish(self, message: Message[Any], destination: str | None = None) -> None: ...

    @abc.abstractmethod
    async def send(self, command: Message[Any], endpoint: str) -> None: ...


__all__ = ["Message", "MessageHeaders", "MessageId", "MessagePublisher"]
