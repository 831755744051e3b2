"""Domain and integration events."""

from __future__ import annotations

import dataclasses
from datetime import UTC, datetime
from typing import Any, ClassVar
from uuid import UUID, uuid4


@dataclasses.dataclass(frozen=True, kw_only=True)
class Event:
    """Common base for everything the event bus carries.

    ``event_type`` is a stable discriminator that survives class renames and
    module moves.  Declare it with a class keyword::

        @dataclasses.dataclass(frozen=True)
        class OrderPlaced(DomainEvent, event_type="order.placed"):
            order_id: str

    When omitted it falls back to the class name.  ``schema_version`` is
    embedded in every serialised payload so consumers can branch on it.
    """

    event_type: ClassVar[str] = ""
    schema_version: ClassVar[int] = 1

    event_id: UUID = dataclasses.field(default_factory=uuid4)
    occurred_at: datetime = dataclasses.field(default_factory=lambda: datetime.now(UTC))

    def __init_subclass__(
        cls,
        event_type: str | None = None,
        schema_version: int | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init_subclass__(**kwargs)
        if event_type is not None:
            cls.event_type = event_type
        elif "event_type" not in cls.__dict__:
            cls.event_type = cls.__name__
        if schema_version is not None:
            cls.schema_version = schema_version


@dataclasses.dataclass(frozen=True, kw_only=True)
class DomainEvent(Event):
    """Something that happened inside this service.

    Dispatched to in-process handlers and, depending on the bus mode,
    written to the outbox.  ``aggregate_id`` / ``aggregate_type`` correlate
    the event with the aggregate that raised it.
    """

    aggregate_id: UUID | None = None
    aggregate_type: str | None = None


@dataclasses.dataclass(frozen=True, kw_only=True)
class IntegrationEvent(Event):
    """Cross-service message derived from a domain event.

    Must be self-contained: only plain, JSON-friendly values, no references
    into a live object graph.
    """


__all__ = ["DomainEvent", "Event", "IntegrationEvent"]
