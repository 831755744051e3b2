"""EventSerializer – versioned JSON codec for events, built on pydantic."""

from __future__ import annotations

import json
from typing import Any

from pydantic import TypeAdapter, ValidationError

from mp_eventbus.kernel.errors import SerializationError
from mp_eventbus.kernel.events.event import Event
from mp_eventbus.kernel.events.registry import EventTypeRegistry


class EventSerializer:
    """Serialise events to the opaque ``event_data`` text stored in the outbox.

    Wire shape::

        {"schema_version": 1, "data": {"event_id": "...", "occurred_at": "...", ...}}

    Deserialisation resolves the class through the :class:`EventTypeRegistry`
    and validates the payload with a cached :class:`pydantic.TypeAdapter`.
    Any failure is a :class:`SerializationError`, which is never retried.
    """

    def __init__(self, registry: EventTypeRegistry | None = None) -> None:
        self.registry = registry or EventTypeRegistry()
        self._adapters: dict[type[Event], TypeAdapter[Any]] = {}

    def _adapter(self, event_cls: type[Event]) -> TypeAdapter[Any]:
        adapter = self._adapters.get(event_cls)
        if adapter is None:
            adapter = TypeAdapter(event_cls)
            self._adapters[event_cls] = adapter
        return adapter

    def to_dict(self, event: Event) -> dict[str, Any]:
        """Return the JSON-compatible field mapping of *event*."""
        try:
            return self._adapter(type(event)).dump_python(event, mode="json")
        except Exception as exc:
            raise SerializationError(
                f"Cannot serialise {type(event).__qualname__}",
                payload_type=event.event_type,
                cause=exc,
            ) from exc

    def serialize(self, event: Event) -> str:
        envelope = {"schema_version": event.schema_version, "data": self.to_dict(event)}
        return json.dumps(envelope, separators=(",", ":"))

    def deserialize(self, event_type: str, event_data: str) -> Event:
        event_cls = self.registry.resolve(event_type)
        try:
            envelope = json.loads(event_data)
            data = envelope["data"]
        except (ValueError, KeyError, TypeError) as exc:
            raise SerializationError(
                f"Malformed payload for {event_type!r}", payload_type=event_type, cause=exc
            ) from exc
        try:
            return self._adapter(event_cls).validate_python(data)
        except ValidationError as exc:
            raise SerializationError(
                f"Payload does not match {event_cls.__qualname__}",
                payload_type=event_type,
                cause=exc,
            ) from exc


__all__ = ["EventSerializer"]
