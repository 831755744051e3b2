"""Config – EventBusMode and EventBusSettings."""
from __future__ import annotations

import dataclasses
from enum import Enum
from typing import TYPE_CHECKING, Any

from mp_eventbus.config.settings.base import Settings
from mp_eventbus.kernel.errors import InvalidSettingValueError

if TYPE_CHECKING:
    from mp_eventbus.application.outbox import OutboxProcessorOptions


class EventBusMode(str, Enum):
    """How :class:`~mp_eventbus.application.event_bus.EventBus` delivers events.

    ``IN_MEMORY``
        In-process handlers only.  Fast; events are lost on crash.
    ``PERSISTENT``
        Outbox only.  Nothing is dispatched in-process at publish time; the
        outbox relay delivers later (at-least-once).
    ``HYBRID``
        In-process immediately *and* outbox for the distributed leg.  Local
        dispatch belongs to the immediate path only.
    """

    IN_MEMORY = "in_memory"
    PERSISTENT = "persistent"
    HYBRID = "hybrid"

    @classmethod
    def _missing_(cls, value: object) -> EventBusMode | None:
        # Accept "InMemory", "in-memory", "IN_MEMORY"...
        if isinstance(value, str):
            key = value.replace("-", "").replace("_", "").lower()
            for member in cls:
                if member.value.replace("_", "") == key:
                    return member
        return None

    @property
    def dispatches_in_process(self) -> bool:
        return self in (EventBusMode.IN_MEMORY, EventBusMode.HYBRID)

    @property
    def persists(self) -> bool:
        return self in (EventBusMode.PERSISTENT, EventBusMode.HYBRID)


@dataclasses.dataclass
class EventBusSettings(Settings):
    """Deployment-level event bus configuration (``EVENTBUS_*`` env vars).

    Backend connection parameters belong to the chosen store / broker
    adapter, not here.
    """

    _prefix = "EVENTBUS"

    mode: EventBusMode = EventBusMode.HYBRID
    batch_size: int = 100
    processing_interval_seconds: float = 10.0
    max_retry_attempts: int = 5
    backoff_base_seconds: float = 1.0
    backoff_max_seconds: float = 300.0
    backoff_jitter: bool = False
    destination: str | None = None

    def _validate(self) -> None:
        try:
            self.mode = EventBusMode(self.mode)
        except ValueError:
            raise InvalidSettingValueError(
                "mode", self.mode, f"expected one of {[m.value for m in EventBusMode]}"
            ) from None
        for name in ("batch_size", "max_retry_attempts"):
            value = getattr(self, name)
            if value < 1:
                raise InvalidSettingValueError(name, value, "must be >= 1")
        for name in ("processing_interval_seconds", "backoff_base_seconds", "backoff_max_seconds"):
            value = getattr(self, name)
            if value < 0:
                raise InvalidSettingValueError(name, value, "must be >= 0")
        if self.backoff_max_seconds < self.backoff_base_seconds:
            raise InvalidSettingValueError(
                "backoff_max_seconds", self.backoff_max_seconds, "must be >= backoff_base_seconds"
            )

    def to_processor_options(self, **overrides: Any) -> OutboxProcessorOptions:
        from mp_eventbus.application.outbox import OutboxProcessorOptions

        values: dict[str, Any] = {
            "batch_size": self.batch_size,
            "processing_interval_seconds": self.processing_interval_seconds,
            "max_retry_attempts": self.max_retry_attempts,
            "backoff_base_seconds": self.backoff_base_seconds,
            "backoff_max_seconds": self.backoff_max_seconds,
            "backoff_jitter": self.backoff_jitter,
            "destination": self.destination,
        }
        values.update(overrides)
        return OutboxProcessorOptions(**values)


__all__ = ["EventBusMode", "EventBusSettings"]
