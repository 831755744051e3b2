"""Infrastructure errors – I/O failures, classified as transient or permanent."""

from __future__ import annotations

import builtins
from typing import Any

from mp_eventbus.kernel.errors.base import BaseError


class InfrastructureError(BaseError):
    """Infrastructure / I/O failure that is not a business rule violation.

    ``transient`` tells retrying callers whether another attempt may succeed.
    """

    default_code = "infrastructure_error"
    default_transient: bool = True

    def __init__(
        self,
        message: str,
        *,
        transient: bool | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.transient = self.default_transient if transient is None else transient

    def to_dict(self) -> dict[str, Any]:
        base = super().to_dict()
        base["transient"] = self.transient
        return base


class EventStoreError(InfrastructureError):
    """A read or write against the event store failed."""

    default_code = "event_store_error"

    def __init__(
        self,
        operation: str,
        message: str | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message or f"Event store operation '{operation}' failed", **kwargs)
        self.operation = operation


class PublishError(InfrastructureError):
    """Handing a message to the broker failed."""

    default_code = "publish_error"

    def __init__(
        self,
        destination: str | None,
        message: str | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(
            message or f"Could not publish to '{destination or 'default'}'", **kwargs
        )
        self.destination = destination


class SerializationError(InfrastructureError):
    """Failed to serialize or deserialize a payload. Never worth retrying."""

    default_code = "serialization_error"
    default_transient = False

    def __init__(
        self,
        message: str,
        *,
        payload_type: str | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.payload_type = payload_type


class MappingError(InfrastructureError):
    """A domain event could not be translated into an integration event."""

    default_code = "mapping_error"
    default_transient = False

    def __init__(self, event_type: str, message: str | None = None, **kwargs: Any) -> None:
        super().__init__(message or f"Could not map event '{event_type}'", **kwargs)
        self.event_type = event_type


def is_transient(exc: BaseException) -> bool:
    """Return ``True`` when *exc* is worth another delivery attempt.

    ``InfrastructureError`` subclasses carry their own flag.  Builtin
    connection / timeout / OS errors are transient; anything else (bugs,
    validation failures, poison payloads) is permanent.
    """
    if isinstance(exc, InfrastructureError):
        return exc.transient
    if isinstance(exc, BaseError):
        return False
    return isinstance(exc, (builtins.ConnectionError, builtins.TimeoutError, OSError))


__all__ = [
    "EventStoreError",
    "InfrastructureError",
    "MappingError",
    "PublishError",
    "SerializationError",
    "is_transient",
]
