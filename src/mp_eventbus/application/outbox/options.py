"""Application outbox – OutboxProcessorOptions."""
from __future__ import annotations

import dataclasses

from mp_eventbus.kernel.errors import InvalidSettingValueError


@dataclasses.dataclass(frozen=True)
class OutboxProcessorOptions:
    """Tuning knobs for :class:`~mp_eventbus.application.outbox.OutboxProcessor`.

    Usually built from :class:`~mp_eventbus.config.EventBusSettings` via
    ``settings.to_processor_options()``.

    ``backoff_jitter`` spreads each retry uniformly over the upper half of
    its backoff window, so relays that fail together do not retry together.
    """

    processing_interval_seconds: float = 10.0
    batch_size: int = 100
    max_retry_attempts: int = 5
    backoff_base_seconds: float = 1.0
    backoff_max_seconds: float = 300.0
    backoff_jitter: bool = False
    destination: str | None = None
    shutdown_timeout_seconds: float = 30.0

    def __post_init__(self) -> None:
        if self.batch_size < 1:
            raise InvalidSettingValueError("batch_size", self.batch_size, "must be >= 1")
        if self.max_retry_attempts < 1:
            raise InvalidSettingValueError("max_retry_attempts", self.max_retry_attempts, "must be >= 1")
        for name in (
            "processing_interval_seconds",
            "backoff_base_seconds",
            "backoff_max_seconds",
            "shutdown_timeout_seconds",
        ):
            if getattr(self, name) < 0:
                raise InvalidSettingValueError(name, getattr(self, name), "must be >= 0")


__all__ = ["OutboxProcessorOptions"]
