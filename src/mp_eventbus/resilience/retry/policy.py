"""Resilience – RetryPolicy for connection set-up of broker adapters."""
from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, TypeVar

from mp_eventbus.kernel.errors import is_transient
from mp_eventbus.observability.logging import get_logger
from mp_eventbus.resilience.retry.backoff import BackoffStrategy, ExponentialBackoff
from mp_eventbus.resilience.retry.jitter import FullJitter, JitterStrategy

T = TypeVar("T")
logger = get_logger(__name__)


class RetryPolicy:
    """Retry an async call while its failures classify as transient."""

    def __init__(
        self,
        max_attempts: int = 3,
        backoff: BackoffStrategy | None = None,
        jitter: JitterStrategy | None = None,
    ) -> None:
        self.max_attempts = max_attempts
        self.backoff = backoff or ExponentialBackoff(base_delay=0.2, max_delay=5.0)
        self.jitter = jitter or FullJitter()

    async def execute_async(self, func: Callable[[], Awaitable[T]]) -> T:
        """Execute *func* with retry; the last failure is re-raised."""
        attempt = 1
        while True:
            try:
                return await func()
            except Exception as exc:
                if not is_transient(exc) or attempt >= self.max_attempts:
                    raise
                delay = self.jitter.apply(self.backoff.compute(attempt))
                logger.debug("retry.scheduled", attempt=attempt, delay=round(delay, 3), error=repr(exc))
                await asyncio.sleep(delay)
                attempt += 1


__all__ = ["RetryPolicy"]
