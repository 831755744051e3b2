"""Resilience – jitter applied on top of a backoff delay.

Relays and broker connections that fail together would otherwise retry
together.  Each strategy draws from its own :class:`random.Random`, so tests
can pass a seeded generator.
"""
from __future__ import annotations

import abc
import random


class JitterStrategy(abc.ABC):
    """Turn a computed backoff delay into the delay actually waited."""

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random()

    @abc.abstractmethod
    def apply(self, delay: float) -> float: ...


class NoJitter(JitterStrategy):
    """Wait exactly the computed delay."""

    def apply(self, delay: float) -> float:
        return delay


class FullJitter(JitterStrategy):
    """Anywhere in ``[0, delay]``.

    Spreads reconnect storms widest; used by
    :class:`~mp_eventbus.resilience.retry.RetryPolicy`.
    """

    def apply(self, delay: float) -> float:
        return self._rng.uniform(0.0, delay)


class EqualJitter(JitterStrategy):
    """Anywhere in ``[delay / 2, delay]``.

    Keeps at least half of the backoff, which suits the outbox schedule: a
    failing event never comes back sooner than half its backoff window.
    """

    def apply(self, delay: float) -> float:
        return self._rng.uniform(delay / 2, delay)


__all__ = ["EqualJitter", "FullJitter", "JitterStrategy", "NoJitter"]
