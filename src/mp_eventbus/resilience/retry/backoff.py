"""Resilience – backoff strategies."""
from __future__ import annotations

import abc


class BackoffStrategy(abc.ABC):
    """Compute wait duration (seconds) after the *attempt*-th failure (1-based)."""

    @abc.abstractmethod
    def compute(self, attempt: int) -> float: ...


class ExponentialBackoff(BackoffStrategy):
    """Delay doubles per attempt: ``base_delay * 2^(attempt-1)``, capped at ``max_delay``."""

    def __init__(self, base_delay: float = 1.0, max_delay: float = 300.0) -> None:
        self._base = base_delay
        self._max = max_delay

    def compute(self, attempt: int) -> float:
        return min(self._base * (2 ** max(attempt - 1, 0)), self._max)


__all__ = ["BackoffStrategy", "ExponentialBackoff"]
