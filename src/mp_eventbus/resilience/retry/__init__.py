"""Resilience – retry with configurable backoff and jitter strategies."""
from mp_eventbus.resilience.retry.backoff import BackoffStrategy, ExponentialBackoff
from mp_eventbus.resilience.retry.jitter import EqualJitter, FullJitter, JitterStrategy, NoJitter
from mp_eventbus.resilience.retry.policy import RetryPolicy

__all__ = [
    "BackoffStrategy", "EqualJitter", "ExponentialBackoff",
    "FullJitter", "JitterStrategy", "NoJitter", "RetryPolicy",
]
