"""Observability – NoopMetrics implementation."""
from __future__ import annotations

from mp_eventbus.observability.metrics.ports import Counter, Gauge, Metrics


class _NoopCounter(Counter):
    def add(self, value: float = 1.0, labels: dict[str, str] | None = None) -> None:
        pass


class _NoopGauge(Gauge):
    def set(self, value: float, labels: dict[str, str] | None = None) -> None:
        pass


class NoopMetrics(Metrics):
    """Silent no-op metrics (the default when no backend is configured)."""

    def counter(self, name: str, description: str = "", unit: str = "") -> Counter:
        return _NoopCounter()

    def gauge(self, name: str, description: str = "", unit: str = "") -> Gauge:
        return _NoopGauge()


__all__ = ["NoopMetrics"]
