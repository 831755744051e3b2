"""Observability – metrics ports."""
from mp_eventbus.observability.metrics.noop import NoopMetrics
from mp_eventbus.observability.metrics.ports import Counter, Gauge, Metrics

__all__ = ["Counter", "Gauge", "Metrics", "NoopMetrics"]
