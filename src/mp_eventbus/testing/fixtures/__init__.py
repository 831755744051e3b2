"""Testing fixtures – pytest fixtures for the fakes.

Enable in a ``conftest.py``::

    pytest_plugins = ["mp_eventbus.testing.fixtures"]
"""
from mp_eventbus.testing.fixtures.clock import fake_clock
from mp_eventbus.testing.fixtures.event_bus import (
    event_registry,
    event_serializer,
    fake_metrics,
    handler_registry,
    in_memory_event_publisher,
    in_memory_event_store,
    recording_message_publisher,
)

__all__ = [
    "event_registry",
    "event_serializer",
    "fake_clock",
    "fake_metrics",
    "handler_registry",
    "in_memory_event_publisher",
    "in_memory_event_store",
    "recording_message_publisher",
]
