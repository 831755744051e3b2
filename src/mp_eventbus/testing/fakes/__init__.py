"""Testing fakes – in-memory doubles for the event bus ports."""
from mp_eventbus.testing.fakes.clock import FakeClock
from mp_eventbus.testing.fakes.event_store import InMemoryEventStore
from mp_eventbus.testing.fakes.message_publisher import FailingMessagePublisher, RecordingMessagePublisher
from mp_eventbus.testing.fakes.metrics import FakeMetrics

__all__ = [
    "FailingMessagePublisher",
    "FakeClock",
    "FakeMetrics",
    "InMemoryEventStore",
    "RecordingMessagePublisher",
]
