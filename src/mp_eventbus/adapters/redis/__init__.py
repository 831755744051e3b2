"""Redis adapter – key-value outbox store (requires AOF persistence).

Requires the ``redis`` extra::

    pip install "mp-eventbus[redis]"
"""
from mp_eventbus.adapters.redis.event_store import RedisEventStore

__all__ = ["RedisEventStore"]
