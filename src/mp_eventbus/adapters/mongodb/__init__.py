"""MongoDB adapter – document outbox store and unit of work.

Requires the ``mongodb`` extra::

    pip install "mp-eventbus[mongodb]"
"""

from mp_eventbus.adapters.mongodb.event_store import MongoEventStore
from mp_eventbus.adapters.mongodb.uow import MongoUnitOfWork

__all__ = ["MongoEventStore", "MongoUnitOfWork"]
