"""MongoDB adapter – MongoUnitOfWork."""

from __future__ import annotations

from typing import Any

from mp_eventbus.adapters.mongodb.event_store import MongoEventStore
from mp_eventbus.kernel.events import EventSerializer
from mp_eventbus.kernel.time import Clock
from mp_eventbus.kernel.uow import UnitOfWork


class MongoUnitOfWork(UnitOfWork):
    """Unit of work backed by a **motor** client session.

    Multi-document transactions need a replica set.  On a standalone server
    the outbox write and the business write are not atomic; run MongoDB as a
    (single-node) replica set in every environment that relies on the outbox.

    Usage::

        async with MongoUnitOfWork(motor_client) as uow:
            await orders.insert_one(order_doc, session=uow.session)
            store = uow.event_store(db[MongoEventStore.COLLECTION_NAME], serializer)
            await EventBus(EventBusMode.PERSISTENT, event_store=store).publish(event)
    """

    def __init__(self, client: Any) -> None:
        self._client = client
        self.session: Any = None

    async def __aenter__(self) -> "MongoUnitOfWork":
        self.session = await self._client.start_session()
        self.session.start_transaction()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        try:
            if exc_type is None:
                await self.commit()
            else:
                await self.rollback()
        finally:
            await self.session.end_session()

    async def commit(self) -> None:
        await self.session.commit_transaction()

    async def rollback(self) -> None:
        await self.session.abort_transaction()

    def event_store(self, collection: Any, serializer: EventSerializer, clock: Clock | None = None) -> MongoEventStore:
        """Return an outbox store whose writes join this transaction."""
        if self.session is None:
            raise RuntimeError("MongoUnitOfWork is not active")
        return MongoEventStore(collection, serializer, clock, session=self.session)


__all__ = ["MongoUnitOfWork"]
