"""SQLAlchemy adapter – SqlAlchemyUnitOfWork and the relay's store provider."""
from __future__ import annotations

import contextlib
from typing import Any, AsyncIterator, Callable

from mp_eventbus.adapters.sqlalchemy.event_store import SqlAlchemyEventStore
from mp_eventbus.kernel.events import EventSerializer
from mp_eventbus.kernel.messaging import EventStore, EventStoreProvider
from mp_eventbus.kernel.time import Clock
from mp_eventbus.kernel.uow import UnitOfWork


class SqlAlchemyUnitOfWork(UnitOfWork):
    """SQLAlchemy async unit of work.

    Commits on clean exit, rolls back on error, always closes the session.

    Usage::

        async with SqlAlchemyUnitOfWork(session_factory) as uow:
            uow.session.add(order)
            bus = EventBus(EventBusMode.PERSISTENT, event_store=uow.event_store(serializer))
            await bus.publish(OrderPlaced(order_id=order.id))
    """

    def __init__(self, session_factory: Callable[[], Any]) -> None:
        self._factory = session_factory
        self.session: Any = None

    async def __aenter__(self) -> "SqlAlchemyUnitOfWork":
        self.session = self._factory()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        try:
            if exc_type is None:
                await self.commit()
            else:
                await self.rollback()
        finally:
            await self.session.close()

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()

    def event_store(self, serializer: EventSerializer, clock: Clock | None = None, **kwargs: Any) -> SqlAlchemyEventStore:
        """Return an outbox store bound to this unit of work's session."""
        if self.session is None:
            raise RuntimeError("SqlAlchemyUnitOfWork is not active")
        return SqlAlchemyEventStore(self.session, serializer, clock, **kwargs)


def sqlalchemy_store_provider(
    session_factory: Callable[[], Any],
    serializer: EventSerializer,
    clock: Clock | None = None,
    **kwargs: Any,
) -> EventStoreProvider:
    """Provider giving the outbox relay one fresh session per poll cycle.

    The stores it yields commit after every mark, so an event already
    published stays marked even if the cycle dies halfway through its batch.
    """
    kwargs.setdefault("autocommit", True)

    @contextlib.asynccontextmanager
    async def _provide() -> AsyncIterator[EventStore]:
        async with SqlAlchemyUnitOfWork(session_factory) as uow:
            yield uow.event_store(serializer, clock, **kwargs)

    return _provide


__all__ = ["SqlAlchemyUnitOfWork", "sqlalchemy_store_provider"]
