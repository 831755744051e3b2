"""SQLAlchemy adapter – SqlAlchemySessionFactory."""
from __future__ import annotations

from typing import Any

from mp_eventbus.adapters.sqlalchemy.event_store import DEFAULT_TABLE_NAME, SqlAlchemyEventStore, _require_sqlalchemy


class SqlAlchemySessionFactory:
    """Creates async SQLAlchemy sessions from an engine URL.

    The relay and request handlers should each draw sessions from here
    rather than sharing one long-lived session.
    """

    def __init__(self, database_url: str, **engine_kwargs: Any) -> None:
        _require_sqlalchemy()
        from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # type: ignore[import-untyped]
        self.engine = create_async_engine(database_url, **engine_kwargs)
        self._session_factory = async_sessionmaker(self.engine, class_=AsyncSession, expire_on_commit=False)

    def __call__(self) -> Any:
        return self._session_factory()

    async def create_outbox_table(self, name: str = DEFAULT_TABLE_NAME) -> None:
        await SqlAlchemyEventStore.create_table(self.engine, name)

    async def dispose(self) -> None:
        await self.engine.dispose()


__all__ = ["SqlAlchemySessionFactory"]
