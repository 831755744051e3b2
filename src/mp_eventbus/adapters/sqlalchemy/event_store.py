"""SQLAlchemy adapter – SqlAlchemyEventStore, the relational outbox."""
from __future__ import annotations

import contextlib
import functools
from datetime import UTC, datetime
from typing import Any, Iterable, Iterator
from uuid import UUID

from mp_eventbus.kernel.errors import EventStoreError
from mp_eventbus.kernel.events import Event, EventSerializer
from mp_eventbus.kernel.messaging import EventStore, StoredEvent
from mp_eventbus.kernel.time import Clock

DEFAULT_TABLE_NAME = "outbox_events"


def _require_sqlalchemy() -> Any:
    try:
        import sqlalchemy  # type: ignore[import-untyped]
        return sqlalchemy
    except ImportError as exc:
        raise ImportError("Install 'mp-eventbus[sqlalchemy]' to use the SQLAlchemy adapter") from exc


def outbox_table(metadata: Any | None = None, name: str = DEFAULT_TABLE_NAME) -> Any:
    """Build the outbox :class:`~sqlalchemy.Table` on *metadata*.

    Pass your application's ``MetaData`` to have Alembic autogenerate the
    migration alongside your own tables.

    Indexes:

    - ``(is_published, is_failed, created_at)``: relay fetch path
    - ``aggregate_id`` and ``event_type``: audit queries
    """
    sa = _require_sqlalchemy()
    meta = metadata if metadata is not None else sa.MetaData()
    return sa.Table(
        name,
        meta,
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("event_type", sa.String(256), nullable=False),
        sa.Column("event_data", sa.Text, nullable=False),
        sa.Column("aggregate_id", sa.Uuid, nullable=True),
        sa.Column("aggregate_type", sa.String(256), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_published", sa.Boolean, nullable=False, default=False),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("retry_count", sa.Integer, nullable=False, default=0),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column("is_failed", sa.Boolean, nullable=False, default=False),
        sa.Column("next_attempt_at", sa.DateTime(timezone=True), nullable=True),
        sa.Index(f"ix_{name}_pending", "is_published", "is_failed", "created_at"),
        sa.Index(f"ix_{name}_aggregate_id", "aggregate_id"),
        sa.Index(f"ix_{name}_event_type", "event_type"),
    )


@functools.cache
def _default_table(name: str) -> Any:
    return outbox_table(name=name)


def _aware(value: datetime | None) -> datetime | None:
    # SQLite hands timestamps back without tzinfo; everything is stored as UTC.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _is_transient_db_error(exc: Exception) -> bool:
    from sqlalchemy import exc as sa_exc  # type: ignore[import-untyped]

    if isinstance(exc, sa_exc.DBAPIError) and exc.connection_invalidated:
        return True
    return isinstance(exc, (sa_exc.OperationalError, sa_exc.TimeoutError, sa_exc.DisconnectionError))


class SqlAlchemyEventStore(EventStore):
    """Outbox store on a single SQLAlchemy ``AsyncSession``.

    By default the store never commits.  ``save_event`` joins whatever
    transaction the caller's session has open, so the business rows and the
    outbox row land together.

    With ``autocommit=True`` the relay side commits after every fetch and
    every mark, and rolls the session back when a mark fails.  A delivered
    event is then durable as soon as its mark returns, and no transaction
    stays open across broker calls.  :func:`sqlalchemy_store_provider`
    builds stores this way.

    Create the table with :meth:`create_table` or include
    :func:`outbox_table` in your migrations.
    """

    def __init__(
        self,
        session: Any,
        serializer: EventSerializer,
        clock: Clock | None = None,
        *,
        table: Any | None = None,
        autocommit: bool = False,
    ) -> None:
        super().__init__(serializer, clock)
        self._session = session
        self._autocommit = autocommit
        self._table = table if table is not None else _default_table(DEFAULT_TABLE_NAME)

    @classmethod
    async def create_table(cls, bind: Any, name: str = DEFAULT_TABLE_NAME) -> None:
        """Create the outbox table and its indexes if they do not exist.

        *bind* is an :class:`~sqlalchemy.ext.asyncio.AsyncEngine` or a
        synchronous :class:`~sqlalchemy.engine.Engine`.
        """
        from sqlalchemy.ext.asyncio import AsyncEngine  # type: ignore[import-untyped]

        table = _default_table(name)
        if isinstance(bind, AsyncEngine):
            async with bind.begin() as conn:
                await conn.run_sync(table.metadata.create_all)
        else:
            table.metadata.create_all(bind)

    @contextlib.contextmanager
    def _errors(self, operation: str) -> Iterator[None]:
        from sqlalchemy.exc import SQLAlchemyError  # type: ignore[import-untyped]

        try:
            yield
        except SQLAlchemyError as exc:
            raise EventStoreError(operation, transient=_is_transient_db_error(exc), cause=exc) from exc

    async def _write(self, operation: str, stmt: Any) -> None:
        with self._errors(operation):
            if not self._autocommit:
                await self._session.execute(stmt)
                return
            try:
                await self._session.execute(stmt)
                await self._session.commit()
            except BaseException:
                await self._session.rollback()
                raise

    # ------------------------------------------------------------------
    # Write side
    # ------------------------------------------------------------------

    async def save_event(self, event: Event) -> None:
        from sqlalchemy import insert  # type: ignore[import-untyped]

        row = self._to_row(self._to_stored(event))
        with self._errors("save_event"):
            await self._session.execute(insert(self._table).values(**row))

    async def save_events(self, events: Iterable[Event]) -> None:
        from sqlalchemy import insert  # type: ignore[import-untyped]

        rows = [self._to_row(record) for record in self._to_stored_batch(events)]
        if not rows:
            return
        with self._errors("save_events"):
            await self._session.execute(insert(self._table), rows)

    # ------------------------------------------------------------------
    # Relay side
    # ------------------------------------------------------------------

    def _pending(self) -> Any:
        from sqlalchemy import and_  # type: ignore[import-untyped]

        c = self._table.c
        return and_(c.is_published.is_(False), c.is_failed.is_(False))

    async def get_unpublished_events(self, batch_size: int = 100) -> list[StoredEvent]:
        from sqlalchemy import or_, select  # type: ignore[import-untyped]

        c = self._table.c
        stmt = (
            select(self._table)
            .where(self._pending())
            .where(or_(c.next_attempt_at.is_(None), c.next_attempt_at <= self.clock.now()))
            .order_by(c.created_at)
            .limit(batch_size)
        )
        batch = await self._select("get_unpublished_events", stmt)
        if self._autocommit:
            with self._errors("get_unpublished_events"):
                await self._session.commit()
        return batch

    async def mark_as_published(self, event_id: UUID) -> None:
        from sqlalchemy import update  # type: ignore[import-untyped]

        stmt = (
            update(self._table)
            .where(self._table.c.id == event_id)
            .where(self._pending())
            .values(is_published=True, published_at=self.clock.now(), next_attempt_at=None)
        )
        await self._write("mark_as_published", stmt)

    async def mark_as_failed(
        self,
        event_id: UUID,
        error_message: str,
        *,
        terminal: bool = False,
        next_attempt_at: datetime | None = None,
    ) -> None:
        from sqlalchemy import update  # type: ignore[import-untyped]

        c = self._table.c
        stmt = (
            update(self._table)
            .where(c.id == event_id)
            .where(self._pending())
            .values(
                retry_count=c.retry_count + 1,
                error_message=error_message,
                is_failed=terminal,
                next_attempt_at=None if terminal else next_attempt_at,
            )
        )
        await self._write("mark_as_failed", stmt)

    # ------------------------------------------------------------------
    # Audit queries
    # ------------------------------------------------------------------

    async def get_event(self, event_id: UUID) -> StoredEvent | None:
        from sqlalchemy import select  # type: ignore[import-untyped]

        found = await self._select("get_event", select(self._table).where(self._table.c.id == event_id))
        return found[0] if found else None

    async def get_events_by_aggregate_id(self, aggregate_id: UUID) -> list[StoredEvent]:
        from sqlalchemy import select  # type: ignore[import-untyped]

        c = self._table.c
        stmt = select(self._table).where(c.aggregate_id == aggregate_id).order_by(c.occurred_at, c.created_at)
        return await self._select("get_events_by_aggregate_id", stmt)

    async def get_events_by_time_range(self, start: datetime, end: datetime) -> list[StoredEvent]:
        from sqlalchemy import select  # type: ignore[import-untyped]

        c = self._table.c
        stmt = (
            select(self._table)
            .where(c.occurred_at >= start, c.occurred_at <= end)
            .order_by(c.occurred_at, c.created_at)
        )
        return await self._select("get_events_by_time_range", stmt)

    async def get_events_by_type(self, event_type: str) -> list[StoredEvent]:
        from sqlalchemy import select  # type: ignore[import-untyped]

        c = self._table.c
        stmt = select(self._table).where(c.event_type == event_type).order_by(c.occurred_at, c.created_at)
        return await self._select("get_events_by_type", stmt)

    # ------------------------------------------------------------------
    # Row mapping
    # ------------------------------------------------------------------

    async def _select(self, operation: str, stmt: Any) -> list[StoredEvent]:
        with self._errors(operation):
            result = await self._session.execute(stmt)
            rows = result.fetchall()
        return [self._from_row(row) for row in rows]

    @staticmethod
    def _to_row(record: StoredEvent) -> dict[str, Any]:
        return {
            "id": record.id,
            "event_type": record.event_type,
            "event_data": record.event_data,
            "aggregate_id": record.aggregate_id,
            "aggregate_type": record.aggregate_type,
            "occurred_at": record.occurred_at,
            "created_at": record.created_at,
            "is_published": record.is_published,
            "published_at": record.published_at,
            "retry_count": record.retry_count,
            "error_message": record.error_message,
            "is_failed": record.is_failed,
            "next_attempt_at": record.next_attempt_at,
        }

    @staticmethod
    def _from_row(row: Any) -> StoredEvent:
        return StoredEvent(
            id=row.id,
            event_type=row.event_type,
            event_data=row.event_data,
            aggregate_id=row.aggregate_id,
            aggregate_type=row.aggregate_type,
            occurred_at=_aware(row.occurred_at),
            created_at=_aware(row.created_at),
            is_published=bool(row.is_published),
            published_at=_aware(row.published_at),
            retry_count=row.retry_count,
            error_message=row.error_message,
            is_failed=bool(row.is_failed),
            next_attempt_at=_aware(row.next_attempt_at),
        )


__all__ = ["DEFAULT_TABLE_NAME", "SqlAlchemyEventStore", "outbox_table"]
