"""SQLAlchemy adapter – relational outbox store, session factory, unit of work.

Requires the ``sqlalchemy`` extra::

    pip install "mp-eventbus[sqlalchemy]"
"""
from mp_eventbus.adapters.sqlalchemy.event_store import DEFAULT_TABLE_NAME, SqlAlchemyEventStore, outbox_table
from mp_eventbus.adapters.sqlalchemy.session import SqlAlchemySessionFactory
from mp_eventbus.adapters.sqlalchemy.uow import SqlAlchemyUnitOfWork, sqlalchemy_store_provider

__all__ = [
    "DEFAULT_TABLE_NAME",
    "SqlAlchemyEventStore",
    "SqlAlchemySessionFactory",
    "SqlAlchemyUnitOfWork",
    "outbox_table",
    "sqlalchemy_store_provider",
]
