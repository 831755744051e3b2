"""Cassandra adapter – wide-column outbox store with day-bucketed relay queue.

Requires the ``cassandra`` extra::

    pip install "mp-eventbus[cassandra]"
"""
from mp_eventbus.adapters.cassandra.event_store import SCHEMA, CassandraEventStore

__all__ = ["SCHEMA", "CassandraEventStore"]
