"""Kafka adapter – aiokafka MessagePublisher.

Requires the ``kafka`` extra::

    pip install "mp-eventbus[kafka]"
"""
from mp_eventbus.adapters.kafka.publisher import KafkaMessagePublisher

__all__ = ["KafkaMessagePublisher"]
