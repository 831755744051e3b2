"""RabbitMQ adapter – aio-pika MessagePublisher.

Requires the ``rabbitmq`` extra::

    pip install "mp-eventbus[rabbitmq]"
"""
from mp_eventbus.adapters.rabbitmq.publisher import RabbitMQMessagePublisher

__all__ = ["RabbitMQMessagePublisher"]
