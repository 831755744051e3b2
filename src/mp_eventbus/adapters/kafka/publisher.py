"""Kafka adapter – KafkaMessagePublisher."""
from __future__ import annotations

import json
from typing import Any

from mp_eventbus.kernel.errors import PublishError, is_transient
from mp_eventbus.kernel.messaging import Message, MessagePublisher
from mp_eventbus.observability.logging import get_logger

logger = get_logger(__name__)


def _require_aiokafka() -> Any:
    try:
        import aiokafka  # type: ignore[import-untyped]
        return aiokafka
    except ImportError as exc:
        raise ImportError("Install 'mp-eventbus[kafka]' to use the Kafka adapter") from exc


def _encode(payload: Any) -> bytes:
    if isinstance(payload, bytes):
        return payload
    return json.dumps(payload, default=str).encode()


class KafkaMessagePublisher(MessagePublisher):
    """``MessagePublisher`` over aiokafka.

    The topic is ``destination`` when given, otherwise the message topic.
    The record key is the message id, which is also the originating event
    id, so redeliveries of one event land on the same partition.  Each call
    waits for the broker acknowledgement.
    """

    def __init__(self, bootstrap_servers: str, **producer_kwargs: Any) -> None:
        aiokafka = _require_aiokafka()
        producer_kwargs.setdefault("acks", "all")
        producer_kwargs.setdefault("enable_idempotence", True)
        self._producer = aiokafka.AIOKafkaProducer(bootstrap_servers=bootstrap_servers, **producer_kwargs)
        self._started = False

    async def start(self) -> None:
        await self._producer.start()
        self._started = True

    async def stop(self) -> None:
        await self._producer.stop()
        self._started = False

    async def __aenter__(self) -> "KafkaMessagePublisher":
        await self.start()
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.stop()

    async def _produce(self, topic: str, message: Message[Any]) -> None:
        headers = [(k, v.encode()) for k, v in message.headers.as_dict().items()]
        try:
            if not self._started:
                await self.start()
            await self._producer.send_and_wait(
                topic,
                value=_encode(message.payload),
                key=message.id.encode(),
                headers=headers,
            )
        except Exception as exc:
            # aiokafka marks retriable errors with a class attribute.
            transient = is_transient(exc) or bool(getattr(exc, "retriable", False))
            raise PublishError(topic, transient=transient, cause=exc) from exc
        logger.debug("kafka.published", topic=topic, message_id=message.id)

    async def publish(self, message: Message[Any], destination: str | None = None) -> None:
        await self._produce(destination or message.topic, message)

    async def send(self, command: Message[Any], endpoint: str) -> None:
        await self._produce(endpoint, command)


__all__ = ["KafkaMessagePublisher"]
