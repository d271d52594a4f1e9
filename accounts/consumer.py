"""Consume user lifecycle events and turn them into notification emails."""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable, Dict, Optional, Tuple

from pydantic import ValidationError

from .config import KafkaConfig
from .events import Operation, UserEvent
from .notifications import Notifier

logger = logging.getLogger("accounts.consumer")


def decode_event(raw: Any) -> Optional[UserEvent]:
    """Decode a channel payload, returning ``None`` for anything unusable."""

    payload = raw
    if isinstance(payload, (bytes, bytearray)):
        try:
            payload = payload.decode("utf-8")
        except UnicodeDecodeError:
            return None
    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except ValueError:
            return None
    if not isinstance(payload, dict):
        return None
    # The timestamp is informational; producers encode it in different shapes.
    fields = {key: payload.get(key) for key in ("operation", "email")}
    try:
        return UserEvent.model_validate(fields)
    except ValidationError:
        return None


class UserEventConsumer:
    """Dispatch lifecycle events to the notifier, one message at a time.

    Duplicate deliveries are not filtered out: a redelivered event sends its
    email again.
    """

    def __init__(self, notifier: Notifier) -> None:
        self._notifier = notifier

    async def handle(self, raw: Any) -> bool:
        """Process one message; return ``True`` when an email was sent.

        Malformed messages and unknown operations are logged and dropped.
        Notifier failures propagate so that the channel can redeliver.
        """

        event = decode_event(raw)
        if event is None or not event.email:
            logger.warning("Received invalid user event: %r", event if event is not None else raw)
            return False

        logger.info("Received user event: operation=%s, email=%s", event.operation, event.email)
        try:
            if event.operation == Operation.CREATE.value:
                logger.info("Processing CREATE event for email: %s", event.email)
                await self._notifier.send_created(event.email)
            elif event.operation == Operation.DELETE.value:
                logger.info("Processing DELETE event for email: %s", event.email)
                await self._notifier.send_deleted(event.email)
            else:
                logger.warning("Unknown operation in user event: %s", event.operation)
                return False
        except Exception:
            logger.error("Error processing user event %s", event, exc_info=True)
            raise
        return True


ConsumerFactory = Callable[[KafkaConfig], Any]


def _default_consumer_factory(config: KafkaConfig) -> Any:
    from aiokafka import AIOKafkaConsumer

    return AIOKafkaConsumer(
        config.topic,
        bootstrap_servers=config.bootstrap_servers,
        group_id=config.group_id,
        client_id=config.client_id,
        enable_auto_commit=False,
        auto_offset_reset="earliest",
    )


def _topic_partition(topic: str, partition: int) -> Any:
    from aiokafka import TopicPartition

    return TopicPartition(topic, partition)


class KafkaEventSource:
    """Feed records from the user events topic into a :class:`UserEventConsumer`.

    Offsets are committed only after a record has been handled. When handling
    fails the source seeks back to the record so it is delivered again after
    ``redelivery_backoff`` seconds; once ``max_redeliveries`` is exhausted the
    record is logged and skipped.
    """

    def __init__(
        self,
        consumer: UserEventConsumer,
        config: KafkaConfig,
        *,
        consumer_factory: ConsumerFactory = _default_consumer_factory,
        partition_factory: Callable[[str, int], Any] = _topic_partition,
    ) -> None:
        self._handler = consumer
        self._config = config
        self._consumer_factory = consumer_factory
        self._partition_factory = partition_factory
        self._kafka: Any = None
        self._failures: Dict[Tuple[str, int, int], int] = {}
        self._stopping = asyncio.Event()

    async def start(self) -> None:
        kafka = self._consumer_factory(self._config)
        await kafka.start()
        self._kafka = kafka
        logger.info(
            "Kafka consumer started, topic=%s group_id=%s", self._config.topic, self._config.group_id
        )

    async def stop(self) -> None:
        self._stopping.set()
        kafka, self._kafka = self._kafka, None
        if kafka is not None:
            await kafka.stop()
            logger.info("Kafka consumer stopped")

    async def run(self) -> None:
        """Consume until :meth:`stop` is called or the task is cancelled."""

        if self._kafka is None and not await self._connect():
            return
        try:
            while not self._stopping.is_set():
                kafka = self._kafka
                if kafka is None:
                    break
                record = await kafka.getone()
                await self.process(record)
        finally:
            await self.stop()

    async def _connect(self) -> bool:
        """Start the consumer, retrying until it succeeds or :meth:`stop` is called."""

        delay = max(self._config.redelivery_backoff, 0.0)
        while not self._stopping.is_set():
            try:
                await self.start()
                return True
            except Exception as exc:
                logger.warning(
                    "Kafka consumer could not connect to %s, retrying in %.1fs: %s",
                    self._config.bootstrap_servers,
                    delay,
                    exc,
                )
            await asyncio.sleep(delay)
        return False

    async def process(self, record: Any) -> None:
        """Handle one record and either commit it or schedule its redelivery."""

        kafka = self._kafka
        key = (record.topic, record.partition, record.offset)
        tp = self._partition_factory(record.topic, record.partition)
        try:
            await self._handler.handle(record.value)
        except Exception:
            attempts = self._failures.get(key, 0) + 1
            if attempts <= self._config.max_redeliveries:
                self._failures[key] = attempts
                logger.warning(
                    "Redelivering record %s:%s@%s (attempt %d of %d)",
                    record.topic,
                    record.partition,
                    record.offset,
                    attempts,
                    self._config.max_redeliveries,
                )
                await asyncio.sleep(self._config.redelivery_backoff)
                kafka.seek(tp, record.offset)
                return
            logger.error(
                "Giving up on record %s:%s@%s after %d redeliveries",
                record.topic,
                record.partition,
                record.offset,
                self._config.max_redeliveries,
            )

        self._failures.pop(key, None)
        await kafka.commit({tp: record.offset + 1})


__all__ = ["KafkaEventSource", "UserEventConsumer", "decode_event"]
