"""User lifecycle events and the publishers that hand them to a channel."""
from __future__ import annotations

import asyncio
import json
import logging
import threading
from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field

from .config import KafkaConfig, Settings

logger = logging.getLogger("accounts.events")


class Operation(str, Enum):
    CREATE = "CREATE"
    DELETE = "DELETE"


class UserEvent(BaseModel):
    """Message announcing that a user was created or deleted.

    Both fields are optional so that the consumer can decode whatever arrives
    on the channel and decide for itself whether the record is usable.
    """

    model_config = ConfigDict(extra="ignore")

    operation: Optional[str] = None
    email: Optional[str] = None
    timestamp: Optional[datetime] = Field(default=None)

    @classmethod
    def create(cls, operation: Operation | str, email: str) -> "UserEvent":
        return cls(
            operation=Operation(operation).value,
            email=email,
            timestamp=datetime.now(timezone.utc),
        )

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")

    def __str__(self) -> str:
        return f"UserEvent(operation={self.operation!r}, email={self.email!r}, timestamp={self.timestamp})"


class EventPublisher(ABC):
    """Best-effort, non-blocking publisher of user lifecycle events."""

    description = "channel"

    def start(self) -> None:
        """Acquire channel resources; called once at application startup."""

    def stop(self) -> None:
        """Release channel resources; called once at application shutdown."""

    def publish(self, operation: Operation | str, email: str) -> Future:
        """Schedule ``operation`` for ``email`` and return without waiting.

        The returned future completes once the channel acknowledges the event.
        Failures are logged by a completion callback and never raised here.
        """

        event: Any = f"{operation} for {email}"
        try:
            event = UserEvent.create(operation, email)
            future = self._submit(event)
        except Exception as exc:
            logger.exception("Error sending user event: %s to %s", event, self.description)
            future = Future()
            future.set_exception(exc)
            return future

        future.add_done_callback(lambda done: self._log_outcome(event, done))
        return future

    @abstractmethod
    def _submit(self, event: UserEvent) -> Future:
        ...

    def _log_outcome(self, event: UserEvent, future: Future) -> None:
        if future.cancelled():
            logger.warning("User event %s to %s was cancelled", event, self.description)
            return
        exc = future.exception()
        if exc is None:
            logger.info("User event sent successfully: %s to %s", event, self.description)
        else:
            logger.error(
                "Failed to send user event: %s to %s",
                event,
                self.description,
                exc_info=(type(exc), exc, exc.__traceback__),
            )


ProducerFactory = Callable[[KafkaConfig], Any]


def _default_producer_factory(config: KafkaConfig) -> Any:
    from aiokafka import AIOKafkaProducer

    return AIOKafkaProducer(
        bootstrap_servers=config.bootstrap_servers,
        client_id=config.client_id,
        acks="all",
        value_serializer=lambda v: json.dumps(v).encode("utf-8"),
        key_serializer=lambda k: k.encode("utf-8") if k else None,
    )


class KafkaEventPublisher(EventPublisher):
    """Publish events to a Kafka topic through ``aiokafka``.

    The producer lives on a private event loop running in a daemon thread so
    that synchronous callers (request worker threads, the console) can hand
    events over without owning an event loop themselves.

    If the brokers are unreachable when :meth:`start` runs, the loop is kept
    and the producer is created again by the next :meth:`publish`.
    """

    def __init__(
        self,
        config: KafkaConfig,
        *,
        producer_factory: ProducerFactory = _default_producer_factory,
    ) -> None:
        self._config = config
        self._producer_factory = producer_factory
        self._producer: Any = None
        self._producer_lock = asyncio.Lock()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self.description = f"topic {config.topic}"

    def start(self) -> None:
        if self._loop is not None:
            return

        loop = asyncio.new_event_loop()
        thread = threading.Thread(target=loop.run_forever, name="accounts-kafka-producer", daemon=True)
        thread.start()
        self._loop, self._thread = loop, thread

        try:
            asyncio.run_coroutine_threadsafe(self._ensure_producer(), loop).result(
                timeout=self._config.request_timeout
            )
        except Exception as exc:
            logger.warning(
                "Kafka producer could not connect to %s, retrying on next publish: %s",
                self._config.bootstrap_servers,
                exc,
            )

    def stop(self) -> None:
        loop = self._loop
        if loop is None:
            return
        try:
            if self._producer is not None:
                asyncio.run_coroutine_threadsafe(self._producer.stop(), loop).result(
                    timeout=self._config.request_timeout
                )
                logger.info("Kafka producer stopped")
        finally:
            self._producer = None
            self._shutdown_loop()

    async def _ensure_producer(self) -> Any:
        async with self._producer_lock:
            if self._producer is None:
                producer = self._producer_factory(self._config)
                await producer.start()
                self._producer = producer
                logger.info("Kafka producer started, bootstrap=%s", self._config.bootstrap_servers)
            return self._producer

    def _shutdown_loop(self) -> None:
        loop, thread = self._loop, self._thread
        self._loop = self._thread = None
        if loop is None:
            return
        loop.call_soon_threadsafe(loop.stop)
        if thread is not None:
            thread.join(timeout=self._config.request_timeout)
        loop.close()

    def _submit(self, event: UserEvent) -> Future:
        if self._loop is None:
            raise RuntimeError("Kafka producer is not started")
        return asyncio.run_coroutine_threadsafe(self._send(event), self._loop)

    async def _send(self, event: UserEvent) -> Any:
        producer = await self._ensure_producer()
        # send() enqueues in call order; awaiting the returned future waits for the ack.
        delivery = await producer.send(
            self._config.topic,
            value=event.to_payload(),
            key=event.email,
        )
        return await delivery


class HttpEventPublisher(EventPublisher):
    """Deliver events straight to the notification service's REST endpoint."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        cleaned = (base_url or "").strip()
        if not cleaned:
            raise ValueError("Notification service URL must not be empty")
        self._base_url = cleaned.rstrip("/")
        self._timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.Client] = None
        # One worker keeps events in the order they were published.
        self._executor: Optional[ThreadPoolExecutor] = None
        self.description = f"{self._base_url}/notifications/send"

    def start(self) -> None:
        if self._client is not None:
            return
        self._client = httpx.Client(base_url=self._base_url, timeout=self._timeout, transport=self._transport)
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="accounts-http-publisher")

    def stop(self) -> None:
        executor, client = self._executor, self._client
        self._executor = self._client = None
        if executor is not None:
            executor.shutdown(wait=True)
        if client is not None:
            client.close()

    def _submit(self, event: UserEvent) -> Future:
        if self._executor is None:
            raise RuntimeError("HTTP event publisher is not started")
        return self._executor.submit(self._send, event)

    def _send(self, event: UserEvent) -> int:
        client = self._client
        if client is None:
            raise RuntimeError("HTTP event publisher is not started")
        response = client.post(
            "/notifications/send",
            json={"operation": event.operation, "email": event.email},
        )
        response.raise_for_status()
        return response.status_code


def build_publisher(settings: Settings) -> Optional[EventPublisher]:
    """Return the publisher selected by ``settings.events.channel``."""

    channel = settings.events.channel
    if channel == "kafka":
        return KafkaEventPublisher(settings.kafka)
    if channel == "http":
        return HttpEventPublisher(settings.events.notification_url, timeout=settings.events.timeout)
    return None


__all__ = [
    "EventPublisher",
    "HttpEventPublisher",
    "KafkaEventPublisher",
    "Operation",
    "UserEvent",
    "build_publisher",
]
