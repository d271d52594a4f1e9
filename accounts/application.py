"""Application factories that wire the services to their infrastructure."""
from __future__ import annotations

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI

from .api import create_app as create_api_app
from .config import Settings, load_settings
from .consumer import KafkaEventSource, UserEventConsumer
from .database import Database
from .events import EventPublisher, build_publisher
from .notification_api import create_app as create_notification_api_app
from .notifications import MailTransport, Notifier, SMTPTransport
from .users import UserService

logger = logging.getLogger("accounts.application")

_UNSET: object = object()


def _start_publisher(publisher: Optional[EventPublisher]) -> None:
    if publisher is None:
        logger.info("No event channel configured; user events will not be published")
        return
    try:
        publisher.start()
    except Exception:
        # Publishing is best-effort; the API still serves requests.
        logger.exception("Failed to start event publisher for %s", publisher.description)


def _log_consumer_exit(task: asyncio.Task) -> None:
    if task.cancelled():
        logger.info("User event consumer stopped")
        return
    exc = task.exception()
    if exc is not None:
        logger.error("User event consumer terminated", exc_info=(type(exc), exc, exc.__traceback__))


def create_user_application(
    *,
    settings: Optional[Settings] = None,
    database: Optional[Database] = None,
    publisher: object = _UNSET,
) -> FastAPI:
    """Create the ASGI application serving the user API under ``/api``."""

    settings = settings or load_settings()
    database = database or Database(settings.database_path)
    event_publisher: Optional[EventPublisher]
    if publisher is _UNSET:
        event_publisher = build_publisher(settings)
    else:
        event_publisher = publisher  # type: ignore[assignment]

    service = UserService(database, event_publisher)
    api_app = create_api_app(service=service)

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        database.open()
        _start_publisher(event_publisher)
        try:
            yield
        finally:
            if event_publisher is not None:
                event_publisher.stop()
            database.close()

    app = FastAPI(
        title="Accounts User Service",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        lifespan=lifespan,
    )
    app.state.database = database
    app.state.user_service = service
    app.state.publisher = event_publisher
    app.state.api = api_app

    app.mount("/api", api_app)
    return app


def create_notification_application(
    *,
    settings: Optional[Settings] = None,
    transport: Optional[MailTransport] = None,
    consume: Optional[bool] = None,
) -> FastAPI:
    """Create the ASGI application serving the notification API under ``/api``.

    When ``consume`` is true (the default whenever the events channel is
    Kafka) the lifespan also runs a :class:`KafkaEventSource` in the
    background.
    """

    settings = settings or load_settings()
    notifier = Notifier(transport or SMTPTransport(settings.mail), sender=settings.mail.sender)
    api_app = create_notification_api_app(notifier=notifier)
    if consume is None:
        consume = settings.events.channel == "kafka"

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        task: Optional[asyncio.Task] = None
        if consume:
            source = KafkaEventSource(UserEventConsumer(notifier), settings.kafka)
            app.state.event_source = source
            task = asyncio.create_task(source.run(), name="accounts-user-events")
            task.add_done_callback(_log_consumer_exit)
        try:
            yield
        finally:
            if task is not None:
                task.cancel()
                # Failures were already reported by _log_consumer_exit.
                with contextlib.suppress(asyncio.CancelledError, Exception):
                    await task

    app = FastAPI(
        title="Accounts Notification Service",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        lifespan=lifespan,
    )
    app.state.notifier = notifier
    app.state.api = api_app

    app.mount("/api", api_app)
    return app


__all__ = ["create_notification_application", "create_user_application"]
