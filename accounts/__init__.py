"""User accounts service with lifecycle email notifications."""

from __future__ import annotations

from typing import Any

from .database import Database, resolve_database_path
from .users import UserService


def create_user_application(*args: Any, **kwargs: Any):
    """Factory function that returns the user service ASGI application."""

    from .application import create_user_application as _create_user_application

    return _create_user_application(*args, **kwargs)


def create_notification_application(*args: Any, **kwargs: Any):
    """Factory function that returns the notification service ASGI application."""

    from .application import create_notification_application as _create_notification_application

    return _create_notification_application(*args, **kwargs)


__all__ = [
    "Database",
    "UserService",
    "create_notification_application",
    "create_user_application",
    "resolve_database_path",
]
