"""Business rules for creating, reading, updating and deleting users."""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, List, Optional, Protocol

from .errors import DuplicateEmail, NotFound
from .events import EventPublisher, Operation
from .models import User
from .validation import validate_age, validate_email, validate_name, validate_user, validate_user_id

logger = logging.getLogger("accounts.users")


class UserStore(Protocol):
    """Persistence operations the service relies on (see :class:`Database`)."""

    def create(self, user: User) -> int: ...

    def read(self, user_id: int) -> Optional[User]: ...

    def read_all(self) -> List[User]: ...

    def find_by_email(self, email: str) -> Optional[User]: ...

    def update(self, user: User) -> None: ...

    def delete(self, user_id: int) -> User: ...


def _clean(value: Any) -> Any:
    return value.strip() if isinstance(value, str) else value


def _supplied(value: Optional[str]) -> bool:
    return value is not None and bool(str(value).strip())


class UserService:
    """Single entry point that validates input before touching the store.

    Successful creates and deletes are announced through the optional
    publisher after the store has committed. Publishing is fire-and-forget.
    """

    def __init__(self, store: UserStore, publisher: Optional[EventPublisher] = None) -> None:
        self._store = store
        self._publisher = publisher

    def create_user(self, name: Optional[str], email: Optional[str], age: Any) -> User:
        logger.debug("Creating user with name: %s, email: %s, age: %s", name, email, age)

        email = _clean(email)
        validate_user(name, email, age)
        self._ensure_email_available(email)

        user = User(name=name.strip(), email=email, age=age, created_at=datetime.now(timezone.utc))
        user_id = self._store.create(user)
        created = replace(user, id=user_id)

        logger.info("User created successfully with ID: %s", user_id)
        self._announce(Operation.CREATE, created.email)
        return created

    def get_user_by_id(self, user_id: Any) -> User:
        logger.debug("Getting user by ID: %s", user_id)

        user_id = validate_user_id(user_id)
        user = self._store.read(user_id)
        if user is None:
            logger.warning("User with ID %s not found", user_id)
            raise NotFound(user_id)
        return user

    def get_all_users(self) -> List[User]:
        logger.debug("Getting all users")
        return self._store.read_all()

    def update_user(
        self,
        user_id: Any,
        name: Optional[str] = None,
        email: Optional[str] = None,
        age: Any = None,
    ) -> User:
        """Apply the supplied fields to an existing user.

        ``None`` or blank values leave the stored field untouched. The email
        uniqueness check is not atomic with the write; if another request
        claims the address in between, the store's unique constraint rejects
        the update with :class:`DuplicateEmail`.
        """

        logger.debug("Updating user with ID: %s", user_id)

        current = self.get_user_by_id(user_id)
        changes = {}

        if _supplied(name):
            validate_name(name)
            changes["name"] = name.strip()

        if _supplied(email):
            email = _clean(email)
            validate_email(email)
            if email != current.email:
                self._ensure_email_available(email, exclude_id=current.id)
            changes["email"] = email

        if age is not None:
            validate_age(age)
            changes["age"] = age

        updated = replace(current, **changes)
        if updated == current:
            logger.debug("User with ID %s unchanged", current.id)
            return current

        self._store.update(updated)
        logger.info("User with ID %s updated successfully", current.id)
        return updated

    def delete_user(self, user_id: Any) -> None:
        logger.debug("Deleting user with ID: %s", user_id)

        user_id = validate_user_id(user_id)
        removed = self._store.delete(user_id)

        logger.info("User with ID %s deleted successfully", user_id)
        self._announce(Operation.DELETE, removed.email)

    def _ensure_email_available(self, email: str, *, exclude_id: Optional[int] = None) -> None:
        existing = self._store.find_by_email(email)
        if existing is not None and existing.id != exclude_id:
            logger.warning("Email %s is already used by user %s", email, existing.id)
            raise DuplicateEmail(email)

    def _announce(self, operation: Operation, email: str) -> None:
        if self._publisher is None:
            return
        try:
            self._publisher.publish(operation, email)
        except Exception:
            logger.exception("Failed to publish %s event for %s", operation.value, email)


__all__ = ["UserService", "UserStore"]
