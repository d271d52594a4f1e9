"""Exception types shared by the user and notification services."""
from __future__ import annotations


class InvalidInput(ValueError):
    """Raised when caller-supplied data is rejected before touching storage."""


class InvalidName(InvalidInput):
    pass


class InvalidEmail(InvalidInput):
    pass


class InvalidAge(InvalidInput):
    pass


class DuplicateEmail(InvalidInput):
    """Raised when an email address already belongs to another user."""

    def __init__(self, email: str) -> None:
        super().__init__(f"User with email {email} already exists")
        self.email = email


class NotFound(LookupError):
    """Raised when no user exists for the requested identifier."""

    def __init__(self, user_id: int) -> None:
        super().__init__(f"User with ID {user_id} not found")
        self.user_id = user_id


class StorageError(RuntimeError):
    """Raised when the relational store fails underneath an operation."""


class TransportError(RuntimeError):
    """Raised when a message cannot be handed to the mail transport."""


__all__ = [
    "DuplicateEmail",
    "InvalidAge",
    "InvalidEmail",
    "InvalidInput",
    "InvalidName",
    "NotFound",
    "StorageError",
    "TransportError",
]
