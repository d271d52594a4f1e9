"""Validation rules applied to user fields before they reach the store."""

from __future__ import annotations

import re
from typing import Any, Optional

from .errors import InvalidAge, InvalidEmail, InvalidInput, InvalidName

MAX_NAME_LENGTH = 100
MAX_EMAIL_LENGTH = 100
MIN_AGE = 0
MAX_AGE = 150
# Largest value an SQLite INTEGER column can hold.
MAX_USER_ID = 2**63 - 1

_EMAIL_PATTERN = re.compile(r"^[A-Za-z0-9+_.-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$")


def validate_name(name: Optional[str]) -> None:
    if name is None or not str(name).strip():
        raise InvalidName("Name cannot be empty")
    if not isinstance(name, str):
        raise InvalidName("Name must be a string")
    if len(name) > MAX_NAME_LENGTH:
        raise InvalidName(f"Name cannot exceed {MAX_NAME_LENGTH} characters")


def validate_email(email: Optional[str]) -> None:
    if email is None or not str(email).strip():
        raise InvalidEmail("Email cannot be empty")
    if not isinstance(email, str):
        raise InvalidEmail("Invalid email format")
    if not _EMAIL_PATTERN.fullmatch(email):
        raise InvalidEmail("Invalid email format")
    if len(email) > MAX_EMAIL_LENGTH:
        raise InvalidEmail(f"Email cannot exceed {MAX_EMAIL_LENGTH} characters")


def validate_age(age: Any) -> None:
    if age is None:
        raise InvalidAge("Age cannot be null")
    # bool is an int subclass; ``True`` is not an age.
    if isinstance(age, bool) or not isinstance(age, int):
        raise InvalidAge("Age must be an integer")
    if age < MIN_AGE or age > MAX_AGE:
        raise InvalidAge(f"Age must be between {MIN_AGE} and {MAX_AGE}")


def validate_user(name: Optional[str], email: Optional[str], age: Any) -> None:
    """Validate a complete set of user fields in name, email, age order."""

    validate_name(name)
    validate_email(email)
    validate_age(age)


def validate_user_id(user_id: Any) -> int:
    """Return ``user_id`` when it is a positive integer identifier."""

    if user_id is None or isinstance(user_id, bool) or not isinstance(user_id, int):
        raise InvalidInput("User ID must be a positive integer")
    if user_id <= 0:
        raise InvalidInput("User ID must be positive")
    if user_id > MAX_USER_ID:
        raise InvalidInput("User ID is out of range")
    return user_id


__all__ = [
    "MAX_AGE",
    "MAX_EMAIL_LENGTH",
    "MAX_NAME_LENGTH",
    "MAX_USER_ID",
    "MIN_AGE",
    "validate_age",
    "validate_email",
    "validate_name",
    "validate_user",
    "validate_user_id",
]
