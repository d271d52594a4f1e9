"""Domain models for the accounts service."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class User:
    """Represents a user account stored in the accounts database.

    ``id`` and ``created_at`` are ``None`` only for a record that has not been
    persisted yet; the store assigns both on creation.
    """

    name: str
    email: str
    age: int
    id: Optional[int] = None
    created_at: Optional[datetime] = None


__all__ = ["User"]
