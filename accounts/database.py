"""SQLite-backed persistence for user accounts."""
from __future__ import annotations

import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, List, Optional

from .errors import DuplicateEmail, NotFound, StorageError
from .models import User

logger = logging.getLogger("accounts.database")

_MEMORY = ":memory:"


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def resolve_database_path(env_value: Optional[str]) -> Path:
    """Resolve the on-disk path for the accounts database."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    base_dir = Path(__file__).resolve().parent.parent / "data"
    return (base_dir / "accounts.sqlite3").resolve(strict=False)


def _current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def _serialize_datetime(value: datetime) -> str:
    return value.isoformat()


def _parse_datetime(value: str) -> datetime:
    return datetime.fromisoformat(value)


def _constraint_error(exc: sqlite3.IntegrityError, user: User, action: str) -> Exception:
    logger.error("Constraint violation while trying to %s: %s", action, exc)
    if "UNIQUE" in str(exc).upper():
        return DuplicateEmail(user.email)
    return StorageError(f"Failed to {action}: {exc}")


class Database:
    """Explicitly opened SQLite handle that stores user accounts.

    The handle owns a single connection between :meth:`open` and :meth:`close`.
    Each public operation is one unit of work: it runs inside its own
    transaction, and units of work are serialised by an internal lock.
    """

    def __init__(self, path: Path | str) -> None:
        self._path = path if str(path) == _MEMORY else Path(path)
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()

    @property
    def path(self) -> Path | str:
        return self._path

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def open(self) -> "Database":
        """Connect and create the required tables if they do not already exist."""

        with self._lock:
            if self._conn is not None:
                return self
            if isinstance(self._path, Path):
                _ensure_directory(self._path)
            try:
                conn = sqlite3.connect(
                    str(self._path),
                    check_same_thread=False,
                    isolation_level=None,
                )
                conn.row_factory = sqlite3.Row
                conn.executescript(
                    """
                    CREATE TABLE IF NOT EXISTS users (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        name TEXT NOT NULL,
                        email TEXT NOT NULL UNIQUE COLLATE NOCASE,
                        age INTEGER NOT NULL CHECK (age BETWEEN 0 AND 150),
                        created_at TEXT NOT NULL
                    );
                    """
                )
            except sqlite3.DatabaseError as exc:
                raise StorageError(f"Failed to open database at {self._path}") from exc
            self._conn = conn
        logger.info("Database opened at %s", self._path)
        return self

    def close(self) -> None:
        with self._lock:
            conn, self._conn = self._conn, None
        if conn is not None:
            conn.close()
            logger.info("Database at %s closed", self._path)

    def __enter__(self) -> "Database":
        return self.open()

    def __exit__(self, *_exc: object) -> None:
        self.close()

    @contextmanager
    def _transaction(self, action: str) -> Iterator[sqlite3.Connection]:
        """Run one unit of work, committing on success and rolling back on error."""

        with self._lock:
            conn = self._conn
            if conn is None:
                raise StorageError(f"Failed to {action}: database is not open")
            try:
                conn.execute("BEGIN IMMEDIATE")
            except sqlite3.DatabaseError as exc:
                raise StorageError(f"Failed to {action}") from exc
            try:
                yield conn
            except BaseException as exc:
                self._rollback(conn, action)
                if isinstance(exc, sqlite3.IntegrityError):
                    raise
                if isinstance(exc, sqlite3.DatabaseError):
                    logger.error("Error while trying to %s: %s", action, exc)
                    raise StorageError(f"Failed to {action}") from exc
                raise
            else:
                conn.execute("COMMIT")

    @staticmethod
    def _rollback(conn: sqlite3.Connection, action: str) -> None:
        # SQLite may already have rolled back on its own (I/O errors, SQLITE_FULL).
        if not conn.in_transaction:
            return
        try:
            conn.execute("ROLLBACK")
        except sqlite3.DatabaseError as exc:
            logger.warning("Rollback failed while trying to %s: %s", action, exc)

    # ------------------------------------------------------------------
    # User management
    # ------------------------------------------------------------------
    def create(self, user: User) -> int:
        """Persist ``user`` and return the identifier assigned to it."""

        created_at = user.created_at or _current_timestamp()
        try:
            with self._transaction("create user") as conn:
                cursor = conn.execute(
                    "INSERT INTO users (name, email, age, created_at) VALUES (?, ?, ?, ?)",
                    (user.name, user.email, user.age, _serialize_datetime(created_at)),
                )
                user_id = int(cursor.lastrowid)
        except sqlite3.IntegrityError as exc:
            raise _constraint_error(exc, user, "create user") from exc

        logger.info("User created successfully with ID: %s", user_id)
        return user_id

    def read(self, user_id: int) -> Optional[User]:
        with self._transaction("read user") as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        if row is None:
            logger.debug("User not found with ID: %s", user_id)
            return None
        return self._row_to_user(row)

    def read_all(self) -> List[User]:
        with self._transaction("read all users") as conn:
            rows = conn.execute("SELECT * FROM users ORDER BY id").fetchall()
        logger.debug("Retrieved %d users", len(rows))
        return [self._row_to_user(row) for row in rows]

    def find_by_email(self, email: str) -> Optional[User]:
        with self._transaction("look up user by email") as conn:
            row = conn.execute("SELECT * FROM users WHERE email = ?", (email,)).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def update(self, user: User) -> None:
        """Replace the stored name, email and age of an existing user."""

        if user.id is None:
            raise ValueError("Only persisted users can be updated")

        try:
            with self._transaction("update user") as conn:
                cursor = conn.execute(
                    "UPDATE users SET name = ?, email = ?, age = ? WHERE id = ?",
                    (user.name, user.email, user.age, user.id),
                )
                if cursor.rowcount == 0:
                    raise NotFound(user.id)
        except sqlite3.IntegrityError as exc:
            raise _constraint_error(exc, user, "update user") from exc

        logger.info("User updated successfully with ID: %s", user.id)

    def delete(self, user_id: int) -> User:
        """Remove the user and return the record as it was before deletion."""

        with self._transaction("delete user") as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
            if row is None:
                logger.warning("User not found with ID: %s, nothing to delete", user_id)
                raise NotFound(user_id)
            conn.execute("DELETE FROM users WHERE id = ?", (user_id,))

        logger.info("User deleted successfully with ID: %s", user_id)
        return self._row_to_user(row)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _row_to_user(self, row: sqlite3.Row) -> User:
        return User(
            id=int(row["id"]),
            name=str(row["name"]),
            email=str(row["email"]),
            age=int(row["age"]),
            created_at=_parse_datetime(str(row["created_at"])),
        )


__all__ = ["Database", "resolve_database_path"]
