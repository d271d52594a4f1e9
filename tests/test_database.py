from __future__ import annotations

import sqlite3
import threading
from pathlib import Path

import pytest

from accounts.database import Database
from accounts.errors import DuplicateEmail, NotFound, StorageError
from accounts.models import User


@pytest.fixture()
def database(tmp_path: Path) -> Database:
    db = Database(tmp_path / "accounts.sqlite3")
    db.open()
    yield db
    db.close()


def test_create_assigns_identifier_and_timestamp(database: Database) -> None:
    user_id = database.create(User(name="Alice", email="alice@example.com", age=30))

    stored = database.read(user_id)
    assert stored is not None
    assert stored.id == user_id
    assert (stored.name, stored.email, stored.age) == ("Alice", "alice@example.com", 30)
    assert stored.created_at is not None
    assert stored.created_at.tzinfo is not None


def test_read_missing_user_returns_none(database: Database) -> None:
    assert database.read(404) is None


def test_duplicate_email_is_rejected_case_insensitively(database: Database) -> None:
    database.create(User(name="Alice", email="alice@example.com", age=30))

    with pytest.raises(DuplicateEmail):
        database.create(User(name="Other", email="ALICE@example.com", age=31))

    assert len(database.read_all()) == 1


def test_read_all_is_ordered_by_id(database: Database) -> None:
    first = database.create(User(name="A", email="a@example.com", age=1))
    second = database.create(User(name="B", email="b@example.com", age=2))

    assert [user.id for user in database.read_all()] == [first, second]


def test_find_by_email(database: Database) -> None:
    user_id = database.create(User(name="Alice", email="alice@example.com", age=30))

    found = database.find_by_email("Alice@Example.com")
    assert found is not None and found.id == user_id
    assert database.find_by_email("nobody@example.com") is None


def test_update_replaces_fields_but_keeps_creation_time(database: Database) -> None:
    user_id = database.create(User(name="Alice", email="alice@example.com", age=30))
    original = database.read(user_id)

    database.update(User(id=user_id, name="Alicia", email="alicia@example.com", age=31))

    updated = database.read(user_id)
    assert (updated.name, updated.email, updated.age) == ("Alicia", "alicia@example.com", 31)
    assert updated.created_at == original.created_at


def test_update_missing_user_raises_not_found(database: Database) -> None:
    with pytest.raises(NotFound):
        database.update(User(id=99, name="Ghost", email="ghost@example.com", age=1))


def test_update_to_taken_email_rolls_back(database: Database) -> None:
    database.create(User(name="Alice", email="alice@example.com", age=30))
    bob_id = database.create(User(name="Bob", email="bob@example.com", age=40))

    with pytest.raises(DuplicateEmail):
        database.update(User(id=bob_id, name="Bobby", email="alice@example.com", age=41))

    bob = database.read(bob_id)
    assert (bob.name, bob.email, bob.age) == ("Bob", "bob@example.com", 40)


def test_delete_returns_removed_user(database: Database) -> None:
    user_id = database.create(User(name="Alice", email="alice@example.com", age=30))

    removed = database.delete(user_id)

    assert removed.email == "alice@example.com"
    assert database.read(user_id) is None


def test_delete_missing_user_leaves_store_unchanged(database: Database) -> None:
    database.create(User(name="Alice", email="alice@example.com", age=30))

    with pytest.raises(NotFound):
        database.delete(12345)

    assert len(database.read_all()) == 1


def test_operations_fail_when_database_is_closed(tmp_path: Path) -> None:
    db = Database(tmp_path / "closed.sqlite3")

    with pytest.raises(StorageError):
        db.read(1)

    db.open()
    db.close()
    assert not db.is_open
    with pytest.raises(StorageError):
        db.read_all()


def test_data_survives_reopening(tmp_path: Path) -> None:
    path = tmp_path / "accounts.sqlite3"
    with Database(path) as db:
        user_id = db.create(User(name="Alice", email="alice@example.com", age=30))

    with Database(path) as db:
        assert db.read(user_id).email == "alice@example.com"


def test_concurrent_creates_with_same_email_have_one_winner(database: Database) -> None:
    outcomes: list[object] = []
    barrier = threading.Barrier(8)

    def worker(index: int) -> None:
        barrier.wait()
        try:
            outcomes.append(database.create(User(name=f"User {index}", email="race@example.com", age=20)))
        except DuplicateEmail as exc:
            outcomes.append(exc)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    winners = [outcome for outcome in outcomes if isinstance(outcome, int)]
    assert len(winners) == 1
    assert len(database.read_all()) == 1


def test_failure_after_sqlite_rolled_back_keeps_original_error(database: Database) -> None:
    with pytest.raises(StorageError, match="Failed to import users") as excinfo:
        with database._transaction("import users") as conn:
            conn.execute("ROLLBACK")
            raise sqlite3.OperationalError("disk I/O error")

    assert isinstance(excinfo.value.__cause__, sqlite3.OperationalError)
    assert "disk I/O error" in str(excinfo.value.__cause__)
    database.create(User(name="Alice", email="alice@example.com", age=30))
    assert len(database.read_all()) == 1
