"""End-to-end tests for the user HTTP API."""

from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

from fastapi.testclient import TestClient

from accounts.api import create_app
from accounts.database import Database
from accounts.users import UserService


class UserApiTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tempdir = tempfile.TemporaryDirectory()
        self.database = Database(Path(self._tempdir.name) / "accounts.sqlite3")
        self.database.open()
        self.client = TestClient(create_app(service=UserService(self.database)))

    def tearDown(self) -> None:
        self.client.close()
        self.database.close()
        self._tempdir.cleanup()

    def _create(self, name: str = "Alice", email: str = "alice@example.com", age: object = 30):
        return self.client.post("/users", json={"name": name, "email": email, "age": age})

    def test_health(self) -> None:
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok"})

    def test_create_and_fetch_user(self) -> None:
        created = self._create()
        self.assertEqual(created.status_code, 201, created.text)
        payload = created.json()
        self.assertEqual(payload["name"], "Alice")
        self.assertEqual(payload["email"], "alice@example.com")
        self.assertEqual(payload["age"], 30)
        self.assertIn("created_at", payload)

        fetched = self.client.get(f"/users/{payload['id']}")
        self.assertEqual(fetched.status_code, 200)
        self.assertEqual(fetched.json(), payload)

    def test_create_rejects_invalid_fields(self) -> None:
        cases = [
            ({"name": "", "email": "a@example.com", "age": 1}, "Name cannot be empty"),
            ({"name": "A", "email": "broken", "age": 1}, "Invalid email format"),
            ({"name": "A", "email": "a@example.com", "age": 151}, "Age must be between 0 and 150"),
            ({"name": "A", "email": "a@example.com", "age": "thirty"}, "Age must be an integer"),
            ({"name": "A", "email": "a@example.com"}, "Age cannot be null"),
        ]
        for body, detail in cases:
            with self.subTest(body=body):
                response = self.client.post("/users", json=body)
                self.assertEqual(response.status_code, 400)
                self.assertEqual(response.json()["detail"], detail)

        self.assertEqual(self.client.get("/users").json(), [])

    def test_malformed_body_is_a_bad_request(self) -> None:
        response = self.client.post(
            "/users", content=b"{not json", headers={"Content-Type": "application/json"}
        )
        self.assertEqual(response.status_code, 400)

    def test_duplicate_email_is_rejected(self) -> None:
        self.assertEqual(self._create().status_code, 201)

        response = self._create(name="Impostor", email="Alice@Example.com")
        self.assertEqual(response.status_code, 400)
        self.assertIn("already exists", response.json()["detail"])
        self.assertEqual(len(self.client.get("/users").json()), 1)

    def test_unknown_and_invalid_identifiers(self) -> None:
        missing = self.client.get("/users/999")
        self.assertEqual(missing.status_code, 400)
        self.assertEqual(missing.json()["detail"], "User with ID 999 not found")

        self.assertEqual(self.client.get("/users/0").status_code, 400)
        self.assertEqual(self.client.get("/users/abc").status_code, 400)

    def test_identifier_beyond_storage_range_is_a_bad_request(self) -> None:
        huge = 2**70
        self.assertEqual(self.client.get(f"/users/{huge}").status_code, 400)
        self.assertEqual(self.client.put(f"/users/{huge}", json={"name": "Ghost"}).status_code, 400)
        response = self.client.delete(f"/users/{huge}")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"], "User ID is out of range")

    def test_list_users_in_creation_order(self) -> None:
        self._create(name="Alice", email="alice@example.com")
        self._create(name="Bob", email="bob@example.com", age=40)

        response = self.client.get("/users")
        self.assertEqual(response.status_code, 200)
        self.assertEqual([user["name"] for user in response.json()], ["Alice", "Bob"])

    def test_partial_update(self) -> None:
        user_id = self._create().json()["id"]

        response = self.client.put(f"/users/{user_id}", json={"age": 31, "email": ""})
        self.assertEqual(response.status_code, 200, response.text)
        self.assertEqual(response.json()["age"], 31)
        self.assertEqual(response.json()["email"], "alice@example.com")

        missing = self.client.put("/users/999", json={"name": "Ghost"})
        self.assertEqual(missing.status_code, 400)

    def test_update_cannot_take_another_users_email(self) -> None:
        self._create()
        bob_id = self._create(name="Bob", email="bob@example.com").json()["id"]

        response = self.client.put(f"/users/{bob_id}", json={"email": "alice@example.com"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.client.get(f"/users/{bob_id}").json()["email"], "bob@example.com")

    def test_delete_user(self) -> None:
        user_id = self._create().json()["id"]

        response = self.client.delete(f"/users/{user_id}")
        self.assertEqual(response.status_code, 204)
        self.assertEqual(response.content, b"")

        self.assertEqual(self.client.get(f"/users/{user_id}").status_code, 400)
        self.assertEqual(self.client.delete(f"/users/{user_id}").status_code, 400)

    def test_storage_failure_is_a_server_error(self) -> None:
        self.database.close()

        response = self.client.get("/users")
        self.assertEqual(response.status_code, 500)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
