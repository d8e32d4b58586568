"""End-to-end tests for the chat service HTTP API."""

from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

from fastapi.testclient import TestClient

from classchat.api import build_chat, create_app
from classchat.config import Settings

ADMIN = {"x-admin-password": "12345"}


class ClassChatServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tempdir = tempfile.TemporaryDirectory()
        self.settings = Settings(
            store_path=Path(self._tempdir.name) / "store.json",
            token_secret="tests-secret",
        )
        self.app = create_app(chat=build_chat(self.settings))
        self.client = TestClient(self.app)

    def tearDown(self) -> None:
        self.client.close()
        self._tempdir.cleanup()

    def _register(self, username: str, *, class_code: object = "11111") -> str:
        response = self.client.post(
            "/api/auth/register",
            json={"name": username.title(), "username": username, "password": "pw-" + username, "classCode": class_code},
        )
        self.assertEqual(response.status_code, 201, response.text)
        return response.json()["userId"]

    def _login(self, username: str) -> dict:
        response = self.client.post("/api/auth/login", json={"username": username, "password": "pw-" + username})
        self.assertEqual(response.status_code, 200, response.text)
        return {"Authorization": f"Bearer {response.json()['token']}"}

    def test_post_and_dev_delete_scenario(self) -> None:
        self._register("ada")
        self._register("dev1")
        ada = self._login("ada")
        dev = self._login("dev1")

        posted = self.client.post("/api/messages", headers=ada, json={"text": "hi"})
        self.assertEqual(posted.status_code, 201, posted.text)
        message = posted.json()
        self.assertEqual(message["text"], "hi")
        self.assertTrue(message["canDelete"])
        self.assertEqual(self.client.get("/api/me", headers=ada).json()["messages"], 1)

        listed = self.client.get("/api/messages", headers=dev).json()
        self.assertEqual([item["id"] for item in listed], [message["id"]])
        self.assertTrue(listed[0]["canDelete"])

        deleted = self.client.delete(f"/api/messages/{message['id']}", headers=dev)
        self.assertEqual(deleted.status_code, 200, deleted.text)
        self.assertEqual(deleted.json(), {"message": "Message deleted"})

        again = self.client.delete(f"/api/messages/{message['id']}", headers=dev)
        self.assertEqual(again.status_code, 404)
        self.assertEqual(again.json(), {"error": "Message not found"})
        self.assertEqual(self.client.get("/api/me", headers=ada).json()["messages"], 0)

    def test_other_user_cannot_delete(self) -> None:
        self._register("ada")
        self._register("bob")
        ada = self._login("ada")
        bob = self._login("bob")
        message = self.client.post("/api/messages", headers=ada, json={"text": "mine"}).json()

        response = self.client.delete(f"/api/messages/{message['id']}", headers=bob)

        self.assertEqual(response.status_code, 403)

    def test_roles_follow_login_order_and_dev_flag(self) -> None:
        for username in ("ada", "bob", "cyd", "dan", "dev1"):
            self._register(username)
        headers = {username: self._login(username) for username in ("dev1", "ada", "bob", "cyd", "dan")}

        roles = {
            username: self.client.get("/api/me", headers=headers[username]).json()["role"]["key"]
            for username in headers
        }

        self.assertEqual(
            roles,
            {"dev1": "DEV", "ada": "FIRST_USER", "bob": "SECOND_USER", "cyd": "THIRD_USER", "dan": "USER"},
        )

    def test_missing_and_invalid_tokens(self) -> None:
        missing = self.client.get("/api/me")
        self.assertEqual(missing.status_code, 401)
        self.assertEqual(missing.json(), {"error": "No token"})

        invalid = self.client.get("/api/me", headers={"Authorization": "Bearer not.valid"})
        self.assertEqual(invalid.status_code, 401)
        self.assertEqual(invalid.json(), {"error": "Invalid token"})

    def test_token_survives_restart_with_same_secret(self) -> None:
        self._register("ada")
        ada = self._login("ada")

        restarted = TestClient(create_app(chat=build_chat(self.settings)))
        try:
            response = restarted.get("/api/me", headers=ada)
        finally:
            restarted.close()

        self.assertEqual(response.status_code, 200, response.text)
        self.assertEqual(response.json()["username"], "ada")

    def test_login_failures(self) -> None:
        self._register("ada")

        wrong = self.client.post("/api/auth/login", json={"username": "ada", "password": "nope"})
        self.assertEqual(wrong.status_code, 401)
        unknown = self.client.post("/api/auth/login", json={"username": "zed", "password": "nope"})
        self.assertEqual(unknown.status_code, 401)
        self.assertEqual(wrong.json(), unknown.json())
        blank = self.client.post("/api/auth/login", json={"username": "ada"})
        self.assertEqual(blank.status_code, 400)

    def test_registration_validation(self) -> None:
        self._register("ada", class_code=11111)

        duplicate = self.client.post(
            "/api/auth/register",
            json={"name": "Ada", "username": "ADA", "password": "pw", "classCode": "11111"},
        )
        self.assertEqual(duplicate.status_code, 400)
        self.assertEqual(duplicate.json(), {"error": "Username already exists"})

        bad_code = self.client.post(
            "/api/auth/register",
            json={"name": "Bob", "username": "bob", "password": "pw", "classCode": "123"},
        )
        self.assertEqual(bad_code.status_code, 400)

        wrong_type = self.client.post(
            "/api/auth/register",
            json={"name": ["Bob"], "username": "bob", "password": "pw", "classCode": "11111"},
        )
        self.assertEqual(wrong_type.status_code, 400)
        self.assertIn("error", wrong_type.json())

    def test_join_select_and_class_scope(self) -> None:
        created = self.client.post("/api/admin/classes", headers=ADMIN, json={"name": "Class B", "code": "22222"})
        self.assertEqual(created.status_code, 201, created.text)
        class_b = created.json()["id"]

        self._register("ada")
        self._register("cyd", class_code="22222")
        ada = self._login("ada")
        cyd = self._login("cyd")
        class_a = self.client.get("/api/me", headers=ada).json()["activeClass"]["id"]
        self.client.post("/api/messages", headers=ada, json={"text": "in A"})

        cyd_id = self.client.get("/api/me", headers=cyd).json()["id"]
        hidden = self.client.get(f"/api/users/{cyd_id}", headers=ada)
        self.assertEqual(hidden.status_code, 404)
        self.assertEqual(self.client.post(f"/api/users/{cyd_id}/like", headers=ada).status_code, 404)

        wrong = self.client.post("/api/join-class", headers=ada, json={"classId": class_b, "code": "11111"})
        self.assertEqual(wrong.status_code, 401)
        joined = self.client.post("/api/join-class", headers=ada, json={"classId": class_b, "code": "22222"})
        self.assertEqual(joined.status_code, 200, joined.text)
        self.assertEqual(joined.json()["activeClass"], {"id": class_b, "name": "Class B"})

        self.assertEqual(self.client.get("/api/messages", headers=ada).json(), [])
        mates = self.client.get("/api/classmates", headers=ada).json()
        self.assertEqual([mate["username"] for mate in mates], ["cyd"])

        liked = self.client.post(f"/api/users/{cyd_id}/like", headers=ada)
        self.assertEqual(liked.json(), {"liked": True, "likes": 1})
        self.assertTrue(self.client.get(f"/api/users/{cyd_id}", headers=ada).json()["likedByMe"])

        forbidden = self.client.post("/api/select-class", headers=cyd, json={"classId": class_a})
        self.assertEqual(forbidden.status_code, 403)
        selected = self.client.post("/api/select-class", headers=ada, json={"classId": class_a})
        self.assertEqual(selected.status_code, 200)
        self.assertEqual([m["text"] for m in self.client.get("/api/messages", headers=ada).json()], ["in A"])

        listing = self.client.get("/api/classes", headers=ada).json()
        self.assertEqual({item["id"]: item["joined"] for item in listing}, {class_a: True, class_b: True})

    def test_self_like_is_forbidden(self) -> None:
        ada_id = self._register("ada")
        ada = self._login("ada")

        response = self.client.post(f"/api/users/{ada_id}/like", headers=ada)

        self.assertEqual(response.status_code, 403)

    def test_user_ids_must_be_seven_digits(self) -> None:
        self._register("ada")
        ada = self._login("ada")

        self.assertEqual(self.client.get("/api/users/123", headers=ada).status_code, 400)
        self.assertEqual(
            self.client.patch("/api/admin/users/abcdefg/status", headers=ADMIN, json={"role": "DEV"}).status_code,
            400,
        )

    def test_profile_update(self) -> None:
        self._register("ada")
        ada = self._login("ada")

        updated = self.client.patch("/api/me", headers=ada, json={"name": "  Ada Lovelace "})
        self.assertEqual(updated.status_code, 200)
        self.assertEqual(updated.json()["name"], "Ada Lovelace")
        self.assertEqual(self.client.patch("/api/me", headers=ada, json={"name": " "}).status_code, 400)

    def test_admin_requires_password_header(self) -> None:
        self.assertEqual(self.client.get("/api/admin/users").status_code, 401)
        self.assertEqual(self.client.get("/api/admin/users", headers={"x-admin-password": "00000"}).status_code, 401)
        self.assertEqual(self.client.post("/api/admin/login", json={"password": "00000"}).status_code, 401)
        self.assertEqual(self.client.post("/api/admin/login", json={"password": "12345"}).json(), {"ok": True})

    def test_admin_user_management(self) -> None:
        ada_id = self._register("ada")
        bob_id = self._register("bob")
        ada = self._login("ada")
        bob = self._login("bob")
        message = self.client.post("/api/messages", headers=ada, json={"text": "hi"}).json()

        promoted = self.client.patch(f"/api/admin/users/{bob_id}/status", headers=ADMIN, json={"role": "DEV"})
        self.assertEqual(promoted.status_code, 200, promoted.text)
        self.assertEqual(self.client.get("/api/me", headers=bob).json()["role"]["key"], "DEV")
        invalid = self.client.patch(f"/api/admin/users/{bob_id}/status", headers=ADMIN, json={"role": "ROOT"})
        self.assertEqual(invalid.status_code, 400)

        rows = self.client.get("/api/admin/users", headers=ADMIN).json()
        self.assertEqual(sorted(row["username"] for row in rows), ["ada", "bob"])
        self.assertNotIn("passwordHash", rows[0])

        removed = self.client.delete(f"/api/admin/users/{ada_id}", headers=ADMIN)
        self.assertEqual(removed.status_code, 200)
        self.assertEqual(self.client.get("/api/me", headers=ada).status_code, 401)
        self.assertEqual(self.client.delete(f"/api/messages/{message['id']}", headers=bob).status_code, 404)
        self.assertEqual(self.client.delete(f"/api/admin/users/{ada_id}", headers=ADMIN).status_code, 404)

    def test_admin_class_management(self) -> None:
        classes = self.client.get("/api/admin/classes", headers=ADMIN).json()
        self.assertEqual([(item["name"], item["code"]) for item in classes], [("Class A", "11111")])
        class_a = classes[0]["id"]

        duplicate = self.client.post("/api/admin/classes", headers=ADMIN, json={"name": "Dup", "code": "11111"})
        self.assertEqual(duplicate.status_code, 400)

        self._register("ada")
        ada = self._login("ada")
        disabled = self.client.patch(f"/api/admin/classes/{class_a}", headers=ADMIN, json={"enabled": False})
        self.assertEqual(disabled.status_code, 200)
        self.assertFalse(disabled.json()["enabled"])
        self.assertEqual(self.client.post("/api/messages", headers=ada, json={"text": "hi"}).status_code, 400)

        self.assertEqual(self.client.delete(f"/api/admin/classes/{class_a}", headers=ADMIN).status_code, 200)
        profile = self.client.get("/api/me", headers=ada).json()
        self.assertFalse(profile["hasJoinedClass"])
        self.assertIsNone(profile["activeClass"])

    def test_disabled_class_pointer_survives_refused_post(self) -> None:
        ada_id = self._register("ada")
        ada = self._login("ada")
        class_a = self.client.get("/api/me", headers=ada).json()["activeClass"]["id"]

        self.client.patch(f"/api/admin/classes/{class_a}", headers=ADMIN, json={"enabled": False})
        refused = self.client.post("/api/messages", headers=ada, json={"text": "hi"})
        self.assertEqual(refused.status_code, 400)
        self.assertEqual(refused.json(), {"error": "Join or select a class first"})
        self.assertIsNone(self.client.get("/api/me", headers=ada).json()["activeClass"])

        stored = next(user for user in self.app.state.chat.database.load()["users"] if user["id"] == ada_id)
        self.assertEqual(stored["activeClassId"], class_a)

        self.client.patch(f"/api/admin/classes/{class_a}", headers=ADMIN, json={"enabled": True})
        self.assertEqual(self.client.post("/api/messages", headers=ada, json={"text": "hi"}).status_code, 201)

    def test_change_admin_password(self) -> None:
        rejected = self.client.post(
            "/api/admin/change-password",
            headers=ADMIN,
            json={"currentPassword": "12345", "newPassword": "abcde"},
        )
        self.assertEqual(rejected.status_code, 400)

        changed = self.client.post(
            "/api/admin/change-password",
            headers=ADMIN,
            json={"currentPassword": "12345", "newPassword": 54321},
        )
        self.assertEqual(changed.status_code, 200, changed.text)

        self.assertEqual(self.client.get("/api/admin/users", headers=ADMIN).status_code, 401)
        self.assertEqual(self.client.get("/api/admin/users", headers={"x-admin-password": "54321"}).status_code, 200)

    def test_healthcheck(self) -> None:
        self.assertEqual(self.client.get("/healthz").json(), {"status": "ok"})


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
