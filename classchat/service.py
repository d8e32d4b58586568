"""Request-level operations of the chat service.

Each public coroutine is one load-mutate-save unit over the state document:
the document is loaded inside :meth:`Database.transaction`, checked and
mutated by the domain helpers, and saved only when no error was raised.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from . import accounts, membership, social
from .config import Settings
from .database import Database
from .errors import Unauthorized, ValidationError
from .models import Document, Record, find_user, find_user_by_username, is_class_code
from .passwords import hash_password, hash_password_async, verify_password_async
from .roles import record_podium_login
from .sessions import SessionManager

logger = logging.getLogger("classchat.service")

ADMIN_PASSWORD_HEADER = "x-admin-password"


class ClassChat:
    """Facade combining the store, credentials and tokens."""

    def __init__(self, database: Database, sessions: SessionManager, settings: Settings) -> None:
        self._database = database
        self._sessions = sessions
        self._settings = settings

    @property
    def database(self) -> Database:
        return self._database

    @property
    def sessions(self) -> SessionManager:
        return self._sessions

    @property
    def settings(self) -> Settings:
        return self._settings

    def bootstrap(self) -> None:
        """Seed the admin password and a first class into an empty store."""

        document = self._database.initialize()
        default_password = self._settings.default_admin_password
        if accounts.bootstrap(document, lambda: hash_password(default_password)):
            self._database.save(document)
            logger.info("Initialised state document at %s", self._settings.store_path)

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------
    async def register(self, *, name: object, username: object, password: object, class_code: object) -> Record:
        accounts.validate_registration(name, username, password, class_code)
        if not isinstance(password, str):
            raise ValidationError("password must be a string")
        password_hash = await hash_password_async(password)

        async with self._database.transaction() as document:
            user = accounts.register_user(
                document,
                name=name,  # type: ignore[arg-type]
                username=username,  # type: ignore[arg-type]
                password_hash=password_hash,
                class_code=class_code,  # type: ignore[arg-type]
                dev_usernames=self._settings.dev_usernames,
            )
        logger.info("Registered user %s (%s)", user["id"], user["username"])
        return user

    async def login(self, username: object, password: object) -> str:
        if not username or not password or not isinstance(username, str) or not isinstance(password, str):
            raise ValidationError("username and password are required")

        async with self._database.transaction() as document:
            user = find_user_by_username(document, username)
            if user is None or not await verify_password_async(password, user.get("passwordHash")):
                logger.warning("Failed login attempt for %s", username)
                raise Unauthorized("Invalid credentials")
            if record_podium_login(document, user):
                logger.info("User %s took podium place %d", user["id"], len(document["loginPodiumOrder"]))
            token = self._sessions.issue(user["id"])

        logger.info("User %s signed in", user["id"])
        return token

    def _resolve_token(self, document: Document, token: Optional[str]) -> Record:
        if not token:
            raise Unauthorized("No token")
        session = self._sessions.parse(token)
        user = find_user(document, session.uid) if session is not None else None
        if user is None:
            raise Unauthorized("Invalid token")
        return user

    async def me(self, token: Optional[str]) -> Dict[str, Any]:
        async with self._database.snapshot() as document:
            user = self._resolve_token(document, token)
            return accounts.profile_view(document, user)

    async def update_me(self, token: Optional[str], *, name: object) -> Dict[str, Any]:
        async with self._database.transaction() as document:
            user = self._resolve_token(document, token)
            accounts.update_profile(user, name)
            return accounts.profile_view(document, user)

    # ------------------------------------------------------------------
    # Classes
    # ------------------------------------------------------------------
    async def list_classes(self, token: Optional[str]) -> List[Dict[str, Any]]:
        async with self._database.snapshot() as document:
            user = self._resolve_token(document, token)
            return membership.list_classes_for_user(document, user)

    async def join_class(self, token: Optional[str], class_id: object, code: object) -> Dict[str, Any]:
        if not class_id or not isinstance(class_id, str):
            raise ValidationError("classId is required")
        if not is_class_code(code):
            raise ValidationError("Class code must be 5 digits")

        async with self._database.transaction() as document:
            user = self._resolve_token(document, token)
            item = membership.join_class(document, user, class_id, code)  # type: ignore[arg-type]
        logger.info("User %s joined class %s", user["id"], class_id)
        return {"id": item["id"], "name": item.get("name")}

    async def select_class(self, token: Optional[str], class_id: object) -> Dict[str, Any]:
        if not class_id or not isinstance(class_id, str):
            raise ValidationError("classId is required")

        async with self._database.transaction() as document:
            user = self._resolve_token(document, token)
            item = membership.select_class(document, user, class_id)
        return {"id": item["id"], "name": item.get("name")}

    async def classmates(self, token: Optional[str]) -> List[Dict[str, Any]]:
        async with self._database.snapshot() as document:
            user = self._resolve_token(document, token)
            return [membership.user_card(document, user, other) for other in membership.classmates(document, user)]

    async def user_profile(self, token: Optional[str], user_id: str) -> Dict[str, Any]:
        async with self._database.snapshot() as document:
            user = self._resolve_token(document, token)
            target = membership.require_classmate(document, user, user_id)
            return membership.user_card(document, user, target)

    async def toggle_user_like(self, token: Optional[str], user_id: str) -> Dict[str, Any]:
        async with self._database.transaction() as document:
            user = self._resolve_token(document, token)
            return social.toggle_user_like(document, user, user_id)

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------
    async def list_messages(self, token: Optional[str]) -> List[Dict[str, Any]]:
        async with self._database.snapshot() as document:
            user = self._resolve_token(document, token)
            return social.list_messages(document, user)

    async def post_message(self, token: Optional[str], text: object) -> Dict[str, Any]:
        async with self._database.transaction() as document:
            user = self._resolve_token(document, token)
            message = social.post_message(document, user, text)
            return social.message_view(document, user, message, user)

    async def delete_message(self, token: Optional[str], message_id: str) -> None:
        async with self._database.transaction() as document:
            user = self._resolve_token(document, token)
            message = social.delete_message(document, user, message_id)
        logger.info("User %s deleted message %s by %s", user["id"], message_id, message.get("authorId"))

    async def toggle_message_like(self, token: Optional[str], message_id: str) -> Dict[str, Any]:
        async with self._database.transaction() as document:
            user = self._resolve_token(document, token)
            return social.toggle_message_like(document, user, message_id)

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------
    async def _require_admin(self, document: Document, password: Optional[str]) -> None:
        if not password or not await verify_password_async(password, document["settings"].get("adminPasswordHash")):
            raise Unauthorized("Invalid admin password")

    async def admin_login(self, password: Optional[str]) -> None:
        async with self._database.snapshot() as document:
            try:
                await self._require_admin(document, password)
            except Unauthorized:
                logger.warning("Failed admin login attempt")
                raise

    async def change_admin_password(
        self,
        admin_password: Optional[str],
        *,
        current_password: object,
        new_password: object,
    ) -> None:
        if not current_password or not new_password:
            raise ValidationError("currentPassword and newPassword are required")
        if not is_class_code(new_password):
            raise ValidationError("newPassword must be 5 digits")
        new_hash = await hash_password_async(new_password)  # type: ignore[arg-type]

        async with self._database.transaction() as document:
            await self._require_admin(document, admin_password)
            if not isinstance(current_password, str) or not await verify_password_async(
                current_password, document["settings"].get("adminPasswordHash")
            ):
                raise Unauthorized("Current password is incorrect")
            document["settings"]["adminPasswordHash"] = new_hash
        logger.info("Admin password updated")

    async def admin_list_users(self, admin_password: Optional[str]) -> List[Dict[str, Any]]:
        async with self._database.snapshot() as document:
            await self._require_admin(document, admin_password)
            return accounts.admin_user_rows(document)

    async def admin_set_role(self, admin_password: Optional[str], user_id: str, role: object) -> None:
        async with self._database.transaction() as document:
            await self._require_admin(document, admin_password)
            accounts.set_user_role(document, user_id, role)
        logger.info("Admin set role of user %s to %s", user_id, role)

    async def admin_delete_user(self, admin_password: Optional[str], user_id: str) -> None:
        async with self._database.transaction() as document:
            await self._require_admin(document, admin_password)
            accounts.delete_user(document, user_id)
        logger.info("Admin deleted user %s", user_id)

    async def admin_list_classes(self, admin_password: Optional[str]) -> List[Record]:
        async with self._database.snapshot() as document:
            await self._require_admin(document, admin_password)
            return list(document["classes"])

    async def admin_create_class(self, admin_password: Optional[str], *, name: object, code: object) -> Record:
        async with self._database.transaction() as document:
            await self._require_admin(document, admin_password)
            item = accounts.create_class(document, name, code)
        logger.info("Admin created class %s (%s)", item["id"], item["name"])
        return item

    async def admin_update_class(
        self,
        admin_password: Optional[str],
        class_id: str,
        *,
        name: object = None,
        code: object = None,
        enabled: Optional[bool] = None,
    ) -> Record:
        async with self._database.transaction() as document:
            await self._require_admin(document, admin_password)
            return accounts.update_class(document, class_id, name=name, code=code, enabled=enabled)

    async def admin_delete_class(self, admin_password: Optional[str], class_id: str) -> None:
        async with self._database.transaction() as document:
            await self._require_admin(document, admin_password)
            item = accounts.delete_class(document, class_id)
        logger.info("Admin deleted class %s (%s)", class_id, item.get("name"))


__all__ = ["ADMIN_PASSWORD_HEADER", "ClassChat"]
