"""Registration, profiles and the administrator's user and class management."""

from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, List, Optional

from .errors import Conflict, NotFound, ValidationError
from .membership import active_class_view
from .models import (
    MAX_NAME_LENGTH,
    ROLE_DEV,
    ROLE_USER,
    ROLES,
    Document,
    Record,
    adjust_message_count,
    class_ids,
    classes,
    find_class,
    find_class_by_code,
    find_user,
    find_user_by_username,
    is_class_code,
    liked_by,
    message_count,
    new_record_id,
    new_user_id,
    serialize_datetime,
    users,
    utcnow,
)
from .roles import podium, remove_from_podium, role_for_user

DEFAULT_CLASS_NAME = "Class A"
DEFAULT_CLASS_CODE = "11111"


def _clean_name(value: object, *, field: str = "name") -> str:
    cleaned = value.strip() if isinstance(value, str) else ""
    if not cleaned:
        raise ValidationError(f"{field} must not be empty")
    if len(cleaned) > MAX_NAME_LENGTH:
        raise ValidationError(f"{field} must be {MAX_NAME_LENGTH} characters or fewer")
    return cleaned


def validate_registration(name: object, username: object, password: object, class_code: object) -> None:
    if not name or not username or not password or not class_code:
        raise ValidationError("name, username, password, classCode are required")
    if not is_class_code(class_code):
        raise ValidationError("Class code must be 5 digits")


def register_user(
    document: Document,
    *,
    name: str,
    username: str,
    password_hash: str,
    class_code: str,
    dev_usernames: Iterable[str] = (),
) -> Record:
    """Create a user who immediately joins the class identified by ``class_code``."""

    display_name = _clean_name(name)
    login = _clean_name(username, field="username")
    if find_user_by_username(document, login) is not None:
        raise Conflict("Username already exists")

    item = find_class_by_code(document, class_code)
    if item is None or not item.get("enabled"):
        raise ValidationError("Class is disabled or does not exist")

    user = {
        "id": new_user_id(document),
        "name": display_name,
        "username": login,
        "passwordHash": password_hash,
        "role": ROLE_DEV if login.lower() in set(dev_usernames) else ROLE_USER,
        "classIds": [item["id"]],
        "activeClassId": item["id"],
        "likedBy": [],
        "messageCount": 0,
        "createdAt": serialize_datetime(utcnow()),
    }
    document["users"].append(user)
    return user


def profile_view(document: Document, user: Record) -> Dict[str, Any]:
    current = active_class_view(document, user)
    return {
        "id": user.get("id"),
        "name": user.get("name"),
        "username": user.get("username"),
        "likes": len(liked_by(user)),
        "messages": message_count(user),
        "role": role_for_user(user, podium(document)).to_dict(),
        "hasJoinedClass": bool(class_ids(user)),
        "activeClass": current,
    }


def update_profile(user: Record, name: object) -> Record:
    user["name"] = _clean_name(name)
    return user


def admin_user_rows(document: Document) -> List[Dict[str, Any]]:
    return [
        {
            "id": user.get("id"),
            "name": user.get("name"),
            "username": user.get("username"),
            "classIds": list(class_ids(user)),
            "activeClassId": user.get("activeClassId"),
            "role": user.get("role", ROLE_USER),
            "tier": role_for_user(user, podium(document)).to_dict(),
            "likes": len(liked_by(user)),
            "messages": message_count(user),
        }
        for user in users(document)
    ]


def set_user_role(document: Document, user_id: str, role: object) -> Record:
    if role not in ROLES:
        raise ValidationError("role must be USER or DEV")
    user = find_user(document, user_id)
    if user is None:
        raise NotFound("User not found")
    user["role"] = role
    return user


def delete_user(document: Document, user_id: str) -> Record:
    """Remove a user together with everything that references them."""

    user = find_user(document, user_id)
    if user is None:
        raise NotFound("User not found")

    document["users"] = [entry for entry in document["users"] if entry is not user]
    document["messages"] = [
        message
        for message in document["messages"]
        if not (isinstance(message, dict) and message.get("authorId") == user_id)
    ]
    for record in [*users(document), *(m for m in document["messages"] if isinstance(m, dict))]:
        entries = liked_by(record)
        if user_id in entries:
            entries[:] = [entry for entry in entries if entry != user_id]
    remove_from_podium(document, user_id)
    return user


def create_class(document: Document, name: object, code: object) -> Record:
    display_name = _clean_name(name)
    if not is_class_code(code):
        raise ValidationError("name and 5-digit code are required")
    if find_class_by_code(document, code) is not None:
        raise Conflict("Class code already exists")

    item = {"id": new_record_id(), "name": display_name, "code": code, "enabled": True}
    document["classes"].append(item)
    return item


def update_class(
    document: Document,
    class_id: str,
    *,
    name: Optional[object] = None,
    code: Optional[object] = None,
    enabled: Optional[bool] = None,
) -> Record:
    item = find_class(document, class_id)
    if item is None:
        raise NotFound("Class not found")

    if code is not None:
        if not is_class_code(code):
            raise ValidationError("code must be 5 digits")
        duplicate = find_class_by_code(document, code)
        if duplicate is not None and duplicate is not item:
            raise Conflict("Class code already used")
    new_name = _clean_name(name) if name is not None else None

    if code is not None:
        item["code"] = code
    if new_name is not None:
        item["name"] = new_name
    if enabled is not None:
        item["enabled"] = bool(enabled)
    return item


def delete_class(document: Document, class_id: str) -> Record:
    """Remove a class, its messages and every membership pointing at it."""

    item = find_class(document, class_id)
    if item is None:
        raise NotFound("Class not found")

    document["classes"] = [entry for entry in document["classes"] if entry is not item]

    kept = []
    for message in document["messages"]:
        if isinstance(message, dict) and message.get("classId") == class_id:
            author = find_user(document, message.get("authorId"))
            if author is not None:
                adjust_message_count(author, -1)
            continue
        kept.append(message)
    document["messages"] = kept

    for user in users(document):
        joined = class_ids(user)
        if class_id in joined:
            joined[:] = [entry for entry in joined if entry != class_id]
        if user.get("activeClassId") == class_id:
            user["activeClassId"] = None
    return item


def bootstrap(document: Document, hash_admin_password: Callable[[], str]) -> bool:
    """Fill in the admin password hash and a first class. Returns ``True`` on change."""

    changed = False
    settings = document["settings"]
    if not settings.get("adminPasswordHash"):
        settings["adminPasswordHash"] = hash_admin_password()
        changed = True
    if not classes(document):
        document["classes"].append(
            {"id": new_record_id(), "name": DEFAULT_CLASS_NAME, "code": DEFAULT_CLASS_CODE, "enabled": True}
        )
        changed = True
    return changed


__all__ = [
    "DEFAULT_CLASS_CODE",
    "DEFAULT_CLASS_NAME",
    "admin_user_rows",
    "bootstrap",
    "create_class",
    "delete_class",
    "delete_user",
    "profile_view",
    "register_user",
    "set_user_role",
    "update_class",
    "update_profile",
    "validate_registration",
]
