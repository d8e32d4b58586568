"""Class membership, active class selection and the class-scope gate."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from .errors import Forbidden, NotFound, Unauthorized, ValidationError
from .models import Document, Record, class_ids, classes, find_class, find_user, liked_by, message_count, users
from .roles import podium, role_for_user

NO_ACTIVE_CLASS = "Join or select a class first"


def is_member(user: Record, class_id: object) -> bool:
    return class_id in class_ids(user)


def _usable_class(document: Document, class_id: object) -> Optional[Record]:
    item = find_class(document, class_id)
    if item is None or not item.get("enabled"):
        return None
    return item


def join_class(document: Document, user: Record, class_id: str, code: str) -> Record:
    """Join ``class_id`` with its code and make it the active class."""

    item = _usable_class(document, class_id)
    if item is None:
        raise NotFound("Class is disabled or does not exist")
    if code != item.get("code"):
        raise Unauthorized("Invalid class code")

    joined = class_ids(user)
    if class_id not in joined:
        joined.append(class_id)
    user["activeClassId"] = class_id
    return item


def select_class(document: Document, user: Record, class_id: str) -> Record:
    if not is_member(user, class_id):
        raise Forbidden("You have not joined this class")
    item = _usable_class(document, class_id)
    if item is None:
        raise NotFound("Class is disabled or does not exist")
    user["activeClassId"] = class_id
    return item


def active_class(document: Document, user: Record) -> Optional[Record]:
    """Return the usable active class of ``user`` without raising."""

    class_id = user.get("activeClassId")
    if class_id is None or not is_member(user, class_id):
        return None
    return _usable_class(document, class_id)


def require_active_class(document: Document, user: Record) -> Record:
    """Return the active class or fail if the user has none to act in."""

    item = active_class(document, user)
    if item is None:
        raise ValidationError(NO_ACTIVE_CLASS)
    return item


def active_class_view(document: Document, user: Record) -> Optional[Dict[str, Any]]:
    item = active_class(document, user)
    if item is None:
        return None
    return {"id": item.get("id"), "name": item.get("name")}


def list_classes_for_user(document: Document, user: Record) -> List[Dict[str, Any]]:
    """Enabled classes with the caller's membership flags. Codes stay hidden."""

    current = user.get("activeClassId")
    return [
        {
            "id": item.get("id"),
            "name": item.get("name"),
            "joined": is_member(user, item.get("id")),
            "active": item.get("id") == current,
        }
        for item in classes(document)
        if item.get("enabled")
    ]


def classmates(document: Document, user: Record) -> List[Record]:
    item = require_active_class(document, user)
    class_id = item.get("id")
    return [
        other
        for other in users(document)
        if other.get("id") != user.get("id") and is_member(other, class_id)
    ]


def require_classmate(document: Document, user: Record, target_id: str) -> Record:
    """Return ``target_id`` if it shares the caller's active class."""

    item = require_active_class(document, user)
    target = find_user(document, target_id)
    if target is None or not is_member(target, item.get("id")):
        raise NotFound("User not found in your class")
    return target


def user_card(document: Document, viewer: Record, user: Record) -> Dict[str, Any]:
    likes = liked_by(user)
    return {
        "id": user.get("id"),
        "name": user.get("name"),
        "username": user.get("username"),
        "likes": len(likes),
        "messages": message_count(user),
        "role": role_for_user(user, podium(document)).to_dict(),
        "likedByMe": viewer.get("id") in likes,
    }


__all__ = [
    "NO_ACTIVE_CLASS",
    "active_class",
    "active_class_view",
    "classmates",
    "is_member",
    "join_class",
    "list_classes_for_user",
    "require_active_class",
    "require_classmate",
    "select_class",
    "user_card",
]
