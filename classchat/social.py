"""Likes and messages inside the caller's active class."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List

from .errors import Forbidden, NotFound, ValidationError
from .membership import require_active_class, require_classmate
from .models import (
    MAX_MESSAGE_LENGTH,
    Document,
    Record,
    adjust_message_count,
    find_message,
    find_user,
    is_dev,
    liked_by,
    messages,
    new_record_id,
    next_message_timestamp,
    parse_datetime,
)
from .roles import podium, role_for_user

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _toggle(entries: List[str], user_id: str) -> bool:
    if user_id in entries:
        entries[:] = [entry for entry in entries if entry != user_id]
        return False
    entries.append(user_id)
    return True


def toggle_user_like(document: Document, user: Record, target_id: str) -> Dict[str, Any]:
    if target_id == user.get("id"):
        raise Forbidden("You cannot like yourself")
    target = require_classmate(document, user, target_id)
    entries = liked_by(target)
    liked = _toggle(entries, user["id"])
    return {"liked": liked, "likes": len(entries)}


def post_message(document: Document, user: Record, text: object) -> Record:
    item = require_active_class(document, user)
    cleaned = text.strip() if isinstance(text, str) else ""
    if not cleaned:
        raise ValidationError("Message text is required")

    message = {
        "id": new_record_id(),
        "classId": item["id"],
        "authorId": user["id"],
        "text": cleaned[:MAX_MESSAGE_LENGTH],
        "likedBy": [],
        "createdAt": next_message_timestamp(document),
    }
    document["messages"].append(message)
    adjust_message_count(user, 1)
    return message


def _message_in_active_class(document: Document, user: Record, message_id: str) -> Record:
    item = require_active_class(document, user)
    message = find_message(document, message_id)
    if message is None or message.get("classId") != item.get("id"):
        raise NotFound("Message not found")
    return message


def delete_message(document: Document, user: Record, message_id: str) -> Record:
    message = _message_in_active_class(document, user, message_id)
    if message.get("authorId") != user.get("id") and not is_dev(user):
        raise Forbidden("Only the author or a DEV can delete this message")

    document["messages"] = [entry for entry in document["messages"] if entry is not message]
    author = find_user(document, message.get("authorId"))
    if author is not None:
        adjust_message_count(author, -1)
    return message


def toggle_message_like(document: Document, user: Record, message_id: str) -> Dict[str, Any]:
    message = _message_in_active_class(document, user, message_id)
    entries = liked_by(message)
    liked = _toggle(entries, user["id"])
    return {"liked": liked, "likes": len(entries)}


def message_view(document: Document, viewer: Record, message: Record, author: Record) -> Dict[str, Any]:
    likes = liked_by(message)
    return {
        "id": message.get("id"),
        "text": message.get("text"),
        "createdAt": message.get("createdAt"),
        "likes": len(likes),
        "likedByMe": viewer.get("id") in likes,
        "canDelete": author.get("id") == viewer.get("id") or is_dev(viewer),
        "author": {
            "id": author.get("id"),
            "name": author.get("name"),
            "username": author.get("username"),
            "role": role_for_user(author, podium(document)).to_dict(),
        },
    }


def list_messages(document: Document, user: Record) -> List[Dict[str, Any]]:
    """Messages of the active class, oldest first. Orphaned messages are skipped."""

    item = require_active_class(document, user)
    views = []
    for message in messages(document):
        if message.get("classId") != item.get("id"):
            continue
        author = find_user(document, message.get("authorId"))
        if author is None:
            continue
        views.append(message_view(document, user, message, author))
    views.sort(key=lambda view: parse_datetime(view["createdAt"]) or _EPOCH)
    return views


__all__ = [
    "delete_message",
    "list_messages",
    "message_view",
    "post_message",
    "toggle_message_like",
    "toggle_user_like",
]
