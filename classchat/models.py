"""Record helpers for the users, classes and messages held in the state document."""

from __future__ import annotations

import re
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

ROLE_USER = "USER"
ROLE_DEV = "DEV"
ROLES = (ROLE_USER, ROLE_DEV)

MAX_MESSAGE_LENGTH = 500
MAX_NAME_LENGTH = 64

CLASS_CODE_PATTERN = re.compile(r"^[0-9]{5}$")
USER_ID_PATTERN = re.compile(r"^[0-9]{7}$")

Record = Dict[str, Any]
Document = Dict[str, Any]


def is_class_code(value: object) -> bool:
    return isinstance(value, str) and CLASS_CODE_PATTERN.fullmatch(value) is not None


def is_user_id(value: object) -> bool:
    return isinstance(value, str) and USER_ID_PATTERN.fullmatch(value) is not None


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def serialize_datetime(value: datetime) -> str:
    return value.isoformat()


def parse_datetime(value: object) -> Optional[datetime]:
    if not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def new_user_id(document: Document) -> str:
    taken = {str(user.get("id")) for user in document["users"] if isinstance(user, dict)}
    while True:
        candidate = str(1_000_000 + secrets.randbelow(9_000_000))
        if candidate not in taken:
            return candidate


def new_record_id() -> str:
    return str(uuid.uuid4())


def next_message_timestamp(document: Document) -> str:
    """Return a creation timestamp later than every stored message."""

    now = utcnow()
    latest: Optional[datetime] = None
    for message in document["messages"]:
        if not isinstance(message, dict):
            continue
        created = parse_datetime(message.get("createdAt"))
        if created is not None and (latest is None or created > latest):
            latest = created
    if latest is not None and now <= latest:
        now = latest + timedelta(microseconds=1)
    return serialize_datetime(now)


def _records(document: Document, key: str) -> List[Record]:
    return [item for item in document[key] if isinstance(item, dict)]


def users(document: Document) -> List[Record]:
    return _records(document, "users")


def classes(document: Document) -> List[Record]:
    return _records(document, "classes")


def messages(document: Document) -> List[Record]:
    return _records(document, "messages")


def find_user(document: Document, user_id: object) -> Optional[Record]:
    for user in users(document):
        if user.get("id") == user_id:
            return user
    return None


def find_user_by_username(document: Document, username: str) -> Optional[Record]:
    normalized = username.strip().lower()
    for user in users(document):
        if str(user.get("username", "")).lower() == normalized:
            return user
    return None


def find_class(document: Document, class_id: object) -> Optional[Record]:
    for item in classes(document):
        if item.get("id") == class_id:
            return item
    return None


def find_class_by_code(document: Document, code: str) -> Optional[Record]:
    for item in classes(document):
        if item.get("code") == code:
            return item
    return None


def find_message(document: Document, message_id: object) -> Optional[Record]:
    for message in messages(document):
        if message.get("id") == message_id:
            return message
    return None


def id_list(record: Record, key: str) -> List[str]:
    """Return the id list stored under ``key``, repairing missing or bad values."""

    value = record.get(key)
    if not isinstance(value, list):
        value = []
        record[key] = value
    return value


def class_ids(user: Record) -> List[str]:
    return id_list(user, "classIds")


def liked_by(record: Record) -> List[str]:
    return id_list(record, "likedBy")


def message_count(user: Record) -> int:
    value = user.get("messageCount")
    if value is None:
        # Records written before the counter existed kept it under "messages".
        value = user.get("messages")
    if isinstance(value, bool) or not isinstance(value, int):
        return 0
    return max(value, 0)


def adjust_message_count(user: Record, delta: int) -> int:
    count = max(message_count(user) + delta, 0)
    user["messageCount"] = count
    return count


def is_dev(user: Record) -> bool:
    return user.get("role") == ROLE_DEV


__all__ = [
    "CLASS_CODE_PATTERN",
    "MAX_MESSAGE_LENGTH",
    "MAX_NAME_LENGTH",
    "ROLES",
    "ROLE_DEV",
    "ROLE_USER",
    "USER_ID_PATTERN",
    "adjust_message_count",
    "class_ids",
    "classes",
    "find_class",
    "find_class_by_code",
    "find_message",
    "find_user",
    "find_user_by_username",
    "id_list",
    "is_class_code",
    "is_dev",
    "is_user_id",
    "liked_by",
    "message_count",
    "messages",
    "new_record_id",
    "new_user_id",
    "next_message_timestamp",
    "parse_datetime",
    "serialize_datetime",
    "users",
    "utcnow",
]
