from __future__ import annotations

import pytest

from classchat import accounts, social
from classchat.database import base_document
from classchat.errors import Forbidden, NotFound, ValidationError
from classchat.models import MAX_MESSAGE_LENGTH, find_user, parse_datetime


@pytest.fixture()
def document() -> dict:
    doc = base_document()
    accounts.bootstrap(doc, lambda: "salt:00")
    accounts.create_class(doc, "Class B", "22222")
    return doc


def _register(document: dict, username: str, code: str = "11111", dev: bool = False) -> dict:
    return accounts.register_user(
        document,
        name=username.title(),
        username=username,
        password_hash="salt:00",
        class_code=code,
        dev_usernames=(username,) if dev else (),
    )


def test_like_toggles_back_and_forth(document: dict) -> None:
    ada = _register(document, "ada")
    bob = _register(document, "bob")

    assert social.toggle_user_like(document, ada, bob["id"]) == {"liked": True, "likes": 1}
    assert social.toggle_user_like(document, ada, bob["id"]) == {"liked": False, "likes": 0}
    assert bob["likedBy"] == []


def test_self_like_is_forbidden(document: dict) -> None:
    ada = _register(document, "ada")

    with pytest.raises(Forbidden):
        social.toggle_user_like(document, ada, ada["id"])


def test_like_across_classes_is_denied(document: dict) -> None:
    ada = _register(document, "ada")
    cyd = _register(document, "cyd", code="22222")

    with pytest.raises(NotFound):
        social.toggle_user_like(document, ada, cyd["id"])
    assert cyd["likedBy"] == []


def test_post_trims_and_clips_text(document: dict) -> None:
    ada = _register(document, "ada")

    message = social.post_message(document, ada, "  " + "x" * (MAX_MESSAGE_LENGTH + 20) + "  ")

    assert len(message["text"]) == MAX_MESSAGE_LENGTH
    assert ada["messageCount"] == 1


@pytest.mark.parametrize("text", ["", "   ", None, 42])
def test_post_rejects_blank_text(document: dict, text: object) -> None:
    ada = _register(document, "ada")

    with pytest.raises(ValidationError):
        social.post_message(document, ada, text)
    assert document["messages"] == []


def test_post_without_active_class_is_rejected(document: dict) -> None:
    ada = _register(document, "ada")
    ada["activeClassId"] = None

    with pytest.raises(ValidationError):
        social.post_message(document, ada, "hi")


def test_messages_are_listed_oldest_first(document: dict) -> None:
    ada = _register(document, "ada")
    for text in ("one", "two", "three"):
        social.post_message(document, ada, text)

    views = social.list_messages(document, ada)

    assert [view["text"] for view in views] == ["one", "two", "three"]
    stamps = [parse_datetime(view["createdAt"]) for view in views]
    assert stamps == sorted(stamps) and len(set(stamps)) == 3


def test_only_author_or_dev_may_delete(document: dict) -> None:
    ada = _register(document, "ada")
    bob = _register(document, "bob")
    dev = _register(document, "dev", dev=True)
    first = social.post_message(document, ada, "first")
    second = social.post_message(document, ada, "second")

    with pytest.raises(Forbidden):
        social.delete_message(document, bob, first["id"])

    social.delete_message(document, ada, first["id"])
    social.delete_message(document, dev, second["id"])

    assert document["messages"] == []
    assert ada["messageCount"] == 0
    with pytest.raises(NotFound):
        social.delete_message(document, dev, second["id"])


def test_message_count_never_goes_negative(document: dict) -> None:
    ada = _register(document, "ada")
    message = social.post_message(document, ada, "hi")
    ada["messageCount"] = 0

    social.delete_message(document, ada, message["id"])

    assert ada["messageCount"] == 0


def test_message_from_other_class_is_not_found(document: dict) -> None:
    ada = _register(document, "ada")
    cyd = _register(document, "cyd", code="22222", dev=True)
    message = social.post_message(document, ada, "private")

    with pytest.raises(NotFound):
        social.toggle_message_like(document, cyd, message["id"])
    with pytest.raises(NotFound):
        social.delete_message(document, cyd, message["id"])


def test_message_like_toggles_and_is_reported_in_views(document: dict) -> None:
    ada = _register(document, "ada")
    bob = _register(document, "bob")
    message = social.post_message(document, ada, "hi")

    assert social.toggle_message_like(document, bob, message["id"]) == {"liked": True, "likes": 1}

    view = social.list_messages(document, bob)[0]
    assert view["likedByMe"] is True
    assert view["canDelete"] is False
    assert view["author"]["username"] == "ada"

    assert social.toggle_message_like(document, bob, message["id"]) == {"liked": False, "likes": 0}


def test_orphaned_messages_are_skipped(document: dict) -> None:
    ada = _register(document, "ada")
    social.post_message(document, ada, "kept")
    document["messages"].append(
        {"id": "orphan", "classId": ada["activeClassId"], "authorId": "9999999", "text": "?", "likedBy": []}
    )

    assert [view["text"] for view in social.list_messages(document, ada)] == ["kept"]


def test_legacy_counter_is_read_and_then_migrated(document: dict) -> None:
    ada = _register(document, "ada")
    del ada["messageCount"]
    ada["messages"] = 4

    social.post_message(document, ada, "hi")

    assert find_user(document, ada["id"])["messageCount"] == 5
