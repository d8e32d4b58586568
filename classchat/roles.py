"""Display roles derived from the DEV flag and the login podium."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Dict, List, Sequence

from .models import Document, Record, is_dev

PODIUM_SIZE = 3


@dataclass(frozen=True)
class RoleTier:
    key: str
    label: str
    design: str

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


DEV_TIER = RoleTier(key="DEV", label="DEV", design="diamond")
PODIUM_TIERS = (
    RoleTier(key="FIRST_USER", label="First user 👑", design="gold"),
    RoleTier(key="SECOND_USER", label="Second user", design="silver"),
    RoleTier(key="THIRD_USER", label="Third user", design="bronze"),
)
DEFAULT_TIER = RoleTier(key="USER", label="USER", design="default")


def role_for_user(user: Record, podium: Sequence[object]) -> RoleTier:
    """Return the display tier for ``user`` given the recorded podium order."""

    if is_dev(user):
        return DEV_TIER
    user_id = user.get("id")
    if user_id is None:
        return DEFAULT_TIER
    try:
        position = list(podium).index(user_id)
    except ValueError:
        return DEFAULT_TIER
    if position < len(PODIUM_TIERS):
        return PODIUM_TIERS[position]
    return DEFAULT_TIER


def podium(document: Document) -> List[object]:
    return document["loginPodiumOrder"]


def record_podium_login(document: Document, user: Record) -> bool:
    """Append ``user`` to the podium on their first login if a slot is free.

    Slots vacated by deleted users stay in the list and are not handed out again.
    """

    order = podium(document)
    user_id = user.get("id")
    if is_dev(user) or user_id in order or len(order) >= PODIUM_SIZE:
        return False
    order.append(user_id)
    return True


def remove_from_podium(document: Document, user_id: str) -> None:
    """Vacate the slot held by ``user_id``. Later entries keep their positions."""

    document["loginPodiumOrder"] = [None if entry == user_id else entry for entry in podium(document)]


__all__ = [
    "DEFAULT_TIER",
    "DEV_TIER",
    "PODIUM_SIZE",
    "PODIUM_TIERS",
    "RoleTier",
    "podium",
    "record_podium_login",
    "remove_from_podium",
    "role_for_user",
]
