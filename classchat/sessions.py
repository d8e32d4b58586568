"""Stateless signed session tokens for the chat API."""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

DEFAULT_TOKEN_TTL = timedelta(days=30)


@dataclass(frozen=True)
class SessionToken:
    """Decoded contents of a bearer token."""

    uid: str
    exp: int

    @property
    def expires_at(self) -> datetime:
        return datetime.fromtimestamp(self.exp / 1000, tz=timezone.utc)


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64decode(text: str) -> bytes:
    padding = "=" * (-len(text) % 4)
    return base64.urlsafe_b64decode(text + padding)


class SessionManager:
    """Issue and validate ``payload.signature`` tokens signed with HMAC-SHA256.

    Nothing is stored server side, so a token stays valid until it expires or
    the secret changes.
    """

    def __init__(
        self,
        secret: str,
        *,
        ttl: timedelta = DEFAULT_TOKEN_TTL,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if not secret:
            raise ValueError("A token secret must be provided")
        self._secret = secret.encode("utf-8")
        self._ttl = ttl
        self._clock = clock or self._now

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def issue(self, user_id: str) -> str:
        expires = self._clock() + self._ttl
        payload = {"uid": user_id, "exp": int(expires.timestamp() * 1000)}
        encoded = _b64encode(json.dumps(payload, separators=(",", ":")).encode("utf-8"))
        return f"{encoded}.{self._sign(encoded)}"

    def parse(self, token: str) -> Optional[SessionToken]:
        if not isinstance(token, str) or token.count(".") != 1:
            return None
        encoded, signature = token.split(".", 1)
        if not encoded or not signature:
            return None
        if not hmac.compare_digest(self._sign(encoded).encode("ascii"), signature.encode("utf-8")):
            return None

        try:
            payload = json.loads(_b64decode(encoded))
        except (ValueError, binascii.Error):
            return None
        if not isinstance(payload, dict):
            return None

        uid = payload.get("uid")
        exp = payload.get("exp")
        if not isinstance(uid, str) or isinstance(exp, bool) or not isinstance(exp, (int, float)):
            return None
        if exp <= self._clock().timestamp() * 1000:
            return None
        return SessionToken(uid=uid, exp=int(exp))

    def _sign(self, encoded: str) -> str:
        digest = hmac.new(self._secret, encoded.encode("ascii", "replace"), hashlib.sha256).digest()
        return _b64encode(digest)

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)


def generate_secret() -> str:
    return secrets.token_urlsafe(48)


__all__ = ["SessionManager", "SessionToken", "DEFAULT_TOKEN_TTL", "generate_secret"]
