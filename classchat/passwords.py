"""Salted password hashing shared by user and administrator credentials."""
from __future__ import annotations

import binascii
import hashlib
import hmac
import secrets

import anyio

_PBKDF2_DIGEST = "sha512"
_PBKDF2_ROUNDS = 10_000
_PBKDF2_KEY_BYTES = 64
_PBKDF2_SALT_BYTES = 16


def _derive(password: str, salt: str) -> bytes:
    return hashlib.pbkdf2_hmac(
        _PBKDF2_DIGEST,
        password.encode("utf-8"),
        salt.encode("utf-8"),
        _PBKDF2_ROUNDS,
        _PBKDF2_KEY_BYTES,
    )


def hash_password(password: str) -> str:
    """Return ``salt:hash`` where both halves are hex encoded."""

    salt = secrets.token_hex(_PBKDF2_SALT_BYTES)
    return f"{salt}:{_derive(password, salt).hex()}"


def verify_password(password: str, hashed: object) -> bool:
    """Return ``True`` if ``password`` matches the stored ``salt:hash`` value.

    Malformed stored values never raise; they simply fail verification.
    """

    if not isinstance(hashed, str) or not isinstance(password, str):
        return False
    salt, separator, encoded = hashed.partition(":")
    if not separator or not salt or not encoded:
        return False
    try:
        expected = bytes.fromhex(encoded)
    except (ValueError, binascii.Error):
        return False

    calculated = _derive(password, salt)
    return hmac.compare_digest(expected, calculated)


async def hash_password_async(password: str) -> str:
    return await anyio.to_thread.run_sync(hash_password, password)


async def verify_password_async(password: str, hashed: object) -> bool:
    return await anyio.to_thread.run_sync(verify_password, password, hashed)


__all__ = ["hash_password", "verify_password", "hash_password_async", "verify_password_async"]
