"""Class-scoped chat service: identity, sessions, authorization and storage."""

from __future__ import annotations

from typing import Any

from .database import Database, resolve_store_path


def create_app(*args: Any, **kwargs: Any):
    """Factory function that returns the chat API application."""

    from .api import create_app as _create_app

    return _create_app(*args, **kwargs)


__all__ = [
    "Database",
    "resolve_store_path",
    "create_app",
]
