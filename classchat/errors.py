"""Typed failures raised by the chat domain operations."""

from __future__ import annotations

from fastapi import status


class DomainError(Exception):
    """Base class for failures the HTTP layer maps to a status code."""

    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(DomainError):
    """Malformed or missing input."""

    status_code = status.HTTP_400_BAD_REQUEST


class Unauthorized(DomainError):
    """Bad credentials, token, admin password or class code."""

    status_code = status.HTTP_401_UNAUTHORIZED


class Forbidden(DomainError):
    """Authenticated but not entitled to the resource."""

    status_code = status.HTTP_403_FORBIDDEN


class NotFound(DomainError):
    status_code = status.HTTP_404_NOT_FOUND


class Conflict(DomainError):
    """Duplicate username or class code."""

    status_code = status.HTTP_400_BAD_REQUEST


__all__ = ["DomainError", "ValidationError", "Unauthorized", "Forbidden", "NotFound", "Conflict"]
