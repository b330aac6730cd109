"""Domain errors raised by the stores and services.

Each error carries the HTTP status it maps to; :func:`noticeboard.service.create_app`
registers a handler that converts them into ``{"detail": ...}`` responses.
"""
from __future__ import annotations

from fastapi import status


class NoticeboardError(Exception):
    """Base class for errors that terminate a request."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail: str = "Server error"

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class AuthRequiredError(NoticeboardError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Access denied"


class InvalidTokenError(NoticeboardError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid token"


class ForbiddenError(NoticeboardError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Admin access required"


class DuplicateUserError(NoticeboardError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "User already exists"


class InvalidCredentialsError(NoticeboardError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid credentials"


class UserNotFoundError(NoticeboardError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "User not found"


__all__ = [
    "AuthRequiredError",
    "DuplicateUserError",
    "ForbiddenError",
    "InvalidCredentialsError",
    "InvalidTokenError",
    "NoticeboardError",
    "UserNotFoundError",
]
