"""Bearer-token authentication and role gating for the HTTP API."""
from __future__ import annotations

import logging

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .database import Database
from .errors import AuthRequiredError, ForbiddenError
from .models import User
from .tokens import TokenService

logger = logging.getLogger("noticeboard.security")


class BearerAuth:
    """Resolve the calling :class:`User` from an ``Authorization: Bearer`` header.

    Missing or empty tokens raise :class:`AuthRequiredError` (401), tokens that
    fail verification raise :class:`InvalidTokenError` (400). A token whose
    user no longer exists is treated as unauthenticated.
    """

    def __init__(self, database: Database, tokens: TokenService):
        self._database = database
        self._tokens = tokens
        self._bearer = HTTPBearer(auto_error=False)

    async def __call__(self, request: Request) -> User:
        credentials: HTTPAuthorizationCredentials | None = await self._bearer(request)  # type: ignore[assignment]
        if credentials is None or credentials.scheme.lower() != "bearer":
            raise AuthRequiredError()

        provided = credentials.credentials.strip()
        if not provided:
            raise AuthRequiredError()

        user_id = self._tokens.verify(provided)
        user = self._database.get_user(user_id)
        if user is None:
            logger.warning("Rejected valid token for unknown user %s", user_id)
            raise AuthRequiredError()
        return user


def build_admin_dependency(current_user: BearerAuth):
    """Return a dependency that admits only admins, after authentication."""

    async def require_admin(user: User = Depends(current_user)) -> User:
        if not user.is_admin:
            logger.info("User %s denied admin access", user.id)
            raise ForbiddenError()
        return user

    return require_admin


__all__ = ["BearerAuth", "build_admin_dependency"]
