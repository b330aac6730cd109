"""Issue and verify the signed identity tokens handed out at login."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import jwt

from .errors import InvalidTokenError

DEFAULT_TOKEN_TTL = timedelta(hours=1)
_ALGORITHM = "HS256"


class TokenService:
    """Stateless HS256 tokens embedding the user id and a fixed expiry."""

    def __init__(
        self,
        secret: str,
        *,
        ttl: timedelta = DEFAULT_TOKEN_TTL,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if not secret:
            raise ValueError("A token signing secret must be provided")
        if ttl <= timedelta(0):
            raise ValueError("Token TTL must be positive")
        self._secret = secret
        self._ttl = ttl
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def issue(self, user_id: int) -> str:
        issued_at = self._clock()
        payload = {
            "sub": str(user_id),
            "iat": issued_at,
            "exp": issued_at + self._ttl,
        }
        return jwt.encode(payload, self._secret, algorithm=_ALGORITHM)

    def verify(self, token: str) -> int:
        """Return the user id embedded in ``token``.

        Raises :class:`InvalidTokenError` if the token is malformed, carries a
        bad signature, lacks a usable subject, or has expired.
        """

        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[_ALGORITHM],
                options={"require": ["exp", "sub"]},
            )
        except jwt.ExpiredSignatureError as exc:
            raise InvalidTokenError("Token expired") from exc
        except jwt.PyJWTError as exc:
            raise InvalidTokenError() from exc

        try:
            return int(payload["sub"])
        except (TypeError, ValueError) as exc:
            raise InvalidTokenError() from exc


__all__ = ["DEFAULT_TOKEN_TTL", "TokenService"]
