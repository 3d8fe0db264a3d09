"""Stateless bearer tokens carrying user identity claims."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from .config import Settings
from .errors import UnauthorizedError
from .models import TokenClaims


class TokenIssuer:
    """Mint and validate signed JWTs with the process-wide secret."""

    def __init__(self, settings: Settings) -> None:
        self._secret = settings.token_secret
        self._algorithm = settings.token_algorithm
        self._ttl = settings.token_ttl

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def issue(self, user_id: int, email: str, *, expires_delta: Optional[timedelta] = None) -> str:
        issued_at = self._now()
        expires_at = issued_at + (expires_delta if expires_delta is not None else self._ttl)
        payload = {
            "sub": str(user_id),
            "email": email,
            "iat": int(issued_at.timestamp()),
            "exp": int(expires_at.timestamp()),
        }
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def validate(self, token: str) -> TokenClaims:
        """Return the token's claims or raise :class:`UnauthorizedError`."""

        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"require": ["exp", "iat", "sub"]},
            )
        except jwt.ExpiredSignatureError as exc:
            raise UnauthorizedError("Token expired") from exc
        except jwt.InvalidTokenError as exc:
            raise UnauthorizedError("Invalid token") from exc

        try:
            return TokenClaims(
                user_id=int(payload["sub"]),
                email=str(payload["email"]),
                issued_at=datetime.fromtimestamp(int(payload["iat"]), tz=timezone.utc),
                expires_at=datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise UnauthorizedError("Invalid token payload") from exc

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)


__all__ = ["TokenIssuer"]
