"""Bearer token authentication for protected endpoints."""
from __future__ import annotations

from fastapi import Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .errors import UnauthorizedError
from .models import TokenClaims
from .tokens import TokenIssuer


class BearerAuth:
    """FastAPI dependency that resolves a bearer token to its claims."""

    def __init__(self, issuer: TokenIssuer):
        self._issuer = issuer
        self._bearer = HTTPBearer(auto_error=False)

    async def __call__(self, request: Request) -> TokenClaims:
        credentials: HTTPAuthorizationCredentials | None = await self._bearer(request)  # type: ignore[assignment]
        if credentials is None or credentials.scheme.lower() != "bearer":
            raise UnauthorizedError("Missing bearer token")

        token = credentials.credentials.strip()
        if not token:
            raise UnauthorizedError("Missing bearer token")
        return self._issuer.validate(token)


__all__ = ["BearerAuth"]
