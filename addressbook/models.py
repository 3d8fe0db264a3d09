"""Domain models for users, addresses and token claims."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class User:
    """A user row as stored in the database, including the password hash."""

    id: int
    email: str
    name: str
    password_hash: str
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class PublicUser:
    """Outward-facing view of a user; carries no credential material."""

    id: int
    email: str
    name: str
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class Address:
    """A postal address owned by a user."""

    id: int
    user_id: int
    line1: str
    city: str
    country: str
    is_default: bool
    created_at: datetime
    updated_at: datetime
    owner: Optional[PublicUser] = None


@dataclass(frozen=True)
class TokenClaims:
    user_id: int
    email: str
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class AuthResult:
    """Outcome of a successful registration or login."""

    user: PublicUser
    access_token: str


def to_public(user: User) -> PublicUser:
    """Project a stored user onto its public view.

    Every user-returning path goes through here so the password hash can only
    leave the credential layer by someone bypassing this function.
    """

    return PublicUser(
        id=user.id,
        email=user.email,
        name=user.name,
        created_at=user.created_at,
        updated_at=user.updated_at,
    )


__all__ = ["Address", "AuthResult", "PublicUser", "TokenClaims", "User", "to_public"]
