"""Registration, login and user management on top of the credential store."""
from __future__ import annotations

import logging
import secrets
import sqlite3
from typing import List, Optional

from passlib.context import CryptContext

from .config import Settings
from .database import Database
from .errors import ConflictError, InvalidPasswordError, NotFoundError, UnauthorizedError
from .models import AuthResult, PublicUser, User, to_public
from .stores import normalize_email
from .tokens import TokenIssuer

logger = logging.getLogger("addressbook.credentials")

_DUPLICATE_EMAIL = "User with this email already exists"
_INVALID_CREDENTIALS = "Invalid credentials"

# bcrypt ignores everything past this many bytes of the encoded secret.
MAX_PASSWORD_BYTES = 72


def password_fits(password: str) -> bool:
    return len(password.encode("utf-8")) <= MAX_PASSWORD_BYTES


class CredentialManager:
    """Owns password hashing; nothing outside this class sees a hash."""

    def __init__(self, settings: Settings, database: Database, issuer: TokenIssuer) -> None:
        self._database = database
        self._issuer = issuer
        self._pwd_context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=settings.password_rounds,
        )
        # Verified against when the email is unknown so both failure paths cost the same.
        self._dummy_hash = self._pwd_context.hash(secrets.token_urlsafe(16))

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------
    def register(self, email: str, password: str, name: str) -> AuthResult:
        """Create an account and return it together with a fresh access token."""

        user = self._insert_user(email=email, password=password, name=name)
        logger.info("Registered user %s", user.id)
        return self._authenticated(user)

    def login(self, email: str, password: str) -> AuthResult:
        """Verify credentials.

        Unknown emails and wrong passwords raise the same
        :class:`UnauthorizedError` so callers cannot enumerate accounts.
        """

        with self._database.unit_of_work(readonly=True) as uow:
            user = uow.users.get_by_email(email)

        stored_hash = user.password_hash if user is not None else self._dummy_hash
        verified = self._verify_password(password, stored_hash)
        if user is None or not verified:
            logger.warning("Failed login attempt for %s", normalize_email(email))
            raise UnauthorizedError(_INVALID_CREDENTIALS)

        logger.info("User %s logged in", user.id)
        return self._authenticated(user)

    def get_profile(self, user_id: int) -> PublicUser:
        return self.get_user(user_id)

    # ------------------------------------------------------------------
    # User management
    # ------------------------------------------------------------------
    def create_user(self, email: str, password: str, name: str) -> PublicUser:
        return to_public(self._insert_user(email=email, password=password, name=name))

    def list_users(self) -> List[PublicUser]:
        with self._database.unit_of_work(readonly=True) as uow:
            users = uow.users.list()
        return [to_public(user) for user in users]

    def get_user(self, user_id: int) -> PublicUser:
        with self._database.unit_of_work(readonly=True) as uow:
            user = uow.users.get(user_id)
        if user is None:
            raise NotFoundError(f"User with ID {user_id} not found")
        return to_public(user)

    def update_user(
        self,
        user_id: int,
        *,
        email: Optional[str] = None,
        name: Optional[str] = None,
        password: Optional[str] = None,
    ) -> PublicUser:
        """Merge profile changes; a new password is re-hashed before storage."""

        password_hash = self._hash_password(password) if password else None
        normalized_email = normalize_email(email) if email is not None else None

        with self._database.unit_of_work() as uow:
            if uow.users.get(user_id) is None:
                raise NotFoundError(f"User with ID {user_id} not found")
            if normalized_email is not None:
                holder = uow.users.get_by_email(normalized_email)
                if holder is not None and holder.id != user_id:
                    raise ConflictError(_DUPLICATE_EMAIL)
            try:
                updated = uow.users.update(
                    user_id,
                    email=normalized_email,
                    name=name,
                    password_hash=password_hash,
                )
            except sqlite3.IntegrityError as exc:
                raise ConflictError(_DUPLICATE_EMAIL) from exc

        if updated is None:
            raise NotFoundError(f"User with ID {user_id} not found")
        if password_hash is not None:
            logger.info("Password rotated for user %s", user_id)
        return to_public(updated)

    def delete_user(self, user_id: int) -> None:
        """Remove a user; their addresses go with them."""

        with self._database.unit_of_work() as uow:
            if not uow.users.delete(user_id):
                raise NotFoundError(f"User with ID {user_id} not found")
        logger.info("Deleted user %s and their addresses", user_id)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _insert_user(self, *, email: str, password: str, name: str) -> User:
        normalized = normalize_email(email)

        with self._database.unit_of_work(readonly=True) as uow:
            if uow.users.get_by_email(normalized) is not None:
                raise ConflictError(_DUPLICATE_EMAIL)

        password_hash = self._hash_password(password)

        # The UNIQUE constraint settles races that slip past the check above.
        try:
            with self._database.unit_of_work() as uow:
                return uow.users.create(email=normalized, name=name, password_hash=password_hash)
        except sqlite3.IntegrityError as exc:
            raise ConflictError(_DUPLICATE_EMAIL) from exc

    def _authenticated(self, user: User) -> AuthResult:
        token = self._issuer.issue(user.id, user.email)
        return AuthResult(user=to_public(user), access_token=token)

    def _hash_password(self, password: str) -> str:
        if not password_fits(password):
            raise InvalidPasswordError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes when UTF-8 encoded")
        return self._pwd_context.hash(password)

    def _verify_password(self, password: str, hashed: str) -> bool:
        if not password_fits(password):
            return False
        try:
            return self._pwd_context.verify(password, hashed)
        except ValueError:
            return False


__all__ = ["CredentialManager", "MAX_PASSWORD_BYTES", "password_fits"]
