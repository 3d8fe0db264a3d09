"""Error types raised by the address book core."""
from __future__ import annotations


class ServiceError(Exception):
    """Base class for errors that terminate a request with a known status."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(ServiceError):
    """A referenced user or address does not exist."""

    status_code = 404


class ConflictError(ServiceError):
    """A user with the requested email already exists."""

    status_code = 409


class UnauthorizedError(ServiceError):
    """Credentials or bearer token were rejected."""

    status_code = 401


class InvalidPasswordError(ServiceError):
    """A new password cannot be hashed without losing characters."""

    status_code = 422


__all__ = ["ConflictError", "InvalidPasswordError", "NotFoundError", "ServiceError", "UnauthorizedError"]
