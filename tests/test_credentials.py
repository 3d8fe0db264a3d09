from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict

import pytest

from addressbook.addresses import DefaultAddressManager
from addressbook.credentials import CredentialManager
from addressbook.database import Database
from addressbook.errors import ConflictError, InvalidPasswordError, NotFoundError, UnauthorizedError
from addressbook.tokens import TokenIssuer

EMAIL = "user@example.com"
PASSWORD = "super-secret-password"


def test_register_returns_public_user_and_token(credentials: CredentialManager, issuer: TokenIssuer) -> None:
    result = credentials.register(EMAIL, PASSWORD, "Test User")

    assert result.user.email == EMAIL
    assert result.user.name == "Test User"
    assert "password_hash" not in asdict(result.user)

    claims = issuer.validate(result.access_token)
    assert claims.user_id == result.user.id
    assert claims.email == EMAIL


def test_password_is_stored_hashed(credentials: CredentialManager, database: Database) -> None:
    result = credentials.register(EMAIL, PASSWORD, "Test User")

    with database.unit_of_work(readonly=True) as uow:
        stored = uow.users.get(result.user.id)
    assert stored is not None
    assert stored.password_hash != PASSWORD
    assert stored.password_hash.startswith("$2")


def test_duplicate_registration_conflicts(credentials: CredentialManager) -> None:
    credentials.register(EMAIL, PASSWORD, "First")

    with pytest.raises(ConflictError):
        credentials.register(EMAIL, "another-password", "Second")
    with pytest.raises(ConflictError):
        credentials.register("  USER@example.com ", "another-password", "Third")

    assert len(credentials.list_users()) == 1


def test_concurrent_registrations_admit_only_one(credentials: CredentialManager) -> None:
    def attempt(index: int) -> str:
        try:
            credentials.register(EMAIL, PASSWORD, f"Racer {index}")
        except ConflictError:
            return "conflict"
        return "created"

    with ThreadPoolExecutor(max_workers=8) as pool:
        outcomes = list(pool.map(attempt, range(8)))

    assert outcomes.count("created") == 1
    assert outcomes.count("conflict") == 7
    assert [user.email for user in credentials.list_users()] == [EMAIL]


def test_register_then_login_round_trip(credentials: CredentialManager, issuer: TokenIssuer) -> None:
    registered = credentials.register(EMAIL, PASSWORD, "Test User")

    result = credentials.login(EMAIL, PASSWORD)

    assert result.user == registered.user
    assert issuer.validate(result.access_token).email == EMAIL


def test_login_is_case_insensitive_on_email(credentials: CredentialManager) -> None:
    credentials.register(EMAIL, PASSWORD, "Test User")

    assert credentials.login("User@Example.com", PASSWORD).user.email == EMAIL


def test_login_failures_are_indistinguishable(credentials: CredentialManager) -> None:
    credentials.register(EMAIL, PASSWORD, "Test User")

    with pytest.raises(UnauthorizedError) as wrong_password:
        credentials.login(EMAIL, "wrong-password")
    with pytest.raises(UnauthorizedError) as unknown_email:
        credentials.login("nobody@example.com", PASSWORD)

    assert wrong_password.value.message == "Invalid credentials"
    assert unknown_email.value.message == wrong_password.value.message


def test_login_with_unregistered_email_is_not_a_lookup_error(credentials: CredentialManager) -> None:
    with pytest.raises(UnauthorizedError):
        credentials.login("ghost@example.com", PASSWORD)


def test_get_profile(credentials: CredentialManager) -> None:
    registered = credentials.register(EMAIL, PASSWORD, "Test User")

    assert credentials.get_profile(registered.user.id) == registered.user
    with pytest.raises(NotFoundError):
        credentials.get_profile(registered.user.id + 1)


def test_update_user_changes_profile_fields(credentials: CredentialManager) -> None:
    user = credentials.create_user(EMAIL, PASSWORD, "Before")

    updated = credentials.update_user(user.id, name="After", email="New@Example.com")

    assert updated.name == "After"
    assert updated.email == "new@example.com"
    assert credentials.get_user(user.id) == updated


def test_update_user_rotates_password(credentials: CredentialManager) -> None:
    user = credentials.create_user(EMAIL, PASSWORD, "Rotator")

    credentials.update_user(user.id, password="a-brand-new-password")

    with pytest.raises(UnauthorizedError):
        credentials.login(EMAIL, PASSWORD)
    assert credentials.login(EMAIL, "a-brand-new-password").user.id == user.id


def test_passwords_are_limited_to_what_bcrypt_hashes(credentials: CredentialManager) -> None:
    # 40 characters but 80 bytes once encoded.
    with pytest.raises(InvalidPasswordError):
        credentials.create_user(EMAIL, "\u00e9" * 40, "Accented")

    user = credentials.create_user(EMAIL, "\u00e9" * 36, "Accented")
    with pytest.raises(InvalidPasswordError):
        credentials.update_user(user.id, password="\u00e9" * 37)

    with pytest.raises(UnauthorizedError):
        credentials.login(EMAIL, "\u00e9" * 36 + "WXYZ")
    with pytest.raises(UnauthorizedError):
        credentials.login(EMAIL, "\u00e9" * 35 + "WX")
    assert credentials.login(EMAIL, "\u00e9" * 36).user.id == user.id


def test_update_user_rejects_taken_email(credentials: CredentialManager) -> None:
    credentials.create_user("first@example.com", PASSWORD, "First")
    second = credentials.create_user("second@example.com", PASSWORD, "Second")

    with pytest.raises(ConflictError):
        credentials.update_user(second.id, email="FIRST@example.com")

    # Re-submitting one's own email is not a conflict.
    assert credentials.update_user(second.id, email="second@example.com").email == "second@example.com"


def test_update_unknown_user(credentials: CredentialManager) -> None:
    with pytest.raises(NotFoundError):
        credentials.update_user(404, name="Nobody")


def test_delete_user_cascades_to_addresses(
    credentials: CredentialManager,
    addresses: DefaultAddressManager,
) -> None:
    user = credentials.create_user(EMAIL, PASSWORD, "Leaving")
    first = addresses.create_address(user.id, line1="1 Main St", city="Springfield", country="US", is_default=True)
    second = addresses.create_address(user.id, line1="2 Main St", city="Springfield", country="US")

    credentials.delete_user(user.id)

    with pytest.raises(NotFoundError):
        addresses.get_address(first.id)
    with pytest.raises(NotFoundError):
        addresses.get_address(second.id)
    with pytest.raises(NotFoundError):
        credentials.get_user(user.id)
    with pytest.raises(NotFoundError):
        credentials.delete_user(user.id)
