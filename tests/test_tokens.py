from __future__ import annotations

from dataclasses import replace
from datetime import timedelta

import jwt
import pytest

from addressbook.config import Settings
from addressbook.errors import UnauthorizedError
from addressbook.tokens import TokenIssuer


def test_issued_token_round_trips_claims(issuer: TokenIssuer) -> None:
    token = issuer.issue(42, "someone@example.com")

    claims = issuer.validate(token)

    assert claims.user_id == 42
    assert claims.email == "someone@example.com"
    assert claims.expires_at - claims.issued_at == issuer.ttl


def test_token_payload_carries_identity_and_expiry(issuer: TokenIssuer, settings: Settings) -> None:
    token = issuer.issue(7, "payload@example.com")

    payload = jwt.decode(token, settings.token_secret, algorithms=[settings.token_algorithm])

    assert payload["sub"] == "7"
    assert payload["email"] == "payload@example.com"
    assert payload["exp"] > payload["iat"]


def test_expired_token_is_rejected(issuer: TokenIssuer) -> None:
    token = issuer.issue(1, "late@example.com", expires_delta=timedelta(seconds=-30))

    with pytest.raises(UnauthorizedError) as exc_info:
        issuer.validate(token)
    assert exc_info.value.message == "Token expired"


def test_token_signed_with_another_secret_is_rejected(issuer: TokenIssuer, settings: Settings) -> None:
    rotated = TokenIssuer(replace(settings, token_secret="a-completely-different-secret-value-for-tests"))
    token = rotated.issue(1, "rotated@example.com")

    with pytest.raises(UnauthorizedError) as exc_info:
        issuer.validate(token)
    assert exc_info.value.message == "Invalid token"


@pytest.mark.parametrize("token", ["", "not-a-jwt", "a.b.c"])
def test_malformed_token_is_rejected(issuer: TokenIssuer, token: str) -> None:
    with pytest.raises(UnauthorizedError):
        issuer.validate(token)


def test_token_without_required_claims_is_rejected(issuer: TokenIssuer, settings: Settings) -> None:
    token = jwt.encode({"email": "nobody@example.com"}, settings.token_secret, algorithm=settings.token_algorithm)

    with pytest.raises(UnauthorizedError):
        issuer.validate(token)


def test_token_with_non_numeric_subject_is_rejected(issuer: TokenIssuer, settings: Settings) -> None:
    token = jwt.encode(
        {"sub": "abc", "email": "x@example.com", "iat": 1, "exp": 4102444800},
        settings.token_secret,
        algorithm=settings.token_algorithm,
    )

    with pytest.raises(UnauthorizedError) as exc_info:
        issuer.validate(token)
    assert exc_info.value.message == "Invalid token payload"
