from __future__ import annotations

import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from addressbook.addresses import DefaultAddressManager
from addressbook.api import create_app
from addressbook.config import Settings
from addressbook.credentials import CredentialManager
from addressbook.database import Database
from addressbook.tokens import TokenIssuer

TOKEN_SECRET = "tests-secret-key-that-is-long-enough-for-hs256"


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(
        database_path=tmp_path / "addressbook.sqlite3",
        token_secret=TOKEN_SECRET,
        password_rounds=4,
    )


@pytest.fixture()
def database(settings: Settings) -> Database:
    db = Database.from_settings(settings)
    db.initialize()
    return db


@pytest.fixture()
def issuer(settings: Settings) -> TokenIssuer:
    return TokenIssuer(settings)


@pytest.fixture()
def credentials(settings: Settings, database: Database, issuer: TokenIssuer) -> CredentialManager:
    return CredentialManager(settings, database, issuer)


@pytest.fixture()
def addresses(database: Database) -> DefaultAddressManager:
    return DefaultAddressManager(database)


@pytest.fixture()
def client(settings: Settings, database: Database):
    app = create_app(settings=settings, database=database)
    with TestClient(app) as test_client:
        yield test_client
