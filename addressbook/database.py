"""SQLite-backed persistence for users and their addresses."""
from __future__ import annotations

import sqlite3
from contextlib import closing, contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator

from .config import Settings
from .stores import AddressStore, UserStore

_SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    email TEXT NOT NULL UNIQUE,
    name TEXT NOT NULL,
    password_hash TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS addresses (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    line1 TEXT NOT NULL,
    city TEXT NOT NULL,
    country TEXT NOT NULL,
    is_default INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_addresses_user_id ON addresses(user_id);

-- At most one default address per user, whatever the caller does.
CREATE UNIQUE INDEX IF NOT EXISTS ux_addresses_user_default
    ON addresses(user_id) WHERE is_default = 1;
"""


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


@dataclass
class UnitOfWork:
    """Both stores bound to a single connection and transaction."""

    connection: sqlite3.Connection
    users: UserStore = field(init=False)
    addresses: AddressStore = field(init=False)

    def __post_init__(self) -> None:
        self.users = UserStore(self.connection)
        self.addresses = AddressStore(self.connection)


class Database:
    """Thin wrapper around SQLite that hands out transactional units of work."""

    def __init__(self, path: Path, *, timeout: float = 5.0) -> None:
        _ensure_directory(path)
        self._path = path
        self._timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        return cls(settings.database_path, timeout=settings.database_timeout)

    @property
    def path(self) -> Path:
        return self._path

    def _connect(self) -> sqlite3.Connection:
        # Autocommit mode: transactions are opened explicitly by unit_of_work().
        conn = sqlite3.connect(
            self._path,
            timeout=self._timeout,
            isolation_level=None,
            check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def initialize(self) -> None:
        """Create the required tables and indexes if they do not already exist."""

        with closing(self._connect()) as conn:
            conn.executescript(_SCHEMA)

    @contextmanager
    def unit_of_work(self, *, readonly: bool = False) -> Iterator[UnitOfWork]:
        """Run the enclosed block as one transaction.

        Writers use ``BEGIN IMMEDIATE`` so the write lock is taken before the
        first read; two writers never interleave. The transaction is rolled
        back if the block raises.
        """

        with closing(self._connect()) as conn:
            conn.execute("BEGIN" if readonly else "BEGIN IMMEDIATE")
            try:
                yield UnitOfWork(conn)
            except BaseException:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")


__all__ = ["Database", "UnitOfWork"]
