"""Row-level access to the users and addresses tables.

Stores never open or close transactions; they run on the connection of the
unit of work that created them.
"""
from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from typing import List, Optional

from .models import Address, PublicUser, User

_ADDRESS_SELECT = """
    SELECT a.*,
           u.email AS owner_email,
           u.name AS owner_name,
           u.created_at AS owner_created_at,
           u.updated_at AS owner_updated_at
      FROM addresses a
      JOIN users u ON u.id = a.user_id
"""


def _current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def _serialize_datetime(value: datetime) -> str:
    return value.isoformat()


def _parse_datetime(value: str) -> datetime:
    return datetime.fromisoformat(value)


def normalize_email(email: str) -> str:
    return email.strip().lower()


class UserStore:
    """Credential store: user rows keyed by id and by unique email."""

    _UPDATABLE = ("email", "name", "password_hash")

    def __init__(self, connection: sqlite3.Connection) -> None:
        self._conn = connection

    def get(self, user_id: int) -> Optional[User]:
        row = self._conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def get_by_email(self, email: str) -> Optional[User]:
        row = self._conn.execute(
            "SELECT * FROM users WHERE email = ?",
            (normalize_email(email),),
        ).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def exists(self, user_id: int) -> bool:
        row = self._conn.execute("SELECT 1 FROM users WHERE id = ?", (user_id,)).fetchone()
        return row is not None

    def list(self) -> List[User]:
        rows = self._conn.execute("SELECT * FROM users ORDER BY id").fetchall()
        return [self._row_to_user(row) for row in rows]

    def create(self, *, email: str, name: str, password_hash: str) -> User:
        """Insert a user. Raises ``sqlite3.IntegrityError`` on a duplicate email."""

        now = _serialize_datetime(_current_timestamp())
        cursor = self._conn.execute(
            """
            INSERT INTO users (email, name, password_hash, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (normalize_email(email), name, password_hash, now, now),
        )
        created = self.get(int(cursor.lastrowid))
        if created is None:
            raise RuntimeError("Failed to load user after creation")
        return created

    def update(self, user_id: int, **fields: object) -> Optional[User]:
        updates: List[str] = []
        values: List[object] = []
        for column in self._UPDATABLE:
            if column not in fields or fields[column] is None:
                continue
            value = fields[column]
            if column == "email":
                value = normalize_email(str(value))
            updates.append(f"{column} = ?")
            values.append(value)

        if not updates:
            return self.get(user_id)

        updates.append("updated_at = ?")
        values.append(_serialize_datetime(_current_timestamp()))
        values.append(user_id)
        cursor = self._conn.execute(f"UPDATE users SET {', '.join(updates)} WHERE id = ?", values)
        if cursor.rowcount == 0:
            return None
        return self.get(user_id)

    def delete(self, user_id: int) -> bool:
        cursor = self._conn.execute("DELETE FROM users WHERE id = ?", (user_id,))
        return cursor.rowcount > 0

    @staticmethod
    def _row_to_user(row: sqlite3.Row) -> User:
        return User(
            id=int(row["id"]),
            email=str(row["email"]),
            name=str(row["name"]),
            password_hash=str(row["password_hash"]),
            created_at=_parse_datetime(str(row["created_at"])),
            updated_at=_parse_datetime(str(row["updated_at"])),
        )


class AddressStore:
    """Address store: rows scoped to a user, with a bulk default-clearing primitive."""

    _UPDATABLE = ("line1", "city", "country", "is_default")

    def __init__(self, connection: sqlite3.Connection) -> None:
        self._conn = connection

    def get(self, address_id: int) -> Optional[Address]:
        row = self._conn.execute(f"{_ADDRESS_SELECT} WHERE a.id = ?", (address_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_address(row)

    def list_all(self) -> List[Address]:
        rows = self._conn.execute(f"{_ADDRESS_SELECT} ORDER BY a.id").fetchall()
        return [self._row_to_address(row) for row in rows]

    def list_for_user(self, user_id: int) -> List[Address]:
        rows = self._conn.execute(
            f"{_ADDRESS_SELECT} WHERE a.user_id = ? ORDER BY a.id",
            (user_id,),
        ).fetchall()
        return [self._row_to_address(row) for row in rows]

    def get_default(self, user_id: int) -> Optional[Address]:
        row = self._conn.execute(
            f"{_ADDRESS_SELECT} WHERE a.user_id = ? AND a.is_default = 1",
            (user_id,),
        ).fetchone()
        if row is None:
            return None
        return self._row_to_address(row)

    def create(
        self,
        *,
        user_id: int,
        line1: str,
        city: str,
        country: str,
        is_default: bool = False,
    ) -> Address:
        now = _serialize_datetime(_current_timestamp())
        cursor = self._conn.execute(
            """
            INSERT INTO addresses (user_id, line1, city, country, is_default, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (user_id, line1, city, country, int(bool(is_default)), now, now),
        )
        created = self.get(int(cursor.lastrowid))
        if created is None:
            raise RuntimeError("Failed to load address after creation")
        return created

    def update(self, address_id: int, **fields: object) -> Optional[Address]:
        updates: List[str] = []
        values: List[object] = []
        for column in self._UPDATABLE:
            if column not in fields or fields[column] is None:
                continue
            value = fields[column]
            if column == "is_default":
                value = int(bool(value))
            updates.append(f"{column} = ?")
            values.append(value)

        if not updates:
            return self.get(address_id)

        updates.append("updated_at = ?")
        values.append(_serialize_datetime(_current_timestamp()))
        values.append(address_id)
        cursor = self._conn.execute(f"UPDATE addresses SET {', '.join(updates)} WHERE id = ?", values)
        if cursor.rowcount == 0:
            return None
        return self.get(address_id)

    def clear_defaults(self, user_id: int, *, exclude_id: Optional[int] = None) -> int:
        """Unset ``is_default`` on the user's default rows, optionally sparing one.

        Returns the number of rows that were cleared.
        """

        query = "UPDATE addresses SET is_default = 0, updated_at = ? WHERE user_id = ? AND is_default = 1"
        params: List[object] = [_serialize_datetime(_current_timestamp()), user_id]
        if exclude_id is not None:
            query += " AND id != ?"
            params.append(exclude_id)
        cursor = self._conn.execute(query, params)
        return cursor.rowcount

    def delete(self, address_id: int) -> bool:
        cursor = self._conn.execute("DELETE FROM addresses WHERE id = ?", (address_id,))
        return cursor.rowcount > 0

    @staticmethod
    def _row_to_address(row: sqlite3.Row) -> Address:
        owner = PublicUser(
            id=int(row["user_id"]),
            email=str(row["owner_email"]),
            name=str(row["owner_name"]),
            created_at=_parse_datetime(str(row["owner_created_at"])),
            updated_at=_parse_datetime(str(row["owner_updated_at"])),
        )
        return Address(
            id=int(row["id"]),
            user_id=int(row["user_id"]),
            line1=str(row["line1"]),
            city=str(row["city"]),
            country=str(row["country"]),
            is_default=bool(row["is_default"]),
            created_at=_parse_datetime(str(row["created_at"])),
            updated_at=_parse_datetime(str(row["updated_at"])),
            owner=owner,
        )


__all__ = ["AddressStore", "UserStore", "normalize_email"]
