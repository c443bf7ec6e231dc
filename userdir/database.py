"""SQLite-backed persistence for directory users."""
from __future__ import annotations

import logging
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from .models import Page, User

logger = logging.getLogger("userdir.database")

_UPDATABLE_COLUMNS = ("name", "email", "password_hash")

# SQLite stores INTEGER values as signed 64-bit.
_SQLITE_MIN_INTEGER = -(2**63)
_SQLITE_MAX_INTEGER = 2**63 - 1


class DuplicateEmailError(ValueError):
    """Raised when an email address is already registered to another user."""

    def __init__(self, email: str) -> None:
        super().__init__("A user with that email already exists")
        self.email = email


class UserNotFoundError(LookupError):
    """Raised when no user exists for the requested identifier."""

    def __init__(self, user_id: int) -> None:
        super().__init__(f"User {user_id} not found")
        self.user_id = user_id


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def resolve_database_path(env_value: Optional[str]) -> Path:
    """Resolve the on-disk path for the application database."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    base_dir = Path(__file__).resolve().parent.parent / "data"
    return (base_dir / "userdir.sqlite3").resolve(strict=False)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _storable_id(user_id: int) -> bool:
    return _SQLITE_MIN_INTEGER <= user_id <= _SQLITE_MAX_INTEGER


def _current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def _serialize_datetime(value: datetime) -> str:
    return value.isoformat()


def _parse_datetime(value: str) -> datetime:
    return datetime.fromisoformat(value)


class Database:
    """Simple wrapper around SQLite for persisting users.

    Every mutation runs inside a single transaction while holding a
    process-wide write lock, so concurrent callers never observe a partial
    write and duplicate emails are rejected deterministically.
    """

    def __init__(self, path: Path) -> None:
        _ensure_directory(path)
        self._path = path
        self._write_lock = threading.RLock()

    @property
    def path(self) -> Path:
        return self._path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._path, check_same_thread=False, timeout=30.0)
        conn.row_factory = sqlite3.Row
        return conn

    def initialize(self) -> None:
        """Create the required tables if they do not already exist."""

        with self._write_lock, self._connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    email TEXT NOT NULL UNIQUE COLLATE NOCASE,
                    password_hash TEXT NOT NULL,
                    created_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_users_email ON users(email COLLATE NOCASE);
                """
            )

    # ------------------------------------------------------------------
    # User management
    # ------------------------------------------------------------------
    def create_user(self, name: str, email: str, password_hash: str) -> User:
        """Insert a new user and return it."""

        if not password_hash:
            raise ValueError("Password hash must not be empty")

        created_at = _current_timestamp()
        normalized_email = normalize_email(email)

        with self._write_lock, self._connect() as conn:
            try:
                cursor = conn.execute(
                    """
                    INSERT INTO users (name, email, password_hash, created_at)
                    VALUES (?, ?, ?, ?)
                    """,
                    (name, normalized_email, password_hash, _serialize_datetime(created_at)),
                )
            except sqlite3.IntegrityError as exc:
                raise DuplicateEmailError(normalized_email) from exc
            user_id = cursor.lastrowid

        logger.info("Created user %s", user_id)
        return User(
            id=int(user_id),
            name=name,
            email=normalized_email,
            password_hash=password_hash,
            created_at=created_at,
        )

    def get_user(self, user_id: int) -> User:
        if not _storable_id(user_id):
            raise UserNotFoundError(user_id)
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        if row is None:
            raise UserNotFoundError(user_id)
        return self._row_to_user(row)

    def find_user(self, user_id: int) -> Optional[User]:
        """Return the user with ``user_id`` or ``None`` when it does not exist."""

        try:
            return self.get_user(user_id)
        except UserNotFoundError:
            return None

    def get_user_by_email(self, email: str) -> Optional[User]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE email = ?",
                (normalize_email(email),),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def update_user(self, user_id: int, **fields: str) -> User:
        """Apply a partial update and return the refreshed user."""

        unknown = set(fields) - set(_UPDATABLE_COLUMNS)
        if unknown:
            raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")
        if not _storable_id(user_id):
            raise UserNotFoundError(user_id)

        updates: List[str] = []
        values: List[object] = []
        for column in _UPDATABLE_COLUMNS:
            if column not in fields:
                continue
            value = fields[column]
            if column == "email":
                value = normalize_email(value)
            updates.append(f"{column} = ?")
            values.append(value)

        with self._write_lock, self._connect() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
            if row is None:
                raise UserNotFoundError(user_id)
            if not updates:
                return self._row_to_user(row)

            values.append(user_id)
            try:
                conn.execute(f"UPDATE users SET {', '.join(updates)} WHERE id = ?", values)
            except sqlite3.IntegrityError as exc:
                raise DuplicateEmailError(str(fields.get("email", ""))) from exc
            refreshed = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()

        logger.info("Updated user %s (%s)", user_id, ", ".join(sorted(fields)))
        return self._row_to_user(refreshed)

    def count_users(self) -> int:
        with self._connect() as conn:
            row = conn.execute("SELECT COUNT(*) FROM users").fetchone()
        return int(row[0])

    def page_users(self, index: int, size: int) -> Page:
        """Return the ``index``-th window (1-based) of ``size`` users ordered by id.

        Indices outside ``[1, total_pages]`` produce an empty page rather than
        an error.
        """

        if size < 1:
            raise ValueError("Page size must be at least 1")

        with self._connect() as conn:
            total = int(conn.execute("SELECT COUNT(*) FROM users").fetchone()[0])
            last_index = max(1, -(-total // size))
            if index < 1 or index > last_index:
                rows: List[sqlite3.Row] = []
            else:
                rows = conn.execute(
                    "SELECT * FROM users ORDER BY id LIMIT ? OFFSET ?",
                    (size, (index - 1) * size),
                ).fetchall()

        return Page(
            items=tuple(self._row_to_user(row) for row in rows),
            index=index,
            size=size,
            total=total,
        )

    def list_users(self) -> List[User]:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM users ORDER BY id").fetchall()
        return [self._row_to_user(row) for row in rows]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _row_to_user(self, row: sqlite3.Row) -> User:
        return User(
            id=int(row["id"]),
            name=str(row["name"]),
            email=str(row["email"]),
            password_hash=str(row["password_hash"]),
            created_at=_parse_datetime(str(row["created_at"])),
        )


__all__ = [
    "Database",
    "DuplicateEmailError",
    "UserNotFoundError",
    "normalize_email",
    "resolve_database_path",
]
