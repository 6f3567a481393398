"""SQLite-backed persistence for users, their API keys and administrators."""
from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, List, Optional, Tuple

from .errors import DuplicateEmail, DuplicateKey, PersistenceError
from .models import AccountRecord, Admin, ApiKey, User


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def resolve_database_path(env_value: Optional[str]) -> Path:
    """Resolve the on-disk path for the application database."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    base_dir = Path(__file__).resolve().parent.parent / "data"
    return (base_dir / "uwuntu_api.sqlite3").resolve(strict=False)


def _current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def _serialize_datetime(value: datetime) -> str:
    return value.isoformat()


def _parse_datetime(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _parse_optional_datetime(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return _parse_datetime(value)


def _normalize_email(email: str) -> str:
    return email.strip().lower()


_ACCOUNT_SELECT = """
    SELECT u.id, u.firstname, u.lastname, u.email, u.is_online, u.last_seen,
           u.created_at AS user_created_at,
           a.api_key, a.created_at AS apikey_created_at
    FROM users u
    LEFT JOIN apikeys a ON a.id = u.id
"""


class Database:
    """Simple wrapper around SQLite for persisting accounts and administrators."""

    def __init__(self, path: Path) -> None:
        _ensure_directory(path)
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection whose statements commit or roll back together."""

        try:
            conn = self._connect()
        except sqlite3.Error as exc:
            raise PersistenceError(str(exc)) from exc
        try:
            with conn:
                yield conn
        except sqlite3.Error as exc:
            raise PersistenceError(str(exc)) from exc
        finally:
            conn.close()

    def initialize(self) -> None:
        """Create the required tables if they do not already exist."""

        with self._transaction() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    firstname TEXT NOT NULL,
                    lastname TEXT NOT NULL,
                    email TEXT NOT NULL UNIQUE,
                    is_online INTEGER NOT NULL DEFAULT 0,
                    last_seen TEXT DEFAULT NULL,
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS apikeys (
                    id INTEGER PRIMARY KEY REFERENCES users(id) ON DELETE CASCADE,
                    api_key TEXT NOT NULL UNIQUE,
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS admins (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    email TEXT NOT NULL UNIQUE,
                    password_hash TEXT NOT NULL,
                    created_at TEXT NOT NULL
                );
                """
            )

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------
    def create_account(
        self,
        firstname: str,
        lastname: str,
        email: str,
        api_key: str,
    ) -> AccountRecord:
        """Insert a user and its API key in a single transaction.

        Both rows share the user's id. If the key insert fails the user insert
        is rolled back so no user is left without a key.
        """

        created_at = _serialize_datetime(_current_timestamp())
        stored_email = email.strip()

        with self._transaction() as conn:
            try:
                cursor = conn.execute(
                    "INSERT INTO users (firstname, lastname, email, created_at) VALUES (?, ?, ?, ?)",
                    (firstname, lastname, stored_email, created_at),
                )
            except sqlite3.IntegrityError as exc:
                if "users.email" in str(exc):
                    raise DuplicateEmail("Email already exists") from exc
                raise

            user_id = cursor.lastrowid

            try:
                conn.execute(
                    "INSERT INTO apikeys (id, api_key, created_at) VALUES (?, ?, ?)",
                    (user_id, api_key, created_at),
                )
            except sqlite3.IntegrityError as exc:
                if "apikeys.api_key" in str(exc):
                    raise DuplicateKey("API key already exists") from exc
                raise

            row = conn.execute(_ACCOUNT_SELECT + " WHERE u.id = ?", (user_id,)).fetchone()

        return self._row_to_account(row)

    def list_accounts(self) -> List[AccountRecord]:
        with self._transaction() as conn:
            rows = conn.execute(_ACCOUNT_SELECT + " ORDER BY u.id ASC").fetchall()
        return [self._row_to_account(row) for row in rows]

    def count_users(self) -> int:
        with self._transaction() as conn:
            row = conn.execute("SELECT COUNT(*) AS total FROM users").fetchone()
        return int(row["total"])

    def get_user(self, user_id: int) -> Optional[User]:
        with self._transaction() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def get_api_key(self, api_key: str) -> Optional[ApiKey]:
        with self._transaction() as conn:
            row = conn.execute("SELECT * FROM apikeys WHERE api_key = ?", (api_key,)).fetchone()
        if row is None:
            return None
        return self._row_to_api_key(row)

    def get_api_key_for_user(self, user_id: int) -> Optional[ApiKey]:
        with self._transaction() as conn:
            row = conn.execute("SELECT * FROM apikeys WHERE id = ?", (user_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_api_key(row)

    def set_presence(self, user_id: int, *, online: bool, seen_at: Optional[datetime]) -> None:
        """Overwrite the presence fields; unknown ids are ignored."""

        last_seen = _serialize_datetime(seen_at) if seen_at is not None else None
        with self._transaction() as conn:
            conn.execute(
                "UPDATE users SET is_online = ?, last_seen = ? WHERE id = ?",
                (1 if online else 0, last_seen, user_id),
            )

    def delete_api_key(self, user_id: int) -> bool:
        with self._transaction() as conn:
            cursor = conn.execute("DELETE FROM apikeys WHERE id = ?", (user_id,))
        return cursor.rowcount > 0

    def delete_account(self, user_id: int) -> bool:
        """Delete the key and then the user; both or neither are removed."""

        with self._transaction() as conn:
            conn.execute("DELETE FROM apikeys WHERE id = ?", (user_id,))
            cursor = conn.execute("DELETE FROM users WHERE id = ?", (user_id,))
        return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Administrators
    # ------------------------------------------------------------------
    def create_admin(self, email: str, password_hash: str) -> Admin:
        created_at = _current_timestamp()
        normalized_email = _normalize_email(email)

        with self._transaction() as conn:
            try:
                cursor = conn.execute(
                    "INSERT INTO admins (email, password_hash, created_at) VALUES (?, ?, ?)",
                    (normalized_email, password_hash, _serialize_datetime(created_at)),
                )
            except sqlite3.IntegrityError as exc:
                raise DuplicateEmail("Admin email exists") from exc
            admin_id = cursor.lastrowid

        return Admin(id=admin_id, email=normalized_email, created_at=created_at)

    def get_admin_credentials(self, email: str) -> Optional[Tuple[Admin, str]]:
        """Return the admin and its stored password hash for ``email``."""

        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM admins WHERE email = ?",
                (_normalize_email(email),),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_admin(row), row["password_hash"]

    # ------------------------------------------------------------------
    # Row mapping
    # ------------------------------------------------------------------
    @staticmethod
    def _row_to_user(row: sqlite3.Row) -> User:
        return User(
            id=row["id"],
            firstname=row["firstname"],
            lastname=row["lastname"],
            email=row["email"],
            is_online=bool(row["is_online"]),
            last_seen=_parse_optional_datetime(row["last_seen"]),
            created_at=_parse_datetime(row["created_at"]),
        )

    @staticmethod
    def _row_to_api_key(row: sqlite3.Row) -> ApiKey:
        return ApiKey(
            id=row["id"],
            api_key=row["api_key"],
            created_at=_parse_datetime(row["created_at"]),
        )

    @staticmethod
    def _row_to_admin(row: sqlite3.Row) -> Admin:
        return Admin(
            id=row["id"],
            email=row["email"],
            created_at=_parse_datetime(row["created_at"]),
        )

    @staticmethod
    def _row_to_account(row: sqlite3.Row) -> AccountRecord:
        return AccountRecord(
            id=row["id"],
            firstname=row["firstname"],
            lastname=row["lastname"],
            email=row["email"],
            is_online=bool(row["is_online"]),
            last_seen=_parse_optional_datetime(row["last_seen"]),
            user_created_at=_parse_datetime(row["user_created_at"]),
            api_key=row["api_key"],
            apikey_created_at=_parse_optional_datetime(row["apikey_created_at"]),
        )


__all__ = ["Database", "resolve_database_path"]
