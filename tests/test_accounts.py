from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List

import pytest

from uwuntu_api.accounts import AccountService
from uwuntu_api.database import Database
from uwuntu_api.errors import (
    DuplicateEmail,
    InvalidFormat,
    MissingField,
    MissingKey,
    NotFound,
    PersistenceError,
)
from uwuntu_api.keys import generate_api_key


class SteppingClock:
    def __init__(self) -> None:
        self.current = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.current += timedelta(seconds=30)
        return self.current


@pytest.fixture()
def database(tmp_path: Path) -> Database:
    db = Database(tmp_path / "uwuntu.sqlite3")
    db.initialize()
    return db


@pytest.fixture()
def clock() -> SteppingClock:
    return SteppingClock()


@pytest.fixture()
def accounts(database: Database, clock: SteppingClock) -> AccountService:
    return AccountService(database, clock=clock)


@pytest.mark.parametrize(
    "fields",
    [
        (None, "Lovelace", "ada@example.com", "UWUNTU-API-0123456789ABCDEF"),
        ("Ada", "", "ada@example.com", "UWUNTU-API-0123456789ABCDEF"),
        ("Ada", "Lovelace", "   ", "UWUNTU-API-0123456789ABCDEF"),
        ("Ada", "Lovelace", "ada@example.com", None),
    ],
)
def test_save_user_requires_every_field(accounts: AccountService, database: Database, fields) -> None:
    with pytest.raises(MissingField):
        accounts.save_user(*fields)
    assert database.count_users() == 0


def test_save_user_returns_joined_record(accounts: AccountService) -> None:
    key = generate_api_key()
    record = accounts.save_user("Ada", "Lovelace", "ada@example.com", key)

    assert record.firstname == "Ada"
    assert record.lastname == "Lovelace"
    assert record.api_key == key
    assert record.apikey_created_at == record.user_created_at


def test_duplicate_email_leaves_user_count_unchanged(accounts: AccountService, database: Database) -> None:
    accounts.save_user("Ada", "Lovelace", "ada@example.com", generate_api_key())
    before = database.count_users()
    second_key = generate_api_key()

    with pytest.raises(DuplicateEmail):
        accounts.save_user("Ada", "King", "ada@example.com", second_key)

    assert database.count_users() == before
    assert database.get_api_key(second_key) is None


def test_validate_key_rejects_missing_and_malformed(accounts: AccountService) -> None:
    with pytest.raises(MissingKey):
        accounts.validate_key(None)
    with pytest.raises(MissingKey):
        accounts.validate_key("")
    with pytest.raises(InvalidFormat):
        accounts.validate_key("UWUNTU-API-0123456789abcdef")
    with pytest.raises(InvalidFormat):
        accounts.validate_key("UWUNTU-API-0123")


def test_validate_unknown_key(accounts: AccountService) -> None:
    with pytest.raises(NotFound):
        accounts.validate_key(generate_api_key())


def test_validate_key_is_idempotent_and_refreshes_last_seen(
    accounts: AccountService, database: Database
) -> None:
    key = generate_api_key()
    record = accounts.save_user("Ada", "Lovelace", "ada@example.com", key)

    first = accounts.validate_key(key)
    assert first.key == key
    assert first.status == "active"
    assert first.created_at == record.apikey_created_at
    user = database.get_user(record.id)
    assert user is not None and user.is_online
    first_seen = user.last_seen

    second = accounts.validate_key(key)
    assert second.key == key
    user = database.get_user(record.id)
    assert user is not None
    assert user.last_seen is not None and first_seen is not None
    assert user.last_seen > first_seen


def test_presence_failure_does_not_fail_validation(
    accounts: AccountService, database: Database, monkeypatch: pytest.MonkeyPatch
) -> None:
    key = generate_api_key()
    accounts.save_user("Ada", "Lovelace", "ada@example.com", key)
    calls: List[int] = []

    def failing_presence(user_id: int, **_: object) -> None:
        calls.append(user_id)
        raise PersistenceError("database is locked")

    monkeypatch.setattr(database, "set_presence", failing_presence)

    result = accounts.validate_key(key)
    assert result.key == key
    assert len(calls) == 1


def test_online_then_offline_clears_presence(accounts: AccountService, database: Database) -> None:
    record = accounts.save_user("Ada", "Lovelace", "ada@example.com", generate_api_key())

    accounts.set_online(record.id)
    user = database.get_user(record.id)
    assert user is not None and user.is_online and user.last_seen is not None

    accounts.set_offline(record.id)
    user = database.get_user(record.id)
    assert user is not None
    assert user.is_online is False
    assert user.last_seen is None


def test_heartbeat_for_unknown_user_is_not_an_error(accounts: AccountService) -> None:
    accounts.set_online(12345)
    accounts.set_offline(12345)
