"""Tests for administrator registration, login and the session guard."""

from __future__ import annotations

import logging
import sqlite3
from datetime import timedelta
from pathlib import Path

import pytest

from uwuntu_api.auth import AdminAuthService
from uwuntu_api.database import Database
from uwuntu_api.errors import DuplicateEmail, InvalidCredentials, MissingField, Unauthorized
from uwuntu_api.security import hash_password, verify_password
from uwuntu_api.sessions import InMemorySessionStore


EMAIL = "root@example.com"
PASSWORD = "correct horse battery"


@pytest.fixture()
def database(tmp_path: Path) -> Database:
    db = Database(tmp_path / "uwuntu.sqlite3")
    db.initialize()
    return db


@pytest.fixture()
def store() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture()
def auth(database: Database, store: InMemorySessionStore) -> AdminAuthService:
    return AdminAuthService(database, store)


def test_password_hash_is_salted_and_verifiable() -> None:
    first = hash_password(PASSWORD)
    second = hash_password(PASSWORD)

    assert first != second
    assert PASSWORD not in first
    assert verify_password(PASSWORD, first)
    assert not verify_password("wrong", first)
    assert not verify_password(PASSWORD, "not-a-hash")


def test_register_stores_hash_not_plaintext(auth: AdminAuthService, database: Database) -> None:
    admin_id = auth.register(EMAIL, PASSWORD)

    conn = sqlite3.connect(database.path)
    try:
        stored = conn.execute("SELECT password_hash FROM admins WHERE id = ?", (admin_id,)).fetchone()[0]
    finally:
        conn.close()
    assert stored != PASSWORD
    assert verify_password(PASSWORD, stored)


def test_register_rejects_missing_and_duplicate(auth: AdminAuthService) -> None:
    with pytest.raises(MissingField):
        auth.register("", PASSWORD)
    with pytest.raises(MissingField):
        auth.register(EMAIL, None)

    auth.register(EMAIL, PASSWORD)
    with pytest.raises(DuplicateEmail):
        auth.register(EMAIL, "another password")


def test_login_failures_share_one_error(auth: AdminAuthService, caplog: pytest.LogCaptureFixture) -> None:
    auth.register(EMAIL, PASSWORD)

    with caplog.at_level(logging.WARNING, logger="uwuntu.auth"):
        with pytest.raises(InvalidCredentials) as unknown:
            auth.login("nobody@example.com", PASSWORD)
        with pytest.raises(InvalidCredentials) as wrong:
            auth.login(EMAIL, "wrong password")

    assert str(unknown.value) == str(wrong.value)
    assert PASSWORD not in caplog.text

    with pytest.raises(MissingField):
        auth.login(EMAIL, "")


def test_login_creates_session_and_guard_accepts_it(
    auth: AdminAuthService, store: InMemorySessionStore
) -> None:
    admin_id = auth.register(EMAIL, PASSWORD)

    session = auth.login(EMAIL, PASSWORD)
    assert session.admin_id == admin_id
    assert session.email == EMAIL

    guarded = auth.guard(session.session_id)
    assert guarded.admin_id == admin_id
    assert len(store) == 1


def test_login_replaces_previous_session(auth: AdminAuthService, store: InMemorySessionStore) -> None:
    auth.register(EMAIL, PASSWORD)
    first = auth.login(EMAIL, PASSWORD)

    second = auth.login(EMAIL, PASSWORD, previous_session_id=first.session_id)

    assert store.get(first.session_id) is None
    assert store.get(second.session_id) is not None


def test_guard_rejects_missing_unknown_and_destroyed_sessions(auth: AdminAuthService) -> None:
    auth.register(EMAIL, PASSWORD)

    with pytest.raises(Unauthorized):
        auth.guard(None)
    with pytest.raises(Unauthorized):
        auth.guard("made-up-session")

    session = auth.login(EMAIL, PASSWORD)
    auth.logout(session.session_id)
    with pytest.raises(Unauthorized):
        auth.guard(session.session_id)

    # Logging out twice is harmless.
    auth.logout(session.session_id)
    auth.logout(None)


def test_expired_sessions_are_dropped() -> None:
    store = InMemorySessionStore(ttl=timedelta(seconds=-1))
    session = store.create(1, EMAIL)

    assert store.get(session.session_id) is None
    assert len(store) == 0
